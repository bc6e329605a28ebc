from .kitchen_service import KitchenService, FireResult, KitchenTicket
from .notification_service import KDSNotificationService

__all__ = ['KitchenService', 'FireResult', 'KitchenTicket', 'KDSNotificationService']

from typing import Any, Callable, Dict, Iterable
import logging

from django.db import transaction

from ..services.notification_service import notification_service

logger = logging.getLogger(__name__)


class KDSEventPublisher:
    """Centralized event publishing for kitchen events"""

    @staticmethod
    def _after_commit(send: Callable[[], None]):
        """Kitchen displays only ever hear about committed changes."""
        if transaction.get_connection().in_atomic_block:
            transaction.on_commit(send)
        else:
            send()

    @staticmethod
    def _item_payload(item) -> Dict[str, Any]:
        return {
            "item_id": str(item.id),
            "product_name": item.product_name,
            "quantity": item.quantity,
            "special_instructions": item.special_instructions,
            "status": item.status,
            "fire_round": item.fire_round,
        }

    @staticmethod
    def round_fired(order, fire_round: int, items: Iterable):
        """Publish a newly fired round"""
        try:
            logger.info(f"Publishing round_fired event for {order.order_number}, round {fire_round}")
            outlet_id = order.outlet_id
            data = {
                "order_id": str(order.id),
                "order_number": order.order_number,
                "table_number": order.table.number if order.table_id else None,
                "fire_round": fire_round,
                "items": [KDSEventPublisher._item_payload(item) for item in items],
            }
            KDSEventPublisher._after_commit(
                lambda: notification_service.round_fired_notification(outlet_id, data)
            )
        except Exception as e:
            logger.error(f"Error publishing round_fired event: {e}")

    @staticmethod
    def item_status_changed(item, old_status: str, new_status: str):
        """Publish item status change event"""
        try:
            logger.info(f"Publishing item_status_changed event for item {item.id}: {old_status} -> {new_status}")
            order = item.order
            outlet_id = order.outlet_id
            data = dict(
                KDSEventPublisher._item_payload(item),
                order_id=str(order.id),
                order_number=order.order_number,
                old_status=old_status,
                new_status=new_status,
            )
            KDSEventPublisher._after_commit(
                lambda: notification_service.item_status_changed_notification(outlet_id, data)
            )
        except Exception as e:
            logger.error(f"Error publishing item_status_changed event: {e}")

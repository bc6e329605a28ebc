from core_backend.errors import ValidationFailed

from .models import PaymentMethod
from .strategies import (
    PaymentStrategy,
    CashPaymentStrategy,
    CardPaymentStrategy,
    MobileMoneyPaymentStrategy,
    RoomChargePaymentStrategy,
)


class PaymentStrategyFactory:
    """
    A factory for creating payment strategy instances.
    """

    @staticmethod
    def get_strategy(method: str) -> PaymentStrategy:
        """
        Returns an instance of the appropriate payment strategy based on the
        payment method string.
        """
        if method == PaymentMethod.CASH:
            return CashPaymentStrategy()
        elif method == PaymentMethod.CARD:
            return CardPaymentStrategy()
        elif method == PaymentMethod.MOBILE_MONEY:
            return MobileMoneyPaymentStrategy()
        elif method == PaymentMethod.ROOM_CHARGE:
            return RoomChargePaymentStrategy()
        else:
            raise ValidationFailed(f"Unknown payment method: {method}", field="method")

from django.db import transaction
import logging

from core_backend.errors import ValidationFailed
from orders.calculators import DiscountSpec
from orders.models import Order
from orders.services.calculation_service import OrderCalculationService
from orders.services.order_service import OrderService

logger = logging.getLogger(__name__)


class OrderDiscountService:
    """Service for applying and removing the order-level discount."""

    @staticmethod
    @transaction.atomic
    def apply_discount(order: Order, discount: DiscountSpec) -> Order:
        """
        Store the requested discount on the order and recompute totals.

        Negative values are refused here; an oversized value is clamped by
        the pricing engine (a 150% discount takes the subtotal to zero).
        """
        if discount.value < 0:
            raise ValidationFailed("Discount cannot be negative.", field="discount_value")

        order = OrderService.lock(order)
        OrderService.ensure_open(order, "discount")

        order.discount_type = discount.type
        order.discount_value = discount.value if discount.type != Order.DiscountType.NONE else 0
        OrderCalculationService.recalculate_order_totals(order)
        OrderService.touch(order, ["discount_type", "discount_value"])

        logger.info(
            f"Order {order.order_number}: discount {discount.type} {discount.value} "
            f"-> {order.discount_amount} off"
        )
        return order

    @staticmethod
    def clear_discount(order: Order) -> Order:
        return OrderDiscountService.apply_discount(order, DiscountSpec.none())

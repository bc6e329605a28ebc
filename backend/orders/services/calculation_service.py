from django.db import transaction
import logging

from orders.calculators import OrderCalculator, Totals
from orders.models import Order

logger = logging.getLogger(__name__)


class OrderCalculationService:
    """Service for writing derived totals onto orders."""

    TOTAL_FIELDS = ["subtotal", "discount_amount", "service_charge", "tax_amount", "total_amount"]

    @staticmethod
    def preview_totals(order: Order) -> Totals:
        """Totals the order would have right now, without saving."""
        return OrderCalculator(order).calculate_totals()

    @staticmethod
    @transaction.atomic
    def recalculate_order_totals(order: Order) -> Order:
        """
        Recompute the five derived money fields from the order's items,
        discount and outlet rates and persist them. Called after every item
        or discount mutation; the only writer of those fields.
        """
        totals = OrderCalculator(order).calculate_totals()
        for field_name, value in totals.as_order_fields().items():
            setattr(order, field_name, value)

        order.save(update_fields=OrderCalculationService.TOTAL_FIELDS + ["updated_at"])
        logger.debug(
            f"Order {order.order_number}: subtotal={totals.subtotal} discount={totals.discount} "
            f"service={totals.service_charge} tax={totals.tax} total={totals.total}"
        )
        return order

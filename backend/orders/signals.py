from django.db import transaction
from django.dispatch import Signal, receiver
import logging

logger = logging.getLogger(__name__)

# Custom signals for order events
# order_changed(sender=Order, order_id, version, status): fired after commit
order_changed = Signal()
# order_needs_recalculation(sender, order): request a totals refresh
order_needs_recalculation = Signal()


def notify_order_changed(order):
    """
    Announce a committed change to an order. Listeners (kitchen displays,
    other registers polling for refresh) only ever see committed versions.
    """
    order_id, version, status = order.pk, order.version, order.status

    def _send():
        order_changed.send(sender=order.__class__, order_id=order_id, version=version, status=status)

    transaction.on_commit(_send)


@receiver(order_needs_recalculation)
def handle_order_recalculation(sender, **kwargs):
    """Recalculate totals when another app changes something pricing depends on."""
    order = kwargs.get("order")
    if order:
        from .services import OrderCalculationService

        OrderCalculationService.recalculate_order_totals(order)

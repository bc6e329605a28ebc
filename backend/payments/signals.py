from django.dispatch import Signal, receiver
import logging

logger = logging.getLogger(__name__)

# Custom payment signals
# payment_completed(sender=Payment, payment, order): fired after the settling transaction commits
payment_completed = Signal()


@receiver(payment_completed)
def log_payment_completed(sender, payment, order, **kwargs):
    if payment.change_unrepresentable:
        logger.warning(
            f"Order {order.order_number}: {payment.change_unrepresentable} of the change "
            "cannot be expressed in notes and coins"
        )

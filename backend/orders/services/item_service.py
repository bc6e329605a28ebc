from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping
import logging

from django.db import transaction
from django.utils import timezone

from core_backend.errors import ConflictError, ValidationFailed
from orders.models import Order, OrderItem
from orders.services.calculation_service import OrderCalculationService
from orders.services.order_service import OrderService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductRef:
    """The product fields an order line snapshots when it is added."""

    id: str
    name: str
    price: Decimal
    code: str = ""

    @classmethod
    def coerce(cls, product: Any) -> "ProductRef":
        """Accept a ProductRef, a catalog model instance or a mapping."""
        if isinstance(product, cls):
            return product

        def read(name, default=None):
            if isinstance(product, Mapping):
                return product.get(name, default)
            return getattr(product, name, default)

        product_id = read("id")
        name = read("name")
        if product_id in (None, "") or not name:
            raise ValidationFailed("A product needs an id and a name.", field="product")
        try:
            price = Decimal(str(read("price")))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationFailed(f"'{name}' has no valid price.", field="price")
        if price < 0:
            raise ValidationFailed(f"'{name}' cannot have a negative price.", field="price")
        return cls(id=str(product_id), name=str(name), price=price, code=str(read("code") or ""))


class OrderItemService:
    """Service for managing order items - adding, updating, removing, cancelling."""

    @staticmethod
    def _check_quantity(quantity) -> int:
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            raise ValidationFailed("Quantity must be a whole number.", field="quantity")
        return quantity

    @staticmethod
    def _after_change(order: Order) -> Order:
        OrderCalculationService.recalculate_order_totals(order)
        return OrderService.touch(order)

    @staticmethod
    @transaction.atomic
    def add_item(order: Order, product: Any, quantity: int = 1, special_instructions: str = "") -> OrderItem:
        """
        Add a product to an order.

        If a pending line for the same product (and the same kitchen notes)
        exists, its quantity is increased instead of creating a duplicate.
        Name, code and price are snapshotted so later catalog edits never
        alter the bill.

        Returns:
            OrderItem: The created or updated line
        """
        product = ProductRef.coerce(product)
        quantity = OrderItemService._check_quantity(quantity)
        if quantity < 1:
            raise ValidationFailed("Quantity must be at least 1.", field="quantity")
        special_instructions = (special_instructions or "").strip()

        order = OrderService.lock(order)
        OrderService.ensure_open(order, "add items to")

        item = (
            OrderItem.objects.select_for_update()
            .filter(
                order=order,
                product_id=product.id,
                status=OrderItem.ItemStatus.PENDING,
                special_instructions=special_instructions,
            )
            .first()
        )
        if item:
            item.quantity += quantity
            item.refresh_total()
            item.save(update_fields=["quantity", "total_price"])
            logger.debug(f"Order {order.order_number}: merged {quantity} x {product.name} (now {item.quantity})")
        else:
            item = OrderItem(
                organization_id=order.organization_id,
                order=order,
                product_id=product.id,
                product_name=product.name,
                product_code=product.code,
                unit_price=product.price,
                quantity=quantity,
                special_instructions=special_instructions,
            )
            item.refresh_total()
            item.save()
            logger.debug(f"Order {order.order_number}: added {quantity} x {product.name}")

        OrderItemService._after_change(order)
        return item

    @staticmethod
    @transaction.atomic
    def update_quantity(item: OrderItem, quantity: int):
        """
        Set a pending line's quantity. Zero or less removes the line.

        Returns:
            The updated OrderItem, or None when the line was removed
        """
        quantity = OrderItemService._check_quantity(quantity)
        if quantity <= 0:
            OrderItemService.remove_item(item)
            return None

        item = OrderItem.objects.select_for_update().get(pk=item.pk)
        order = OrderService.lock(item.order)
        OrderService.ensure_open(order)
        if item.status != OrderItem.ItemStatus.PENDING:
            raise ConflictError(
                f"'{item.product_name}' was already sent to the kitchen; its quantity can no longer change.",
                resource=item,
            )

        item.quantity = quantity
        item.refresh_total()
        item.save(update_fields=["quantity", "total_price"])
        OrderItemService._after_change(order)
        return item

    @staticmethod
    @transaction.atomic
    def remove_item(item: OrderItem) -> Order:
        """
        Delete a line that has not been sent yet. Anything already sent must
        be cancelled instead so the kitchen history stays intact.
        """
        item = OrderItem.objects.select_for_update().get(pk=item.pk)
        order = OrderService.lock(item.order)
        OrderService.ensure_open(order)
        if item.status != OrderItem.ItemStatus.PENDING:
            raise ConflictError(
                f"'{item.product_name}' was already sent to the kitchen; cancel it instead of removing it.",
                resource=item,
            )

        logger.debug(f"Order {order.order_number}: removed {item.quantity} x {item.product_name}")
        item.delete()
        return OrderItemService._after_change(order)

    @staticmethod
    @transaction.atomic
    def cancel_item(item: OrderItem, reason: str) -> OrderItem:
        """
        Cancel a pending or sent line, keeping it for the audit trail.
        Lines already being prepared need a manager override and are refused.
        """
        if not reason or not str(reason).strip():
            raise ValidationFailed("A reason is required to cancel an item.", field="reason")

        item = OrderItem.objects.select_for_update().get(pk=item.pk)
        order = OrderService.lock(item.order)
        OrderService.ensure_open(order)
        if item.status == OrderItem.ItemStatus.CANCELLED:
            raise ConflictError(f"'{item.product_name}' is already cancelled.", resource=item)
        if item.status not in (OrderItem.ItemStatus.PENDING, OrderItem.ItemStatus.SENT):
            raise ConflictError(
                f"'{item.product_name}' is already {item.get_status_display().lower()}; "
                "a manager override is required to cancel it.",
                resource=item,
            )

        old_status = item.status
        item.status = OrderItem.ItemStatus.CANCELLED
        item.cancellation_reason = reason.strip()
        item.status_changed_at = timezone.now()
        item.save(update_fields=["status", "cancellation_reason", "status_changed_at"])

        OrderItemService._after_change(order)
        if old_status == OrderItem.ItemStatus.SENT:
            # The remaining fired items may all be further along
            OrderService.sync_status_from_items(order)
        logger.info(
            f"Order {order.order_number}: cancelled {item.quantity} x {item.product_name} "
            f"(was {old_status}): {item.cancellation_reason}"
        )
        return item

from typing import Iterable, Optional
import logging

from django.db import transaction
from django.utils import timezone

from core_backend.errors import ConflictError, ValidationFailed
from orders.models import Order, OrderItem
from orders.signals import notify_order_changed

logger = logging.getLogger(__name__)


class OrderService:
    """Core service for order lifecycle management - creating, advancing, cancelling orders."""

    # Valid status transitions for the order state machine. PAID is absent on
    # purpose: only PaymentService may set it, through mark_paid().
    VALID_STATUS_TRANSITIONS = {
        Order.OrderStatus.DRAFT: [
            Order.OrderStatus.SENT,
            Order.OrderStatus.CANCELLED,
        ],
        Order.OrderStatus.SENT: [
            Order.OrderStatus.PREPARING,
            Order.OrderStatus.READY,
            Order.OrderStatus.SERVED,
            Order.OrderStatus.CANCELLED,
        ],
        Order.OrderStatus.PREPARING: [
            Order.OrderStatus.READY,
            Order.OrderStatus.SERVED,
            Order.OrderStatus.CANCELLED,
        ],
        Order.OrderStatus.READY: [
            Order.OrderStatus.SERVED,
            Order.OrderStatus.CANCELLED,
        ],
        Order.OrderStatus.SERVED: [
            Order.OrderStatus.CANCELLED,
        ],
        Order.OrderStatus.PAID: [],
        Order.OrderStatus.CANCELLED: [],
    }

    # Item stages that can no longer be cancelled without a manager override
    KITCHEN_COMMITTED_STATUSES = (
        OrderItem.ItemStatus.PREPARING,
        OrderItem.ItemStatus.READY,
        OrderItem.ItemStatus.SERVED,
    )

    @staticmethod
    def lock(order: Order) -> Order:
        """Re-read the order row under a row lock; use inside transaction.atomic."""
        return Order.objects.select_for_update().get(pk=order.pk)

    @staticmethod
    def touch(order: Order, fields: Iterable[str] = ()) -> Order:
        """Bump the version and save the given fields with it, then announce the change."""
        order.bump_version()
        order.save(update_fields=list(dict.fromkeys(list(fields) + ["version", "updated_at"])))
        notify_order_changed(order)
        return order

    @staticmethod
    def ensure_open(order: Order, action: str = "modify") -> None:
        if order.is_terminal:
            raise ConflictError(
                f"Cannot {action} order {order.order_number}: it is already {order.get_status_display().lower()}.",
                resource=order,
            )

    @staticmethod
    def active_order_for_table(table) -> Optional[Order]:
        return (
            Order.objects.filter(table=table)
            .exclude(status__in=Order.TERMINAL_STATUSES)
            .order_by("-created_at")
            .first()
        )

    @staticmethod
    @transaction.atomic
    def create_order(
        outlet,
        customer_count: int = 1,
        table=None,
        order_type: str = None,
        cashier=None,
        server=None,
        guest_id: str = None,
        folio_id: str = None,
        notes: str = "",
    ) -> Order:
        """
        Open a new, empty order.

        Enforces one active order per table: seating a table that already
        carries a non-terminal order raises ConflictError naming that order.

        Args:
            outlet: Outlet the order belongs to (REQUIRED)
            customer_count: Number of covers, at least 1
            table: Optional table to seat; defaults the type to dine-in
            order_type: Explicit order type (dine_in, takeaway, delivery, room_service)
            cashier: User opening the order
            server: Floor server; defaults to the table's assigned server
            guest_id, folio_id: Hotel guest and folio for room service / room charges
        """
        from tables.models import Table
        from tables.services import TableService

        if outlet is None:
            raise ValidationFailed("An outlet is required to open an order.", field="outlet")
        try:
            customer_count = int(customer_count)
        except (TypeError, ValueError):
            raise ValidationFailed("Customer count must be a whole number.", field="customer_count")
        if customer_count < 1:
            raise ValidationFailed("Customer count must be at least 1.", field="customer_count")
        if order_type and order_type not in Order.OrderType.values:
            raise ValidationFailed(f"'{order_type}' is not a valid order type.", field="order_type")

        if table is not None:
            table = Table.objects.select_for_update().get(pk=table.pk)
            if table.outlet_id != outlet.pk:
                raise ValidationFailed(f"Table {table.number} belongs to another outlet.", field="table")
            if table.is_merge_member:
                raise ConflictError(
                    f"Table {table.number} is merged into another table; open the order on the primary table.",
                    resource=table,
                )
            if table.status == Table.TableStatus.OUT_OF_ORDER:
                raise ConflictError(f"Table {table.number} is out of order.", resource=table)

            active = OrderService.active_order_for_table(table)
            if active:
                raise ConflictError(
                    f"Table {table.number} already has an active order ({active.order_number}).",
                    resource=active,
                )

        if not order_type:
            order_type = Order.OrderType.DINE_IN if table is not None else Order.OrderType.TAKEAWAY

        order = Order.objects.create(
            organization_id=outlet.organization_id,
            outlet=outlet,
            table=table,
            order_type=order_type,
            customer_count=customer_count,
            cashier=cashier,
            server=server or (table.server if table is not None else None),
            guest_id=guest_id or None,
            folio_id=folio_id or None,
            notes=notes or "",
        )

        if table is not None:
            TableService.seat(table)

        notify_order_changed(order)
        logger.info(
            f"Order {order.order_number} opened at {outlet.code}"
            + (f" on table {table.number}" if table is not None else "")
            + f" for {customer_count} covers"
        )
        return order

    @staticmethod
    def _validate_transition(current_status: str, target_status: str) -> bool:
        return target_status in OrderService.VALID_STATUS_TRANSITIONS.get(current_status, [])

    @staticmethod
    @transaction.atomic
    def update_order_status(order: Order, new_status: str) -> Order:
        """
        Move an order forward through its status lattice.
        Paid is refused here; cancellation is routed through cancel_order.
        """
        if new_status not in Order.OrderStatus.values:
            raise ValidationFailed(f"'{new_status}' is not a valid order status.", field="status")
        if new_status == Order.OrderStatus.PAID:
            raise ConflictError("Orders are marked paid only by settling a payment.", resource=order)
        if new_status == Order.OrderStatus.CANCELLED:
            return OrderService.cancel_order(order, reason="Cancelled")

        order = OrderService.lock(order)
        if order.status == new_status:
            return order
        if not OrderService._validate_transition(order.status, new_status):
            raise ConflictError(
                f"Cannot move order {order.order_number} from {order.status} to {new_status}.",
                resource=order,
            )

        old_status = order.status
        order.status = new_status
        fields = ["status"]
        if new_status == Order.OrderStatus.SENT and order.sent_at is None:
            order.sent_at = timezone.now()
            fields.append("sent_at")
        OrderService.touch(order, fields)
        logger.info(f"Order {order.order_number}: status {old_status} -> {new_status}")
        return order

    @staticmethod
    @transaction.atomic
    def sync_status_from_items(order: Order) -> Order:
        """
        Derive the order status from its fired items: the order sits at the
        least advanced stage among sent-or-later, non-cancelled items. Only
        ever moves the order forward.
        """
        order = OrderService.lock(order)
        if order.is_terminal:
            return order

        statuses = list(
            OrderItem.objects.filter(order=order)
            .exclude(status__in=[OrderItem.ItemStatus.PENDING, OrderItem.ItemStatus.CANCELLED])
            .values_list("status", flat=True)
        )
        if not statuses:
            return order

        item_rank = {status: index for index, status in enumerate(OrderItem.STATUS_SEQUENCE)}
        slowest = min(statuses, key=lambda s: item_rank[s])
        target = Order.OrderStatus(slowest)

        order_rank = {status: index for index, status in enumerate(Order.STATUS_SEQUENCE)}
        if order_rank[target] <= order_rank[order.status]:
            return order

        old_status = order.status
        order.status = target
        fields = ["status"]
        if order.sent_at is None:
            order.sent_at = timezone.now()
            fields.append("sent_at")
        OrderService.touch(order, fields)
        logger.info(f"Order {order.order_number}: status {old_status} -> {target} (from items)")
        return order

    @staticmethod
    @transaction.atomic
    def cancel_order(order: Order, reason: str) -> Order:
        """
        Cancel an open order. Pending and sent lines are cancelled with it and
        kept for the audit trail; food already in preparation or served
        requires a manager override and is refused here.
        """
        from orders.services.calculation_service import OrderCalculationService
        from tables.services import TableService

        if not reason or not str(reason).strip():
            raise ValidationFailed("A reason is required to cancel an order.", field="reason")

        order = OrderService.lock(order)
        OrderService.ensure_open(order, "cancel")

        items = list(OrderItem.objects.select_for_update().filter(order=order))
        committed = [i for i in items if i.status in OrderService.KITCHEN_COMMITTED_STATUSES]
        if committed:
            names = ", ".join(sorted({i.product_name for i in committed}))
            raise ConflictError(
                f"Cannot cancel order {order.order_number}: {names} already in preparation or served. "
                "A manager override is required.",
                resource=order,
            )

        now = timezone.now()
        was_fired = False
        for item in items:
            if item.status == OrderItem.ItemStatus.CANCELLED:
                continue
            was_fired = was_fired or item.status == OrderItem.ItemStatus.SENT
            item.status = OrderItem.ItemStatus.CANCELLED
            item.cancellation_reason = reason.strip()
            item.status_changed_at = now
            item.save(update_fields=["status", "cancellation_reason", "status_changed_at"])

        old_status = order.status
        order.status = Order.OrderStatus.CANCELLED
        order.cancelled_at = now
        order.cancellation_reason = reason.strip()
        OrderCalculationService.recalculate_order_totals(order)
        OrderService.touch(order, ["status", "cancelled_at", "cancellation_reason"])

        if order.table_id:
            TableService.release(order.table, needs_cleaning=was_fired)

        logger.info(f"Order {order.order_number}: cancelled from {old_status} ({reason.strip()})")
        return order

    @staticmethod
    @transaction.atomic
    def update_customer_count(order: Order, customer_count: int) -> Order:
        try:
            customer_count = int(customer_count)
        except (TypeError, ValueError):
            raise ValidationFailed("Customer count must be a whole number.", field="customer_count")
        if customer_count < 1:
            raise ValidationFailed("Customer count must be at least 1.", field="customer_count")

        order = OrderService.lock(order)
        OrderService.ensure_open(order)
        order.customer_count = customer_count
        return OrderService.touch(order, ["customer_count"])

    @staticmethod
    @transaction.atomic
    def transfer_table(order: Order, table) -> Order:
        """
        Move an open order to another table. The destination must be free;
        the old table becomes available and the destination is seated with
        the order's server carried over.
        """
        from tables.models import Table
        from tables.services import TableService

        order = OrderService.lock(order)
        OrderService.ensure_open(order, "transfer")

        destination = Table.objects.select_for_update().get(pk=table.pk)
        if destination.pk == order.table_id:
            raise ValidationFailed(f"Order {order.order_number} is already at table {destination.number}.", field="table")
        if destination.outlet_id != order.outlet_id:
            raise ValidationFailed(f"Table {destination.number} belongs to another outlet.", field="table")
        if destination.status != Table.TableStatus.AVAILABLE or destination.is_merge_member:
            raise ConflictError(
                f"Table {destination.number} is not available for a transfer.", resource=destination
            )
        active = OrderService.active_order_for_table(destination)
        if active:
            raise ConflictError(
                f"Table {destination.number} already has an active order ({active.order_number}).",
                resource=active,
            )

        source = order.table
        order.table = destination
        fields = ["table"]
        if order.order_type != Order.OrderType.DINE_IN:
            order.order_type = Order.OrderType.DINE_IN
            fields.append("order_type")
        OrderService.touch(order, fields)

        if source is not None:
            if source.server_id and not destination.server_id:
                Table.objects.filter(pk=destination.pk).update(server_id=source.server_id)
            TableService.release(source, needs_cleaning=False)
        TableService.seat(destination)

        logger.info(
            f"Order {order.order_number}: transferred "
            f"{'from table ' + source.number + ' ' if source is not None else ''}to table {destination.number}"
        )
        return order

    @staticmethod
    def mark_paid(order: Order) -> Order:
        """
        Close an order as paid. Reserved for PaymentService.settle, which calls
        it inside its final transaction once every settlement is recorded.
        """
        OrderService.ensure_open(order, "pay")

        old_status = order.status
        order.status = Order.OrderStatus.PAID
        order.paid_at = timezone.now()
        OrderService.touch(order, ["status", "paid_at"])
        logger.info(f"Order {order.order_number}: status {old_status} -> paid")
        return order

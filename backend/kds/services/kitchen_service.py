from dataclasses import dataclass, field
from itertools import groupby
from typing import List, Optional, Tuple
import logging

from django.db import transaction
from django.db.models import Max
from django.utils import timezone

from core_backend.errors import ValidationFailed
from orders.models import Order, OrderItem
from orders.services import OrderService

from ..events.publishers import KDSEventPublisher

logger = logging.getLogger(__name__)

ITEM_RANK = {status: index for index, status in enumerate(OrderItem.STATUS_SEQUENCE)}

# Stages a whole round can be moved to by a kitchen signal
ROUND_TARGETS = (
    OrderItem.ItemStatus.PREPARING,
    OrderItem.ItemStatus.READY,
    OrderItem.ItemStatus.SERVED,
)


@dataclass(frozen=True)
class FireResult:
    """Outcome of sending an order to the kitchen."""

    order_id: object
    fire_round: Optional[int] = None
    items: Tuple[OrderItem, ...] = ()

    @property
    def nothing_to_send(self) -> bool:
        return not self.items


@dataclass(frozen=True)
class TicketLine:
    item_id: object
    product_name: str
    quantity: int
    special_instructions: str
    status: str


@dataclass(frozen=True)
class KitchenTicket:
    """One fired round of one order, as a kitchen display shows it."""

    order_id: object
    order_number: str
    table_number: Optional[str]
    fire_round: int
    status: str
    items: Tuple[TicketLine, ...] = field(default_factory=tuple)


class KitchenService:
    """Centralized business logic between the register and the kitchen"""

    @staticmethod
    @transaction.atomic
    def send_to_kitchen(order: Order) -> FireResult:
        """
        Fire every pending line of an order as a new round.

        The round number is one more than the highest round already fired on
        the order. Sending an order with nothing pending writes nothing and
        returns a result with nothing_to_send set, so a double tap on the
        send button never creates an empty round.
        """
        order = OrderService.lock(order)
        OrderService.ensure_open(order, "send")

        pending = list(
            OrderItem.objects.select_for_update().filter(order=order, status=OrderItem.ItemStatus.PENDING)
        )
        if not pending:
            logger.debug(f"Order {order.order_number}: nothing pending to send")
            return FireResult(order_id=order.pk)

        last_round = OrderItem.objects.filter(order=order).aggregate(last=Max("fire_round"))["last"] or 0
        fire_round = last_round + 1
        now = timezone.now()

        for item in pending:
            item.status = OrderItem.ItemStatus.SENT
            item.fire_round = fire_round
            item.sent_at = now
            item.status_changed_at = now
        OrderItem.objects.bulk_update(pending, ["status", "fire_round", "sent_at", "status_changed_at"])

        fields = []
        if order.status == Order.OrderStatus.DRAFT:
            order.status = Order.OrderStatus.SENT
            fields.append("status")
        if order.sent_at is None:
            order.sent_at = now
            fields.append("sent_at")
        OrderService.touch(order, fields)

        KDSEventPublisher.round_fired(order, fire_round, pending)
        logger.info(f"Order {order.order_number}: fired round {fire_round} ({len(pending)} items)")
        return FireResult(order_id=order.pk, fire_round=fire_round, items=tuple(pending))

    @staticmethod
    @transaction.atomic
    def advance_item(item: OrderItem, status: str) -> OrderItem:
        """
        Move one fired item a single step along sent -> preparing -> ready -> served.
        Pending items are fired with send_to_kitchen; cancellations go through
        OrderItemService.cancel_item.
        """
        if status not in OrderItem.ItemStatus.values:
            raise ValidationFailed(f"'{status}' is not a valid item status.", field="status")

        item = OrderItem.objects.select_for_update().get(pk=item.pk)
        order = OrderService.lock(item.order)

        if item.is_terminal:
            raise ValidationFailed(
                f"'{item.product_name}' is already {item.get_status_display().lower()} and cannot change.",
                field="status",
            )
        if status == OrderItem.ItemStatus.CANCELLED:
            raise ValidationFailed("Cancel items from the order, not from the kitchen.", field="status")
        if item.status == OrderItem.ItemStatus.PENDING:
            raise ValidationFailed(
                f"'{item.product_name}' has not been sent yet; send the order to the kitchen first.",
                field="status",
            )
        if ITEM_RANK[status] != ITEM_RANK[item.status] + 1:
            raise ValidationFailed(
                f"'{item.product_name}' cannot move from {item.status} to {status}.", field="status"
            )

        old_status = item.status
        item.status = status
        item.status_changed_at = timezone.now()
        item.save(update_fields=["status", "status_changed_at"])

        OrderService.touch(order)
        OrderService.sync_status_from_items(order)
        KDSEventPublisher.item_status_changed(item, old_status, status)
        return item

    @staticmethod
    @transaction.atomic
    def advance_round(order: Order, fire_round: int, status: str) -> List[OrderItem]:
        """
        Relay a kitchen signal for a whole round ("round 2 is ready").
        Every live item of the round behind the target stage is moved to it;
        cancelled items and items already at or past the target are skipped.

        Returns:
            The items that changed
        """
        if status not in ROUND_TARGETS:
            raise ValidationFailed(
                f"A round can only be marked {', '.join(ROUND_TARGETS[:-1])} or {ROUND_TARGETS[-1]}.",
                field="status",
            )

        order = OrderService.lock(order)
        items = list(OrderItem.objects.select_for_update().filter(order=order, fire_round=fire_round))
        if not items:
            raise ValidationFailed(
                f"Order {order.order_number} has no round {fire_round}.", field="fire_round"
            )

        now = timezone.now()
        changed = []
        for item in items:
            if item.status == OrderItem.ItemStatus.CANCELLED or ITEM_RANK[item.status] >= ITEM_RANK[status]:
                continue
            old_status = item.status
            item.status = status
            item.status_changed_at = now
            changed.append((item, old_status))

        if not changed:
            return []

        OrderItem.objects.bulk_update([item for item, _ in changed], ["status", "status_changed_at"])
        OrderService.touch(order)
        OrderService.sync_status_from_items(order)
        for item, old_status in changed:
            KDSEventPublisher.item_status_changed(item, old_status, status)

        logger.info(f"Order {order.order_number}: round {fire_round} -> {status} ({len(changed)} items)")
        return [item for item, _ in changed]

    @staticmethod
    def kitchen_tickets(order: Order = None, outlet=None, include_served: bool = False) -> List[KitchenTicket]:
        """
        Kitchen display feed: one ticket per fired round, oldest first.
        A round's status is the least advanced stage among its live items;
        fully served rounds are left out unless include_served is set.
        """
        if order is None and outlet is None:
            raise ValidationFailed("Pass an order or an outlet to list kitchen tickets.")

        items = (
            OrderItem.objects.select_related("order", "order__table")
            .filter(fire_round__isnull=False)
            .exclude(status=OrderItem.ItemStatus.CANCELLED)
            .exclude(order__status=Order.OrderStatus.CANCELLED)
        )
        if order is not None:
            items = items.filter(order=order)
        if outlet is not None:
            items = items.filter(order__outlet=outlet)
        items = items.order_by("order__sent_at", "order_id", "fire_round", "created_at", "id")

        tickets = []
        for (order_id, fire_round), group in groupby(items, key=lambda i: (i.order_id, i.fire_round)):
            lines = list(group)
            status = min((line.status for line in lines), key=lambda s: ITEM_RANK[s])
            if status == OrderItem.ItemStatus.SERVED and not include_served:
                continue
            parent = lines[0].order
            tickets.append(
                KitchenTicket(
                    order_id=order_id,
                    order_number=parent.order_number,
                    table_number=parent.table.number if parent.table_id else None,
                    fire_round=fire_round,
                    status=status,
                    items=tuple(
                        TicketLine(
                            item_id=line.id,
                            product_name=line.product_name,
                            quantity=line.quantity,
                            special_instructions=line.special_instructions,
                            status=line.status,
                        )
                        for line in lines
                    ),
                )
            )
        return tickets

"""
Immutable views of an order as the register last saw it committed.

The session hands these to the UI instead of live model instances so a
failed write can never leave half-applied state on screen.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from .models import Order, OrderItem


@dataclass(frozen=True)
class ItemSnapshot:
    id: object
    product_id: str
    product_name: str
    product_code: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    special_instructions: str
    status: str
    fire_round: Optional[int]
    cancellation_reason: str = ""

    @classmethod
    def from_item(cls, item: OrderItem) -> "ItemSnapshot":
        return cls(
            id=item.id,
            product_id=item.product_id,
            product_name=item.product_name,
            product_code=item.product_code,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
            special_instructions=item.special_instructions,
            status=item.status,
            fire_round=item.fire_round,
            cancellation_reason=item.cancellation_reason,
        )


@dataclass(frozen=True)
class OrderSnapshot:
    id: object
    order_number: str
    outlet_id: object
    order_type: str
    status: str
    version: int
    customer_count: int
    currency: str
    discount_type: str
    discount_value: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    service_charge: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    table_id: Optional[object] = None
    table_number: Optional[str] = None
    guest_id: Optional[str] = None
    folio_id: Optional[str] = None
    items: Tuple[ItemSnapshot, ...] = ()

    @classmethod
    def from_order(cls, order: Order) -> "OrderSnapshot":
        """Build a snapshot from the committed row; items are re-read."""
        return cls(
            id=order.id,
            order_number=order.order_number,
            outlet_id=order.outlet_id,
            order_type=order.order_type,
            status=order.status,
            version=order.version,
            customer_count=order.customer_count,
            currency=order.currency,
            discount_type=order.discount_type,
            discount_value=order.discount_value,
            subtotal=order.subtotal,
            discount_amount=order.discount_amount,
            service_charge=order.service_charge,
            tax_amount=order.tax_amount,
            total_amount=order.total_amount,
            table_id=order.table_id,
            table_number=order.table.number if order.table_id else None,
            guest_id=order.guest_id,
            folio_id=order.folio_id,
            items=tuple(ItemSnapshot.from_item(item) for item in order.items.all()),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in Order.TERMINAL_STATUSES

    @property
    def active_items(self) -> Tuple[ItemSnapshot, ...]:
        return tuple(i for i in self.items if i.status != OrderItem.ItemStatus.CANCELLED)

    def item(self, item_id) -> Optional[ItemSnapshot]:
        return next((i for i in self.items if str(i.id) == str(item_id)), None)

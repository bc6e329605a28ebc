"""
Order financial calculators.

``compute_totals`` is the pricing engine: a pure function from line items,
a discount specification and the outlet's rates to a ``Totals`` value.
``OrderCalculator`` adapts a persisted Order to it.

Canonical order:
    1. subtotal          = sum of non-cancelled line totals
    2. discount          = clamp(percentage or amount, 0, subtotal)
    3. adjusted_subtotal = subtotal - discount
    4. service_charge    = adjusted_subtotal * service_charge_rate
    5. tax               = (adjusted_subtotal + service_charge) * tax_rate
    6. total             = adjusted_subtotal + service_charge + tax

Each derived value is rounded to the currency's minor unit at its own step.

Usage:
    from orders.calculators import compute_totals, DiscountSpec
    totals = compute_totals(items, DiscountSpec.percentage(10), "0.10", "0.18", "XOF")
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping

from core_backend.errors import ValidationFailed
from payments.money import Amount, quantize, to_decimal

ZERO = Decimal("0")
HUNDRED = Decimal("100")

DISCOUNT_NONE = "none"
DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_AMOUNT = "amount"
DISCOUNT_TYPES = (DISCOUNT_NONE, DISCOUNT_PERCENTAGE, DISCOUNT_AMOUNT)

CANCELLED = "cancelled"


@dataclass(frozen=True)
class DiscountSpec:
    """Discount requested on an order: none, a percentage, or a fixed amount."""

    type: str = DISCOUNT_NONE
    value: Decimal = ZERO

    def __post_init__(self):
        if self.type not in DISCOUNT_TYPES:
            raise ValidationFailed(f"Unknown discount type '{self.type}'.", field="discount_type")
        object.__setattr__(self, "value", to_decimal(self.value))

    @classmethod
    def none(cls) -> "DiscountSpec":
        return cls()

    @classmethod
    def percentage(cls, value: Amount) -> "DiscountSpec":
        return cls(DISCOUNT_PERCENTAGE, to_decimal(value))

    @classmethod
    def amount(cls, value: Amount) -> "DiscountSpec":
        return cls(DISCOUNT_AMOUNT, to_decimal(value))

    @classmethod
    def from_raw(cls, discount_type, value=None) -> "DiscountSpec":
        """Build from stored or already-validated fields; blank type means no discount."""
        if not discount_type or discount_type == DISCOUNT_NONE:
            return cls()
        return cls(discount_type, to_decimal(value if value is not None else ZERO))

    def amount_for(self, subtotal: Decimal) -> Decimal:
        """Discount on ``subtotal`` before rounding, clamped to [0, subtotal]."""
        if self.type == DISCOUNT_PERCENTAGE:
            percent = min(max(self.value, ZERO), HUNDRED)
            raw = subtotal * percent / HUNDRED
        elif self.type == DISCOUNT_AMOUNT:
            raw = self.value
        else:
            raw = ZERO
        return min(max(raw, ZERO), subtotal)


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount: Decimal
    adjusted_subtotal: Decimal
    service_charge: Decimal
    tax: Decimal
    total: Decimal

    def as_order_fields(self) -> Dict[str, Decimal]:
        """Field names as stored on Order."""
        return {
            "subtotal": self.subtotal,
            "discount_amount": self.discount,
            "service_charge": self.service_charge,
            "tax_amount": self.tax,
            "total_amount": self.total,
        }


def _line_value(item: Any, name: str, default=None):
    if isinstance(item, Mapping):
        return item.get(name, default)
    return getattr(item, name, default)


def _line_total(item: Any) -> Decimal:
    total = _line_value(item, "total_price")
    if total is None:
        total = to_decimal(_line_value(item, "unit_price", ZERO)) * int(_line_value(item, "quantity", 0))
    return to_decimal(total)


def compute_totals(
    items: Iterable[Any],
    discount: DiscountSpec = None,
    service_charge_rate: Amount = ZERO,
    tax_rate: Amount = ZERO,
    currency: str = "XOF",
) -> Totals:
    """
    Turn line items and a discount into rounded totals.

    Items may be model instances or mappings exposing ``total_price`` (or
    ``unit_price`` and ``quantity``) and ``status``; cancelled lines are
    skipped. Raises ValidationFailed only for negative rates.
    """
    discount = discount or DiscountSpec.none()
    service_charge_rate = to_decimal(service_charge_rate)
    tax_rate = to_decimal(tax_rate)
    if service_charge_rate < 0:
        raise ValidationFailed("Service charge rate cannot be negative.", field="service_charge_rate")
    if tax_rate < 0:
        raise ValidationFailed("Tax rate cannot be negative.", field="tax_rate")

    subtotal = quantize(
        currency,
        sum(
            (_line_total(item) for item in items if _line_value(item, "status") != CANCELLED),
            ZERO,
        ),
    )
    discount_amount = quantize(currency, discount.amount_for(subtotal))
    adjusted_subtotal = subtotal - discount_amount
    service_charge = quantize(currency, adjusted_subtotal * service_charge_rate)
    tax = quantize(currency, (adjusted_subtotal + service_charge) * tax_rate)
    total = adjusted_subtotal + service_charge + tax

    return Totals(
        subtotal=subtotal,
        discount=discount_amount,
        adjusted_subtotal=adjusted_subtotal,
        service_charge=service_charge,
        tax=tax,
        total=total,
    )


class OrderCalculator:
    """
    Applies the pricing engine to a persisted Order using its outlet's
    rates and currency.
    """

    def __init__(self, order: "Order"):
        self.order = order

    @property
    def discount(self) -> DiscountSpec:
        return DiscountSpec.from_raw(self.order.discount_type, self.order.discount_value)

    def calculate_totals(self) -> Totals:
        outlet = self.order.outlet
        return compute_totals(
            self.order.items.all(),
            self.discount,
            outlet.service_charge_rate,
            outlet.tax_rate,
            outlet.currency,
        )

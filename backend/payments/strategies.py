from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
import logging

from core_backend.errors import (
    ChargeDeclined,
    ErrorCode,
    PaymentRejected,
    PersistenceUnavailable,
    ValidationFailed,
)
from outlets.config import engine_settings

from .folio import get_folio_gateway
from .models import PaymentMethod, Settlement
from .money import format_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationResult:
    """Typed verdict on a tender. Business failures are values, not exceptions."""

    ok: bool
    code: Optional[str] = None
    message: str = ""

    @classmethod
    def passed(cls) -> "ValidationResult":
        return cls(ok=True)

    @classmethod
    def failed(cls, code, message: str) -> "ValidationResult":
        return cls(ok=False, code=str(code), message=message)

    def raise_for_error(self) -> None:
        if self.ok:
            return
        if self.code == ErrorCode.VALIDATION:
            raise ValidationFailed(self.message)
        raise PaymentRejected(self.message, code=self.code)

    def __bool__(self):
        return self.ok


class PaymentStrategy(ABC):
    """
    The Abstract Base Class for a payment strategy.
    Defines the common interface for all payment methods.
    """

    method: str = None

    @property
    def is_cash_like(self) -> bool:
        return self.method in engine_settings.cash_like_methods

    @property
    def requires_reference(self) -> bool:
        return self.method in engine_settings.reference_required_methods

    def validate(
        self, amount_tendered: Decimal, amount_due: Decimal, reference: str = None, currency: str = "XOF"
    ) -> ValidationResult:
        """
        Check one tender against the amount it must cover. Cash-like methods
        may overpay (the difference becomes change); every other instrument
        is taken for exactly the amount due.
        """
        label = PaymentMethod(self.method).label
        if amount_tendered < 0:
            return ValidationResult.failed(ErrorCode.VALIDATION, "The amount tendered cannot be negative.")

        if self.is_cash_like:
            if amount_tendered < amount_due:
                return ValidationResult.failed(
                    ErrorCode.INSUFFICIENT_FUNDS,
                    f"{label} tendered ({format_money(currency, amount_tendered)}) is less than "
                    f"the amount due ({format_money(currency, amount_due)}).",
                )
        elif amount_tendered != amount_due:
            return ValidationResult.failed(
                ErrorCode.VALIDATION,
                f"{label} payments must be for exactly {format_money(currency, amount_due)}.",
            )

        if self.requires_reference and not (reference or "").strip():
            return ValidationResult.failed(
                ErrorCode.REFERENCE_REQUIRED,
                f"A transaction reference is required for {label.lower()} payments.",
            )
        return ValidationResult.passed()

    @abstractmethod
    def process(self, settlement: Settlement, idempotency_key: str) -> Settlement:
        """
        Collect the settlement's amount through this instrument. Called
        before the settlement row is saved; implementations may fill in
        provider fields such as external_charge_id.
        """
        pass


class CashPaymentStrategy(PaymentStrategy):
    """
    A simple strategy for handling cash payments.
    """

    method = PaymentMethod.CASH

    def process(self, settlement, idempotency_key):
        # Cash is collected at the register; nothing external to call.
        return settlement


class CardPaymentStrategy(PaymentStrategy):
    """
    Card taken on a standalone terminal; the register only records it.
    """

    method = PaymentMethod.CARD

    def process(self, settlement, idempotency_key):
        return settlement


class MobileMoneyPaymentStrategy(PaymentStrategy):
    """
    Mobile money transfer confirmed on the customer's phone. The operator
    reference is mandatory so the transfer can be reconciled later.
    """

    method = PaymentMethod.MOBILE_MONEY

    def process(self, settlement, idempotency_key):
        settlement.reference = settlement.reference.strip()
        return settlement


class RoomChargePaymentStrategy(PaymentStrategy):
    """
    Strategy for posting the bill to a hotel guest's folio.
    """

    method = PaymentMethod.ROOM_CHARGE

    def validate(self, amount_tendered, amount_due, reference=None, currency="XOF"):
        if not (reference or "").strip():
            return ValidationResult.failed(
                ErrorCode.REFERENCE_REQUIRED, "A guest folio is required to charge the bill to a room."
            )
        return super().validate(amount_tendered, amount_due, reference, currency)

    def process(self, settlement, idempotency_key):
        order = settlement.order
        folio_id = settlement.reference.strip()
        line_items = [
            {
                "description": item.product_name,
                "quantity": item.quantity,
                "unit_price": str(item.unit_price),
                "total": str(item.total_price),
            }
            for item in order.items.exclude(status="cancelled")
        ]

        try:
            result = get_folio_gateway().post_charge(
                folio_id=folio_id,
                amount=settlement.amount,
                line_items=line_items,
                idempotency_key=idempotency_key,
            )
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"Folio service unreachable for order {order.order_number}: {e}")
            raise PersistenceUnavailable(
                "The folio service could not be reached. The order is still open; retry the payment."
            )
        if not result.success:
            logger.warning(f"Folio {folio_id} declined charge for order {order.order_number}: {result.message}")
            raise ChargeDeclined(
                folio_id,
                message=f"The room charge to folio {folio_id} was declined"
                + (f": {result.message}" if result.message else "."),
            )

        settlement.external_charge_id = result.charge_id or ""
        return settlement

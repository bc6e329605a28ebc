from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Mapping, Optional
import logging

from django.db import transaction
from django.utils import timezone

from core_backend.errors import ChargeDeclined, ConflictError, ErrorCode, PaymentRejected, ValidationFailed
from orders.models import Order, OrderItem
from orders.services import OrderService
from outlets.config import engine_settings

from .denominations import change_breakdown
from .factories import PaymentStrategyFactory
from .models import Payment, PaymentMethod, Settlement
from .money import (
    allocate_minor,
    format_money,
    from_minor,
    is_whole_minor,
    quantize,
    to_decimal,
    to_minor,
    validate_minor_sum,
)
from .signals import payment_completed
from .strategies import ValidationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tender:
    """
    One instrument offered toward a bill.

    amount is the share of the bill it covers (None means the whole bill in
    single mode); amount_tendered is what was actually handed over and
    defaults to amount. Only cash-like tenders may exceed their amount.
    """

    method: str
    amount: Optional[Decimal] = None
    amount_tendered: Optional[Decimal] = None
    reference: str = ""

    @classmethod
    def coerce(cls, tender: Any) -> "Tender":
        if isinstance(tender, cls):
            return tender
        if isinstance(tender, Mapping):
            return cls(
                method=tender.get("method"),
                amount=tender.get("amount"),
                amount_tendered=tender.get("amount_tendered", tender.get("tendered")),
                reference=tender.get("reference") or "",
            )
        raise ValidationFailed("Each payment must name a method and an amount.", field="tenders")


def _parse_amount(value, field: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        amount = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationFailed(f"'{value}' is not a valid amount.", field=field)
    if not amount.is_finite():
        raise ValidationFailed(f"'{value}' is not a valid amount.", field=field)
    return amount


class PaymentService:
    """
    Payment Service with formal state transition management.
    This service centralizes settlement of orders and validates every state change.
    """

    # State transition map - defines valid transitions for Payment.PaymentStatus
    VALID_TRANSITIONS = {
        Payment.PaymentStatus.PENDING: [
            Payment.PaymentStatus.AWAITING_CHANGE,
            Payment.PaymentStatus.COMPLETED,
            Payment.PaymentStatus.FAILED,
        ],
        Payment.PaymentStatus.FAILED: [
            Payment.PaymentStatus.PENDING,  # Retried with the same attempt token
        ],
        Payment.PaymentStatus.AWAITING_CHANGE: [
            Payment.PaymentStatus.COMPLETED,
        ],
        Payment.PaymentStatus.COMPLETED: [],  # Terminal state
    }

    @staticmethod
    def _validate_transition(current_status: str, target_status: str) -> bool:
        valid_targets = PaymentService.VALID_TRANSITIONS.get(current_status, [])
        return target_status in valid_targets

    @staticmethod
    def _transition_payment_status(payment: Payment, target_status: str, fields: Iterable[str] = ()) -> Payment:
        """
        Safely transitions a payment to a new status with validation, saving
        any extra fields the caller changed alongside it.

        Raises:
            ConflictError: If transition is invalid
        """
        if not PaymentService._validate_transition(payment.status, target_status):
            raise ConflictError(
                f"Invalid payment transition from {payment.status} to {target_status}.",
                resource=payment,
            )

        old_status = payment.status
        payment.status = target_status
        payment.save(update_fields=list(dict.fromkeys(["status", "updated_at"] + list(fields))))

        logger.info(f"Payment {payment.id}: Status transition {old_status} -> {target_status}")
        return payment

    # ------------------------------------------------------------------
    # Validation (pure, never raises for business conditions)
    # ------------------------------------------------------------------

    @staticmethod
    def validate(method: str, amount_tendered, total, reference: str = None, currency: str = None) -> ValidationResult:
        """
        Check a single tender against the amount due.

        Returns a ValidationResult carrying VALIDATION, INSUFFICIENT_FUNDS or
        REFERENCE_REQUIRED on failure. A missing amount_tendered means "exactly
        the amount due" for non-cash methods.
        """
        currency = currency or engine_settings.default_currency
        try:
            strategy = PaymentStrategyFactory.get_strategy(method)
            total = _parse_amount(total, "total")
            tendered = _parse_amount(amount_tendered, "amount_tendered")
        except ValidationFailed as e:
            return ValidationResult.failed(ErrorCode.VALIDATION, e.message)

        if total is None or total < 0:
            return ValidationResult.failed(ErrorCode.VALIDATION, "The amount due must be zero or more.")
        if tendered is None:
            if strategy.is_cash_like:
                return ValidationResult.failed(ErrorCode.VALIDATION, "Enter the amount of cash received.")
            tendered = total
        for amount in (total, tendered):
            if not is_whole_minor(currency, amount):
                return ValidationResult.failed(
                    ErrorCode.VALIDATION, f"{amount} is finer than the smallest unit of {currency}."
                )

        return strategy.validate(tendered, total, reference=reference, currency=currency)

    @staticmethod
    def validate_split(tenders: Iterable[Any], total, currency: str = None) -> ValidationResult:
        """
        Check a split bill: the instrument amounts must add up to the total
        within the configured epsilon, and each instrument must be valid for
        its own share.
        """
        currency = currency or engine_settings.default_currency
        try:
            tenders = [Tender.coerce(t) for t in tenders or []]
            total = _parse_amount(total, "total")
            amounts = [_parse_amount(t.amount, "amount") for t in tenders]
        except ValidationFailed as e:
            return ValidationResult.failed(ErrorCode.VALIDATION, e.message)

        if not tenders:
            return ValidationResult.failed(ErrorCode.VALIDATION, "Add at least one payment to the split.")
        if total is None or total < 0:
            return ValidationResult.failed(ErrorCode.VALIDATION, "The amount due must be zero or more.")
        for amount in amounts:
            if amount is None or amount <= 0:
                return ValidationResult.failed(ErrorCode.VALIDATION, "Each split payment needs a positive amount.")
            if not is_whole_minor(currency, amount):
                return ValidationResult.failed(
                    ErrorCode.VALIDATION,
                    f"Split payment of {amount} is finer than the smallest unit of {currency}.",
                )

        paid = sum(amounts, Decimal("0"))
        if abs(paid - total) >= engine_settings.split_epsilon:
            return ValidationResult.failed(
                ErrorCode.SPLIT_MISMATCH,
                f"Split payments add up to {format_money(currency, paid)} "
                f"but the bill is {format_money(currency, total)}.",
            )

        for tender, amount in zip(tenders, amounts):
            tendered = tender.amount_tendered if tender.amount_tendered is not None else amount
            result = PaymentService.validate(tender.method, tendered, amount, tender.reference, currency)
            if not result:
                return result
        return ValidationResult.passed()

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_mode(tenders: List[Tender], mode: Optional[str]) -> str:
        if mode:
            if mode not in Payment.PaymentMode.values:
                raise ValidationFailed(f"'{mode}' is not a valid payment mode.", field="mode")
            return mode
        if len(tenders) > 1:
            return Payment.PaymentMode.SPLIT
        if tenders and tenders[0].method == PaymentMethod.ROOM_CHARGE:
            return Payment.PaymentMode.ROOM_CHARGE
        return Payment.PaymentMode.SINGLE

    @staticmethod
    def _resolve_tenders(order: Order, tenders: List[Tender], mode: str) -> List[Tender]:
        """
        Validate the tenders against the order total and return them with
        every amount filled in and quantized. Raises on any failure.
        """
        total = order.total_amount
        currency = order.currency

        # Room charges default to the folio the order was opened against
        tenders = [
            Tender(t.method, t.amount, t.amount_tendered, t.reference or order.folio_id or "")
            if t.method == PaymentMethod.ROOM_CHARGE
            else t
            for t in tenders
        ]

        if not tenders:
            raise ValidationFailed("Add at least one payment.", field="tenders")

        if mode == Payment.PaymentMode.SPLIT:
            PaymentService.validate_split(tenders, total, currency).raise_for_error()
            return PaymentService._resolve_split(order, tenders)

        if len(tenders) != 1:
            raise ValidationFailed("Use a split payment to pay with more than one instrument.", field="tenders")
        tender = tenders[0]
        if mode == Payment.PaymentMode.ROOM_CHARGE and tender.method != PaymentMethod.ROOM_CHARGE:
            raise ValidationFailed("A room charge payment must use the room charge method.", field="method")

        PaymentService.validate(tender.method, tender.amount_tendered, total, tender.reference, currency).raise_for_error()
        tendered = tender.amount_tendered if tender.amount_tendered is not None else total
        return [Tender(tender.method, total, quantize(currency, tendered), tender.reference.strip())]

    @staticmethod
    def _resolve_split(order: Order, tenders: List[Tender]) -> List[Tender]:
        """
        Turn validated split tenders into shares that add up exactly to the
        bill in minor units. A gap inside the split tolerance goes to the
        last share.
        """
        currency = order.currency
        total_minor = to_minor(currency, order.total_amount)
        shares = [to_minor(currency, t.amount) for t in tenders]
        shares[-1] += total_minor - sum(shares)
        if shares[-1] <= 0:
            raise PaymentRejected(
                f"Split payments do not add up to {format_money(currency, order.total_amount)}.",
                code=ErrorCode.SPLIT_MISMATCH,
            )
        validate_minor_sum(shares, total_minor, context=f"split of order {order.order_number}")

        resolved = []
        for t, share in zip(tenders, shares):
            amount = from_minor(currency, share)
            cash_like = PaymentStrategyFactory.get_strategy(t.method).is_cash_like
            if cash_like and t.amount_tendered is not None:
                tendered = quantize(currency, t.amount_tendered)
            else:
                tendered = amount
            if tendered < amount:
                raise PaymentRejected(
                    f"Cash tendered ({format_money(currency, tendered)}) is less than "
                    f"its share ({format_money(currency, amount)}).",
                    code=ErrorCode.INSUFFICIENT_FUNDS,
                )
            resolved.append(Tender(t.method, amount, tendered, t.reference.strip()))
        return resolved

    @staticmethod
    @transaction.atomic
    def _open_attempt(order: Order, tenders: List[Tender], attempt_token: str, mode: str):
        """
        Step one: create the Payment for this attempt, or reuse it on a
        resubmission after checking the tenders still match what was recorded.
        """
        order = OrderService.lock(order)
        payment = (
            Payment.objects.select_for_update().filter(order=order, attempt_token=attempt_token).first()
        )
        if payment is not None and payment.is_settled:
            return payment, []

        if order.status == Order.OrderStatus.PAID:
            raise ConflictError(f"Order {order.order_number} is already paid.", resource=order)
        OrderService.ensure_open(order, "pay")
        if not order.items.exclude(status=OrderItem.ItemStatus.CANCELLED).exists():
            raise ValidationFailed(f"Order {order.order_number} has nothing to pay for.", field="order")

        resolved = PaymentService._resolve_tenders(order, tenders, mode)

        if payment is None:
            payment = Payment.objects.create(
                organization_id=order.organization_id,
                order=order,
                attempt_token=attempt_token,
                mode=mode,
                currency=order.currency,
                amount_due=order.total_amount,
                amount_tendered=sum((t.amount_tendered for t in resolved), Decimal("0")),
            )
            logger.info(
                f"Payment {payment.id} opened for order {order.order_number}: "
                f"{mode}, {format_money(order.currency, order.total_amount)}"
            )
            return payment, resolved

        if payment.amount_due != order.total_amount:
            raise ConflictError(
                f"The bill for order {order.order_number} changed since this payment was started. "
                "Start a new payment.",
                resource=payment,
            )
        recorded = list(payment.settlements.all())
        if any(
            s.position >= len(resolved)
            or s.method != resolved[s.position].method
            or s.amount != resolved[s.position].amount
            for s in recorded
        ):
            raise ConflictError(
                "Different payments were already recorded for this attempt. Start a new payment.",
                resource=payment,
            )
        if payment.status == Payment.PaymentStatus.FAILED:
            payment.failure_reason = ""
            PaymentService._transition_payment_status(payment, Payment.PaymentStatus.PENDING, ["failure_reason"])
        logger.info(f"Payment {payment.id} resumed ({len(recorded)} of {len(resolved)} instruments recorded)")
        return payment, resolved

    @staticmethod
    def _record_settlements(payment: Payment, tenders: List[Tender]) -> None:
        """
        Step two: one Settlement per instrument not yet recorded, each in its
        own transaction. Folio charges carry a key derived from the payment and
        position so a retried post never bills the guest twice.
        """
        recorded = set(payment.settlements.values_list("position", flat=True))
        for position, tender in enumerate(tenders):
            if position in recorded:
                continue
            strategy = PaymentStrategyFactory.get_strategy(tender.method)
            change = tender.amount_tendered - tender.amount if strategy.is_cash_like else Decimal("0")
            with transaction.atomic():
                settlement = Settlement(
                    organization_id=payment.organization_id,
                    payment=payment,
                    order=payment.order,
                    position=position,
                    method=tender.method,
                    amount=tender.amount,
                    amount_tendered=tender.amount_tendered,
                    change=change,
                    reference=tender.reference,
                )
                strategy.process(settlement, idempotency_key=f"{payment.id}:{position}")
                settlement.save()
            logger.debug(f"Payment {payment.id}: recorded {tender.method} {tender.amount} at position {position}")

    @staticmethod
    @transaction.atomic
    def _mark_failed(payment: Payment, reason: str) -> Payment:
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        payment.failure_reason = reason[:255]
        return PaymentService._transition_payment_status(payment, Payment.PaymentStatus.FAILED, ["failure_reason"])

    @staticmethod
    @transaction.atomic
    def _complete(payment: Payment) -> Payment:
        """
        Step three: work out change, close the payment and the order, and
        release the table.
        """
        from tables.services import TableService

        order = OrderService.lock(payment.order)
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if payment.is_settled:
            return payment

        settlements = list(payment.settlements.all())
        payment.amount_tendered = sum((s.amount_tendered for s in settlements), Decimal("0"))
        payment.change_due = sum((s.change for s in settlements), Decimal("0"))
        fields = ["amount_tendered", "change_due"]

        if payment.change_due > 0:
            result = change_breakdown(payment.change_due, engine_settings.cash_denominations)
            payment.change_breakdown = result.as_json()
            payment.change_unrepresentable = result.remainder
            fields += ["change_breakdown", "change_unrepresentable"]
            target = Payment.PaymentStatus.AWAITING_CHANGE
        else:
            payment.completed_at = timezone.now()
            fields.append("completed_at")
            target = Payment.PaymentStatus.COMPLETED

        PaymentService._transition_payment_status(payment, target, fields)
        OrderService.mark_paid(order)
        if order.table_id:
            TableService.release(order.table, needs_cleaning=True)

        transaction.on_commit(lambda: payment_completed.send(sender=Payment, payment=payment, order=order))
        logger.info(
            f"Order {order.order_number} settled by payment {payment.id}"
            + (f", change due {format_money(payment.currency, payment.change_due)}" if payment.change_due else "")
        )
        return payment

    @staticmethod
    def settle(order: Order, tenders: Iterable[Any], attempt_token: str, mode: str = None) -> Payment:
        """
        Settle an order. Idempotent per (order, attempt_token).

        The steps commit separately: opening the attempt, recording each
        instrument, then closing the order. If anything fails part way the
        order stays unpaid and the attempt stays pending (or failed, for a
        declined room charge); resubmitting with the same token resumes
        without duplicating settlements or folio charges. Resubmitting a
        finished attempt returns the stored payment.

        Args:
            order: The order to close
            tenders: Tender objects or mappings (method, amount, amount_tendered, reference)
            attempt_token: Caller-generated key for this attempt
            mode: single, split or room_charge; inferred from the tenders when omitted

        Returns:
            Payment in awaiting_change (cash change due) or completed status
        """
        if not attempt_token or not str(attempt_token).strip():
            raise ValidationFailed("A payment attempt token is required.", field="attempt_token")
        attempt_token = str(attempt_token).strip()
        tenders = [Tender.coerce(t) for t in tenders or []]
        mode = PaymentService._resolve_mode(tenders, mode)

        payment, resolved = PaymentService._open_attempt(order, tenders, attempt_token, mode)
        if payment.is_settled:
            logger.debug(f"Payment {payment.id} replayed for attempt {attempt_token}")
            return payment

        try:
            PaymentService._record_settlements(payment, resolved)
        except ChargeDeclined as e:
            PaymentService._mark_failed(payment, e.message)
            raise

        return PaymentService._complete(payment)

    @staticmethod
    @transaction.atomic
    def acknowledge_change(payment: Payment) -> Payment:
        """Record that the change was handed back; completes the payment."""
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if payment.status == Payment.PaymentStatus.COMPLETED:
            return payment
        if payment.status != Payment.PaymentStatus.AWAITING_CHANGE:
            raise ConflictError("This payment has no change waiting to be returned.", resource=payment)

        now = timezone.now()
        payment.change_returned_at = now
        payment.completed_at = now
        return PaymentService._transition_payment_status(
            payment, Payment.PaymentStatus.COMPLETED, ["change_returned_at", "completed_at"]
        )

    @staticmethod
    def suggest_even_split(total, parts: int, currency: str = None) -> List[Decimal]:
        """
        Per-guest shares of a bill that add up exactly to the total.
        Leftover minor units go to the first guests.

        >>> PaymentService.suggest_even_split(Decimal("100"), 3, "XOF")
        [Decimal('34'), Decimal('33'), Decimal('33')]
        """
        currency = currency or engine_settings.default_currency
        try:
            parts = int(parts)
        except (TypeError, ValueError):
            raise ValidationFailed("The number of guests must be a whole number.", field="parts")
        if parts < 1:
            raise ValidationFailed("The number of guests must be at least 1.", field="parts")
        total = _parse_amount(total, "total")
        if total is None or total < 0:
            raise ValidationFailed("The amount to split must be zero or more.", field="total")

        total_minor = to_minor(currency, total)
        shares = allocate_minor([1] * parts, total_minor)
        validate_minor_sum(shares, total_minor, context=f"even split in {parts}")
        return [from_minor(currency, share) for share in shares]

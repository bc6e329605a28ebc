"""
Payment Error Handling Tests

This module tests how the payment system handles failure scenarios, invalid inputs,
and edge cases. These tests are critical for ensuring payment system robustness.

Test Categories:
1. Tender Validation (typed results, never exceptions)
2. Split Validation
3. Settlement Refusals
4. Payment State Transitions
5. Organization Isolation

Run with: pytest backend/payments/tests/test_payment_error_handling.py -v
"""
import pytest
from decimal import Decimal

from django.test import override_settings

from core_backend.errors import ConflictError, ErrorCode, PaymentRejected, ValidationFailed
from orders.models import Order
from orders.services import OrderService
from outlets.managers import organization_context
from payments.factories import PaymentStrategyFactory
from payments.models import Payment, Settlement
from payments.services import PaymentService
from payments.strategies import ValidationResult


# ============================================================================
# TENDER VALIDATION TESTS
# ============================================================================

class TestTenderValidation:
    """PaymentService.validate returns a verdict for every business condition."""

    def test_exact_cash_passes(self):
        assert PaymentService.validate("cash", Decimal("5841"), Decimal("5841"))

    def test_cash_overpayment_passes(self):
        assert PaymentService.validate("cash", "10000", "5841").ok

    def test_short_cash_is_insufficient_funds(self):
        """
        CRITICAL: Verify short cash is refused with a readable reason

        Value: The cashier sees how much is missing before closing the bill
        """
        result = PaymentService.validate("cash", "5000", "5841", currency="XOF")

        assert not result
        assert result.code == ErrorCode.INSUFFICIENT_FUNDS
        assert result.message == "Cash tendered (5,000 FCFA) is less than the amount due (5,841 FCFA)."

    def test_missing_cash_amount_is_validation(self):
        result = PaymentService.validate("cash", None, "5841")
        assert result.code == ErrorCode.VALIDATION

    def test_card_defaults_to_total(self):
        assert PaymentService.validate("card", None, "5841").ok

    def test_card_must_match_exactly(self):
        result = PaymentService.validate("card", "6000", "5841")
        assert result.code == ErrorCode.VALIDATION
        assert "exactly" in result.message

    def test_mobile_money_requires_reference(self):
        result = PaymentService.validate("mobile_money", "5841", "5841", reference="   ")
        assert result.code == ErrorCode.REFERENCE_REQUIRED

        assert PaymentService.validate("mobile_money", "5841", "5841", reference="OM-1").ok

    def test_room_charge_requires_folio(self):
        result = PaymentService.validate("room_charge", None, "5841")
        assert result.code == ErrorCode.REFERENCE_REQUIRED
        assert "folio" in result.message

    def test_unknown_method_is_validation(self):
        result = PaymentService.validate("cheque", "5841", "5841")
        assert result.code == ErrorCode.VALIDATION

    def test_garbage_amount_is_validation(self):
        assert PaymentService.validate("cash", "lots", "5841").code == ErrorCode.VALIDATION

    def test_negative_amount_is_validation(self):
        assert PaymentService.validate("cash", "-1", "5841").code == ErrorCode.VALIDATION

    def test_raise_for_error_maps_codes(self):
        with pytest.raises(ValidationFailed):
            ValidationResult.failed(ErrorCode.VALIDATION, "bad").raise_for_error()
        with pytest.raises(PaymentRejected) as exc_info:
            ValidationResult.failed(ErrorCode.REFERENCE_REQUIRED, "ref").raise_for_error()
        assert exc_info.value.code == ErrorCode.REFERENCE_REQUIRED
        ValidationResult.passed().raise_for_error()

    def test_reference_rules_follow_settings(self):
        with override_settings(POS_ENGINE={"REFERENCE_REQUIRED_METHODS": ["mobile_money", "card"]}):
            assert PaymentService.validate("card", "100", "100").code == ErrorCode.REFERENCE_REQUIRED
        assert PaymentService.validate("card", "100", "100").ok

    def test_factory_rejects_unknown_method(self):
        with pytest.raises(ValidationFailed):
            PaymentStrategyFactory.get_strategy("bitcoin")


# ============================================================================
# SPLIT VALIDATION TESTS
# ============================================================================

class TestSplitValidation:

    def test_split_must_add_up(self):
        """
        CRITICAL: Verify a split that does not cover the bill is refused
        """
        result = PaymentService.validate_split(
            [{"method": "cash", "amount": "3000", "amount_tendered": "3000"}, {"method": "card", "amount": "2000"}],
            "5841",
            currency="XOF",
        )

        assert result.code == ErrorCode.SPLIT_MISMATCH
        assert "5,000 FCFA" in result.message
        assert "5,841 FCFA" in result.message

    def test_split_within_epsilon_passes(self):
        result = PaymentService.validate_split(
            [{"method": "card", "amount": "5.000"}, {"method": "card", "amount": "4.995"}], "10.000", currency="TND"
        )
        assert result.ok

    def test_split_share_finer_than_currency_unit(self):
        """
        CRITICAL: Verify a franc share with centimes is refused instead of rounded away
        """
        result = PaymentService.validate_split(
            [{"method": "card", "amount": "2920.5"}, {"method": "card", "amount": "2920.5"}], "5841", currency="XOF"
        )

        assert result.code == ErrorCode.VALIDATION
        assert "smallest unit of XOF" in result.message

    def test_share_below_one_franc_is_refused(self):
        result = PaymentService.validate_split(
            [{"method": "card", "amount": "5840.6"}, {"method": "card", "amount": "0.4"}], "5841", currency="XOF"
        )
        assert result.code == ErrorCode.VALIDATION

    def test_cash_tendered_with_centimes_is_refused(self):
        assert PaymentService.validate("cash", "6000.5", "5841", currency="XOF").code == ErrorCode.VALIDATION

    def test_split_needs_positive_amounts(self):
        result = PaymentService.validate_split([{"method": "card", "amount": "0"}], "0")
        assert result.code == ErrorCode.VALIDATION

    def test_empty_split_is_validation(self):
        assert PaymentService.validate_split([], "5841").code == ErrorCode.VALIDATION

    def test_each_share_is_validated(self):
        result = PaymentService.validate_split(
            [{"method": "cash", "amount": "3000", "amount_tendered": "2000"}, {"method": "card", "amount": "2841"}],
            "5841",
        )
        assert result.code == ErrorCode.INSUFFICIENT_FUNDS

    def test_even_split_needs_a_guest(self):
        with pytest.raises(ValidationFailed):
            PaymentService.suggest_even_split(Decimal("100"), 0)


# ============================================================================
# SETTLEMENT REFUSAL TESTS
# ============================================================================

@pytest.mark.django_db
class TestSettlementRefusals:

    def test_attempt_token_required(self, priced_order):
        with pytest.raises(ValidationFailed):
            PaymentService.settle(priced_order, [{"method": "card"}], attempt_token="  ")

    def test_empty_order_cannot_be_paid(self, takeaway_order):
        with pytest.raises(ValidationFailed, match="nothing to pay"):
            PaymentService.settle(takeaway_order, [{"method": "card"}], attempt_token="t-1")

    def test_short_cash_leaves_nothing_behind(self, priced_order):
        """
        CRITICAL: Verify a refused tender creates no payment and keeps the order open
        """
        with pytest.raises(PaymentRejected) as exc_info:
            PaymentService.settle(priced_order, [{"method": "cash", "amount_tendered": "5000"}], "t-1")

        priced_order.refresh_from_db()
        assert exc_info.value.code == ErrorCode.INSUFFICIENT_FUNDS
        assert Payment.objects.count() == 0
        assert priced_order.status == Order.OrderStatus.DRAFT

    def test_cancelled_order_cannot_be_paid(self, priced_order):
        OrderService.cancel_order(priced_order, reason="Walked out")
        with pytest.raises(ConflictError):
            PaymentService.settle(priced_order, [{"method": "card"}], attempt_token="t-1")

    def test_several_tenders_need_split_mode(self, priced_order):
        with pytest.raises(ValidationFailed):
            PaymentService.settle(
                priced_order,
                [{"method": "card", "amount": "2841"}, {"method": "card", "amount": "3000"}],
                attempt_token="t-1",
                mode="single",
            )

    def test_room_charge_mode_needs_room_charge_method(self, priced_order):
        with pytest.raises(ValidationFailed):
            PaymentService.settle(priced_order, [{"method": "card"}], attempt_token="t-1", mode="room_charge")

    def test_unknown_mode(self, priced_order):
        with pytest.raises(ValidationFailed):
            PaymentService.settle(priced_order, [{"method": "card"}], attempt_token="t-1", mode="layaway")

    def test_fractional_franc_split_leaves_order_unpaid(self, priced_order):
        """
        CRITICAL: Verify half-franc shares never settle a 5841 bill for 5840
        """
        with pytest.raises(ValidationFailed):
            PaymentService.settle(
                priced_order,
                [{"method": "card", "amount": "2920.5"}, {"method": "card", "amount": "2920.5"}],
                attempt_token="t-1",
                mode="split",
            )

        priced_order.refresh_from_db()
        assert priced_order.status == Order.OrderStatus.DRAFT
        assert Payment.objects.count() == 0
        assert Settlement.objects.count() == 0


# ============================================================================
# PAYMENT STATE TRANSITION TESTS
# ============================================================================

@pytest.mark.django_db
class TestPaymentStateTransitions:

    def test_completed_is_terminal(self):
        assert PaymentService.VALID_TRANSITIONS[Payment.PaymentStatus.COMPLETED] == []

    def test_failed_can_only_retry(self):
        assert PaymentService.VALID_TRANSITIONS[Payment.PaymentStatus.FAILED] == [Payment.PaymentStatus.PENDING]

    def test_invalid_transition_raises(self, priced_order):
        payment = PaymentService.settle(priced_order, [{"method": "card"}], attempt_token="t-1")
        with pytest.raises(ConflictError):
            PaymentService._transition_payment_status(payment, Payment.PaymentStatus.PENDING)

    def test_acknowledge_change_without_change(self, priced_order):
        payment = PaymentService.settle(priced_order, [{"method": "card"}], attempt_token="t-1")
        assert PaymentService.acknowledge_change(payment).status == Payment.PaymentStatus.COMPLETED

        Payment.objects.filter(pk=payment.pk).update(status=Payment.PaymentStatus.FAILED)
        with pytest.raises(ConflictError):
            PaymentService.acknowledge_change(payment)


# ============================================================================
# ORGANIZATION ISOLATION TESTS
# ============================================================================

@pytest.mark.django_db
class TestPaymentIsolation:

    def test_payments_invisible_to_other_organization(self, priced_order, organization_b):
        PaymentService.settle(priced_order, [{"method": "card"}], attempt_token="t-1")

        with organization_context(organization_b):
            assert Payment.objects.count() == 0
        assert Payment.objects.count() == 1

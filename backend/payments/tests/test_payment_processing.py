"""
Payment Processing Tests

Tests for payment settlement including:
- Cash payments and change breakdown
- Card and mobile money payments
- Split payments
- Room charges posted to a guest folio
- Idempotent resubmission and resume after a failure
"""
import pytest
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

from core_backend.errors import ChargeDeclined, ConflictError, ErrorCode, PaymentRejected, PersistenceUnavailable
from orders.models import Order
from orders.services import OrderItemService, OrderService
from payments.folio import get_folio_gateway
from payments.models import Payment, Settlement
from payments.services import PaymentService, Tender
from payments.signals import payment_completed
from tables.models import Table


@pytest.fixture
def room_service_order(org_context, outlet_a, attieke):
    """Room service order for folio F-204: 2500 / 250 / 495 / 3245"""
    order = OrderService.create_order(outlet_a, order_type="room_service", guest_id="G-17", folio_id="F-204")
    OrderItemService.add_item(order, attieke)
    order.refresh_from_db()
    return order


def _dispensed(payment):
    return sum(Decimal(d) * c for d, c in payment.change_breakdown["counts"].items())


@pytest.mark.django_db
class TestCashPayments:
    """Test cash settlement and change"""

    def test_exact_cash_completes(self, priced_order):
        """
        CRITICAL: Verify exact cash closes the order with no change owed
        """
        payment = PaymentService.settle(
            priced_order, [{"method": "cash", "amount_tendered": "5841"}], attempt_token="t-1"
        )

        priced_order.refresh_from_db()
        assert payment.status == Payment.PaymentStatus.COMPLETED
        assert payment.change_due == Decimal("0")
        assert payment.completed_at is not None
        assert priced_order.status == Order.OrderStatus.PAID
        assert priced_order.paid_at is not None

    def test_cash_with_change(self, priced_order):
        """
        CRITICAL: Verify overpaid cash produces change and a note/coin breakdown

        Scenario:
        - Bill 5841 XOF, customer hands over 10000
        - Change 4159; the smallest coin is 5, so 4 cannot be handed back
        """
        payment = PaymentService.settle(
            priced_order, [{"method": "cash", "amount_tendered": "10000"}], attempt_token="t-1"
        )

        assert payment.status == Payment.PaymentStatus.AWAITING_CHANGE
        assert payment.amount_tendered == Decimal("10000")
        assert payment.change_due == Decimal("4159")
        assert payment.change_unrepresentable == Decimal("4")
        assert _dispensed(payment) == Decimal("4155")
        assert payment.change_breakdown["counts"]["2000"] == 2

    def test_acknowledge_change_completes(self, priced_order):
        payment = PaymentService.settle(
            priced_order, [{"method": "cash", "amount_tendered": "6000"}], attempt_token="t-1"
        )

        payment = PaymentService.acknowledge_change(payment)

        assert payment.status == Payment.PaymentStatus.COMPLETED
        assert payment.change_returned_at is not None
        assert PaymentService.acknowledge_change(payment).status == Payment.PaymentStatus.COMPLETED

    def test_settlement_records_change(self, priced_order):
        PaymentService.settle(priced_order, [Tender("cash", amount_tendered=Decimal("6000"))], "t-1")

        settlement = Settlement.objects.get(order=priced_order)
        assert settlement.amount == Decimal("5841")
        assert settlement.amount_tendered == Decimal("6000")
        assert settlement.change == Decimal("159")

    def test_paying_frees_table_for_cleaning(self, org_context, outlet_a, dining_room, attieke):
        order = OrderService.create_order(outlet_a, table=dining_room["T4"])
        OrderItemService.add_item(order, attieke)
        order.refresh_from_db()

        PaymentService.settle(order, [{"method": "cash", "amount_tendered": "5000"}], "t-1")

        dining_room["T4"].refresh_from_db()
        assert dining_room["T4"].status == Table.TableStatus.CLEANING


@pytest.mark.django_db
class TestNonCashPayments:

    def test_card_defaults_to_exact_amount(self, priced_order):
        payment = PaymentService.settle(priced_order, [{"method": "card"}], attempt_token="t-1")

        assert payment.status == Payment.PaymentStatus.COMPLETED
        assert payment.amount_tendered == Decimal("5841")

    def test_mobile_money_keeps_reference(self, priced_order):
        PaymentService.settle(
            priced_order, [{"method": "mobile_money", "reference": "  OM-99812 "}], attempt_token="t-1"
        )

        settlement = Settlement.objects.get(order=priced_order)
        assert settlement.reference == "OM-99812"


@pytest.mark.django_db
class TestSplitPayments:

    def test_cash_and_card(self, priced_order):
        """
        CRITICAL: Verify a split records one settlement per instrument
        """
        payment = PaymentService.settle(
            priced_order,
            [
                {"method": "cash", "amount": "3000", "amount_tendered": "5000"},
                {"method": "card", "amount": "2841"},
            ],
            attempt_token="t-1",
        )

        settlements = list(payment.settlements.order_by("position"))
        assert payment.mode == Payment.PaymentMode.SPLIT
        assert [s.method for s in settlements] == ["cash", "card"]
        assert sum(s.amount for s in settlements) == Decimal("5841")
        assert payment.change_due == Decimal("2000")
        assert payment.change_breakdown["counts"] == {"2000": 1}
        assert payment.status == Payment.PaymentStatus.AWAITING_CHANGE

    def test_even_split_shares(self):
        assert PaymentService.suggest_even_split(Decimal("5841"), 3, "XOF") == [Decimal("1947")] * 3
        assert PaymentService.suggest_even_split(Decimal("100"), 3, "XOF") == [
            Decimal("34"),
            Decimal("33"),
            Decimal("33"),
        ]
        shares = PaymentService.suggest_even_split(Decimal("10.00"), 3, "EUR")
        assert shares == [Decimal("3.34"), Decimal("3.33"), Decimal("3.33")]
        assert sum(shares) == Decimal("10.00")

    def test_gap_within_tolerance_goes_to_last_share(self):
        """
        CRITICAL: Verify recorded shares always add up exactly to the bill
        """
        order = SimpleNamespace(currency="TND", total_amount=Decimal("10.000"), order_number="POS-00007")

        resolved = PaymentService._resolve_split(
            order, [Tender("card", Decimal("5.000")), Tender("card", Decimal("4.995"))]
        )

        assert [t.amount for t in resolved] == [Decimal("5.000"), Decimal("5.000")]
        assert [t.amount_tendered for t in resolved] == [Decimal("5.000"), Decimal("5.000")]

    def test_cash_share_topped_up_past_tendered_is_refused(self):
        order = SimpleNamespace(currency="TND", total_amount=Decimal("10.000"), order_number="POS-00007")

        with pytest.raises(PaymentRejected) as exc_info:
            PaymentService._resolve_split(
                order,
                [Tender("card", Decimal("5.000")), Tender("cash", Decimal("4.995"), Decimal("4.995"))],
            )
        assert exc_info.value.code == ErrorCode.INSUFFICIENT_FUNDS


@pytest.mark.django_db
class TestRoomCharge:

    def test_room_charge_posts_to_folio(self, room_service_order):
        """
        CRITICAL: Verify a room charge bills the guest folio once with the order lines
        """
        payment = PaymentService.settle(room_service_order, [{"method": "room_charge"}], attempt_token="t-1")

        charges = get_folio_gateway().charges_for("F-204")
        settlement = payment.settlements.get()
        assert payment.mode == Payment.PaymentMode.ROOM_CHARGE
        assert payment.status == Payment.PaymentStatus.COMPLETED
        assert len(charges) == 1
        assert charges[0]["amount"] == Decimal("3245")
        assert charges[0]["line_items"][0]["description"] == "Attieke Poisson"
        assert settlement.reference == "F-204"
        assert settlement.external_charge_id.startswith("FOLIO-")

    def test_declined_charge_leaves_order_open(self, room_service_order):
        get_folio_gateway().close_folio("F-204")

        with pytest.raises(ChargeDeclined):
            PaymentService.settle(room_service_order, [{"method": "room_charge"}], attempt_token="t-1")

        room_service_order.refresh_from_db()
        payment = Payment.objects.get(order=room_service_order)
        assert room_service_order.status == Order.OrderStatus.DRAFT
        assert payment.status == Payment.PaymentStatus.FAILED
        assert "declined" in payment.failure_reason
        assert payment.settlements.count() == 0

    def test_declined_attempt_can_be_retried(self, room_service_order):
        gateway = get_folio_gateway()
        gateway.close_folio("F-204")
        with pytest.raises(ChargeDeclined):
            PaymentService.settle(room_service_order, [{"method": "room_charge"}], attempt_token="t-1")

        gateway.closed_folios.discard("F-204")
        payment = PaymentService.settle(room_service_order, [{"method": "room_charge"}], attempt_token="t-1")

        assert payment.status == Payment.PaymentStatus.COMPLETED
        assert Payment.objects.filter(order=room_service_order).count() == 1
        assert len(gateway.charges_for("F-204")) == 1

    def test_unreachable_folio_service_is_retryable(self, room_service_order):
        gateway = get_folio_gateway()
        with patch.object(gateway, "post_charge", side_effect=ConnectionError("timeout")):
            with pytest.raises(PersistenceUnavailable):
                PaymentService.settle(room_service_order, [{"method": "room_charge"}], attempt_token="t-1")

        room_service_order.refresh_from_db()
        assert room_service_order.status == Order.OrderStatus.DRAFT
        assert Payment.objects.get(order=room_service_order).status == Payment.PaymentStatus.PENDING

        payment = PaymentService.settle(room_service_order, [{"method": "room_charge"}], attempt_token="t-1")
        assert payment.status == Payment.PaymentStatus.COMPLETED


@pytest.mark.django_db
class TestIdempotentSettlement:

    def test_replay_returns_stored_payment(self, priced_order):
        """
        CRITICAL: Verify resubmitting a finished attempt never pays twice

        Value: A double tap on "pay" or a network retry is harmless
        """
        tenders = [{"method": "cash", "amount_tendered": "6000"}]
        first = PaymentService.settle(priced_order, tenders, attempt_token="t-1")
        second = PaymentService.settle(priced_order, tenders, attempt_token="t-1")

        assert second.pk == first.pk
        assert Payment.objects.count() == 1
        assert Settlement.objects.count() == 1

    def test_new_token_on_paid_order_is_a_conflict(self, priced_order):
        PaymentService.settle(priced_order, [{"method": "card"}], attempt_token="t-1")

        with pytest.raises(ConflictError, match="already paid"):
            PaymentService.settle(priced_order, [{"method": "card"}], attempt_token="t-2")

    def test_resume_skips_recorded_instruments(self, room_service_order):
        """
        CRITICAL: Verify a split interrupted by a declined folio resumes without
        recording the cash a second time
        """
        gateway = get_folio_gateway()
        tenders = [
            {"method": "cash", "amount": "1000", "amount_tendered": "1000"},
            {"method": "room_charge", "amount": "2245"},
        ]
        gateway.close_folio("F-204")
        with pytest.raises(ChargeDeclined):
            PaymentService.settle(room_service_order, tenders, attempt_token="t-1")
        assert Settlement.objects.filter(order=room_service_order).count() == 1

        gateway.closed_folios.discard("F-204")
        payment = PaymentService.settle(room_service_order, tenders, attempt_token="t-1")

        assert payment.status == Payment.PaymentStatus.COMPLETED
        assert [s.method for s in payment.settlements.order_by("position")] == ["cash", "room_charge"]

    def test_bill_changed_since_attempt_started(self, room_service_order, bissap):
        gateway = get_folio_gateway()
        gateway.close_folio("F-204")
        with pytest.raises(ChargeDeclined):
            PaymentService.settle(room_service_order, [{"method": "room_charge"}], attempt_token="t-1")

        OrderItemService.add_item(room_service_order, bissap)
        gateway.closed_folios.discard("F-204")

        with pytest.raises(ConflictError, match="changed"):
            PaymentService.settle(room_service_order, [{"method": "room_charge"}], attempt_token="t-1")

    def test_different_instruments_on_resume_is_a_conflict(self, room_service_order):
        gateway = get_folio_gateway()
        gateway.close_folio("F-204")
        with pytest.raises(ChargeDeclined):
            PaymentService.settle(
                room_service_order,
                [{"method": "cash", "amount": "1000", "amount_tendered": "1000"}, {"method": "room_charge", "amount": "2245"}],
                attempt_token="t-1",
            )

        with pytest.raises(ConflictError):
            PaymentService.settle(
                room_service_order,
                [{"method": "card", "amount": "1000"}, {"method": "room_charge", "amount": "2245"}],
                attempt_token="t-1",
            )


@pytest.mark.django_db
class TestPaymentSignals:

    def test_payment_completed_fires_after_commit(self, priced_order, django_capture_on_commit_callbacks):
        received = []

        def listener(sender, payment, order, **kwargs):
            received.append((payment.pk, order.status))

        payment_completed.connect(listener)
        try:
            with django_capture_on_commit_callbacks(execute=True):
                payment = PaymentService.settle(priced_order, [{"method": "card"}], attempt_token="t-1")
        finally:
            payment_completed.disconnect(listener)

        assert received == [(payment.pk, Order.OrderStatus.PAID)]

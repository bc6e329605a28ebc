"""
Pricing engine tests.

compute_totals is pure, so these run without the database.
"""
import pytest
from decimal import Decimal

from core_backend.errors import ValidationFailed
from orders.calculators import DiscountSpec, compute_totals


def line(unit_price, quantity, status="pending"):
    return {"unit_price": Decimal(unit_price), "quantity": quantity, "status": status}


class TestCanonicalOrder:
    def test_reference_bill(self):
        """
        CRITICAL: Verify the reference bill 2 x 2500, 10% off, 10% service, 18% tax

        Business Impact: every printed bill follows this order of operations
        """
        totals = compute_totals(
            [line("2500", 2)], DiscountSpec.percentage(10), Decimal("0.10"), Decimal("0.18"), "XOF"
        )
        assert totals.subtotal == Decimal("5000")
        assert totals.discount == Decimal("500")
        assert totals.adjusted_subtotal == Decimal("4500")
        assert totals.service_charge == Decimal("450")
        assert totals.tax == Decimal("891")
        assert totals.total == Decimal("5841")

    def test_tax_applies_to_service_charge(self):
        totals = compute_totals([line("1000", 1)], None, "0.10", "0.18", "XOF")
        # (1000 + 100) * 0.18 = 198
        assert totals.tax == Decimal("198")
        assert totals.total == Decimal("1298")

    def test_rounds_at_each_step(self):
        """Service charge is rounded before tax is computed on it"""
        totals = compute_totals([line("1001", 1)], None, "0.10", "0.18", "XOF")
        assert totals.service_charge == Decimal("100")  # 100.1
        assert totals.tax == Decimal("198")  # (1001 + 100) * 0.18 = 198.18
        assert totals.total == Decimal("1299")

    def test_bankers_rounding(self):
        # 5 * 0.10 = 0.5 -> 0 ; 15 * 0.10 = 1.5 -> 2
        assert compute_totals([line("5", 1)], None, "0.10", "0", "XOF").service_charge == Decimal("0")
        assert compute_totals([line("15", 1)], None, "0.10", "0", "XOF").service_charge == Decimal("2")

    def test_two_decimal_currency(self):
        totals = compute_totals([line("9.99", 3)], DiscountSpec.amount("2.50"), "0", "0.20", "EUR")
        assert totals.subtotal == Decimal("29.97")
        assert totals.adjusted_subtotal == Decimal("27.47")
        assert totals.tax == Decimal("5.49")  # 5.494
        assert totals.total == Decimal("32.96")

    def test_total_identity_holds(self):
        for price, qty, discount in [("2500", 2, DiscountSpec.percentage(10)), ("777", 3, DiscountSpec.amount(13)),
                                     ("1", 1, DiscountSpec.none()), ("12345", 7, DiscountSpec.percentage("33.3"))]:
            t = compute_totals([line(price, qty)], discount, "0.10", "0.18", "XOF")
            assert t.total == t.subtotal - t.discount + t.service_charge + t.tax
            assert t.total >= 0


class TestLineHandling:
    def test_cancelled_lines_are_skipped(self):
        totals = compute_totals([line("2500", 2), line("1000", 1, status="cancelled")], None, "0", "0", "XOF")
        assert totals.subtotal == Decimal("5000")

    def test_stored_total_price_is_used(self):
        totals = compute_totals([{"total_price": Decimal("700"), "status": "sent"}], None, "0", "0", "XOF")
        assert totals.total == Decimal("700")

    def test_empty_cart(self):
        totals = compute_totals([], DiscountSpec.percentage(10), "0.10", "0.18", "XOF")
        assert totals.total == Decimal("0")


class TestDiscountClamping:
    def test_percentage_over_100_takes_subtotal_to_zero(self):
        totals = compute_totals([line("2500", 2)], DiscountSpec.percentage(150), "0.10", "0.18", "XOF")
        assert totals.discount == Decimal("5000")
        assert totals.total == Decimal("0")

    def test_amount_larger_than_subtotal_is_clamped(self):
        totals = compute_totals([line("2500", 1)], DiscountSpec.amount(9000), "0", "0", "XOF")
        assert totals.discount == Decimal("2500")
        assert totals.total == Decimal("0")

    def test_negative_amount_is_clamped_to_zero(self):
        totals = compute_totals([line("2500", 1)], DiscountSpec.amount(-300), "0", "0", "XOF")
        assert totals.discount == Decimal("0")

    def test_from_raw_blank_type_is_no_discount(self):
        assert DiscountSpec.from_raw(None, 10) == DiscountSpec.none()
        assert DiscountSpec.from_raw("", None) == DiscountSpec.none()

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationFailed):
            DiscountSpec.from_raw("bogof", 1)


class TestInvalidRates:
    def test_negative_service_rate(self):
        with pytest.raises(ValidationFailed):
            compute_totals([line("100", 1)], None, "-0.10", "0", "XOF")

    def test_negative_tax_rate(self):
        with pytest.raises(ValidationFailed):
            compute_totals([line("100", 1)], None, "0", "-0.18", "XOF")

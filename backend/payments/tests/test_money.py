"""
Unit tests for payments.money module.

These tests are CRITICAL for preventing rounding drift in bills and splits.
"""

import pytest
from decimal import Decimal

from payments.money import (
    currency_exponent,
    quantize_decimal,
    quantize,
    to_minor,
    from_minor,
    is_whole_minor,
    allocate_minor,
    validate_minor_sum,
    format_money,
)


class TestCurrencyExponent:
    """Test currency exponent lookup."""

    def test_cfa_franc_has_no_minor_unit(self):
        assert currency_exponent("XOF") == 0
        assert currency_exponent("XAF") == 0

    def test_eur_exponent(self):
        assert currency_exponent("EUR") == 2

    def test_tnd_exponent(self):
        assert currency_exponent("TND") == 3

    def test_case_insensitive(self):
        assert currency_exponent("xof") == 0

    def test_unknown_currency_defaults_to_2(self):
        assert currency_exponent("XXX") == 2

    def test_quantize_decimal(self):
        assert quantize_decimal("XOF") == Decimal("1")
        assert quantize_decimal("EUR") == Decimal("0.01")


class TestQuantize:
    """Test Decimal quantization with banker's rounding."""

    def test_xof_half_rounds_to_even_down(self):
        assert quantize("XOF", "890.5") == Decimal("890")

    def test_xof_half_rounds_to_even_up(self):
        assert quantize("XOF", "891.5") == Decimal("892")

    def test_eur_bankers_rounding(self):
        assert quantize("EUR", "10.125") == Decimal("10.12")
        assert quantize("EUR", "10.135") == Decimal("10.14")

    def test_from_float_uses_string_form(self):
        assert quantize("EUR", 10.127) == Decimal("10.13")


class TestMinorUnits:
    def test_to_minor_xof(self):
        assert to_minor("XOF", "5841") == 5841

    def test_to_minor_eur(self):
        assert to_minor("EUR", "10.127") == 1013

    def test_from_minor(self):
        assert from_minor("EUR", 1013) == Decimal("10.13")
        assert from_minor("XOF", 5841) == Decimal("5841")

    def test_whole_minor_amounts(self):
        assert is_whole_minor("XOF", "2920.00")
        assert not is_whole_minor("XOF", "2920.5")
        assert not is_whole_minor("XOF", "0.4")
        assert is_whole_minor("EUR", "10.13")
        assert not is_whole_minor("EUR", "4.995")


class TestAllocateMinor:
    """
    CRITICAL: Verify splits always sum exactly to the total.
    """

    def test_even_split_with_remainder(self):
        assert allocate_minor([1, 1, 1], 100) == [34, 33, 33]

    def test_even_split_exact(self):
        assert allocate_minor([1, 1, 1], 5841) == [1947, 1947, 1947]

    def test_weighted_split(self):
        result = allocate_minor([2, 1], 5841)
        assert result == [3894, 1947]
        assert sum(result) == 5841

    def test_zero_total(self):
        assert allocate_minor([1, 2], 0) == [0, 0]

    def test_sum_is_always_exact(self):
        for parts in range(1, 12):
            for total in (1, 7, 100, 5841, 99999):
                assert sum(allocate_minor([1] * parts, total)) == total


class TestValidateMinorSum:
    def test_matching_sum_passes(self):
        validate_minor_sum([34, 33, 33], 100)

    def test_mismatch_raises(self):
        with pytest.raises(ValueError, match="expected 100, got 99"):
            validate_minor_sum([33, 33, 33], 100, context="split")


class TestFormatMoney:
    def test_fcfa(self):
        assert format_money("XOF", 5841) == "5,841 FCFA"

    def test_euro(self):
        assert format_money("EUR", "10.5") == "€10.50"

    def test_unknown_code_suffix(self):
        assert format_money("GHS", "12") == "12.00 GHS"

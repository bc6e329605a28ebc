"""
Monetary precision helpers for the order and payment engines.

Every derived amount in the engine is a Decimal quantized to the currency's
minor unit. FCFA-style currencies (XOF, XAF) have no subunit, so a bill
of 5841 is exactly 5841 and never 5841.00.

Key Principles:
1. NEVER use float for money
2. Quantize at every derived step, not only at the end
3. Use ROUND_HALF_EVEN (banker's rounding) to prevent systematic bias
4. Split amounts in integer minor units so parts always sum to the whole
"""

from decimal import Decimal, ROUND_HALF_EVEN, getcontext
from typing import List, Union

# High precision for intermediate products (rates x amounts)
getcontext().prec = 28

Amount = Union[Decimal, str, int, float]

# Currency minor unit exponents (how many decimal places)
CURRENCY_EXPONENT = {
    # Zero-decimal currencies
    "XOF": 0,  # West African CFA franc (BCEAO)
    "XAF": 0,  # Central African CFA franc (BEAC)
    "GNF": 0,  # Guinean Franc
    "RWF": 0,  # Rwandan Franc
    "JPY": 0,  # Japanese Yen

    # 2-decimal currencies
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "GHS": 2,  # Ghanaian Cedi
    "NGN": 2,  # Nigerian Naira
    "KES": 2,  # Kenyan Shilling
    "MAD": 2,  # Moroccan Dirham

    # 3-decimal currencies
    "TND": 3,  # Tunisian Dinar (millime)
    "KWD": 3,
}


def currency_exponent(currency: str) -> int:
    """
    Number of decimal places for a currency (unknown codes default to 2).

    Examples:
        >>> currency_exponent("XOF")
        0
        >>> currency_exponent("usd")
        2
    """
    return CURRENCY_EXPONENT.get(currency.upper(), 2)


def quantize_decimal(currency: str) -> Decimal:
    """Smallest representable unit, e.g. Decimal('1') for XOF, Decimal('0.01') for EUR."""
    return Decimal(10) ** -currency_exponent(currency)


def to_decimal(amount: Amount) -> Decimal:
    """Convert any numeric input to Decimal without binary float artefacts."""
    if isinstance(amount, Decimal):
        return amount
    if isinstance(amount, float):
        amount = str(amount)
    return Decimal(amount)


def quantize(currency: str, amount: Amount) -> Decimal:
    """
    Round to the currency's minor unit using banker's rounding.

    Examples:
        >>> quantize("XOF", "890.5")
        Decimal('890')
        >>> quantize("XOF", "891.5")
        Decimal('892')
        >>> quantize("EUR", "10.125")
        Decimal('10.12')
    """
    return to_decimal(amount).quantize(quantize_decimal(currency), rounding=ROUND_HALF_EVEN)


def is_whole_minor(currency: str, amount: Amount) -> bool:
    """
    True when the amount needs no rounding in this currency.

    Examples:
        >>> is_whole_minor("XOF", "2920.00")
        True
        >>> is_whole_minor("XOF", "2920.5")
        False
    """
    return to_decimal(amount) == quantize(currency, amount)


def to_minor(currency: str, amount: Amount) -> int:
    """
    Convert to integer minor units after quantization.

    Examples:
        >>> to_minor("XOF", "5841")
        5841
        >>> to_minor("EUR", "10.127")
        1013
    """
    quantized = quantize(currency, amount)
    exponent = currency_exponent(currency)
    return int((quantized * (10 ** exponent)).to_integral_value())


def from_minor(currency: str, minor: int) -> Decimal:
    """Convert integer minor units back to a quantized Decimal."""
    exponent = currency_exponent(currency)
    return quantize(currency, Decimal(minor) / (10 ** exponent))


def allocate_minor(weights: List[int], total_minor: int) -> List[int]:
    """
    Allocate total_minor across parts proportionally by weights.

    Largest-remainder method:
    1. Floor each proportional share
    2. Hand the leftover units to the shares with the largest residuals
       (ties broken by position)

    Guarantees sum(result) == total_minor and determinism.

    Examples:
        >>> allocate_minor([1, 1, 1], 5841)
        [1947, 1947, 1947]
        >>> allocate_minor([1, 1, 1], 100)
        [34, 33, 33]
    """
    total_weight = sum(weights)

    if total_weight == 0 or total_minor == 0:
        return [0] * len(weights)

    # Integer arithmetic throughout: no float rounding in the shares
    floors = [weight * total_minor // total_weight for weight in weights]
    residuals = [
        (weight * total_minor % total_weight, index)
        for index, weight in enumerate(weights)
    ]
    remainder = total_minor - sum(floors)

    residuals.sort(key=lambda x: (-x[0], x[1]))

    result = floors[:]
    for i in range(remainder):
        _, idx = residuals[i]
        result[idx] += 1

    return result


def validate_minor_sum(
    components: List[int],
    expected_total: int,
    context: str = "",
    tolerance: int = 0,
) -> None:
    """
    Raise ValueError if the components do not add up to expected_total.
    Used after splitting a bill so a drifted split is never persisted.
    """
    actual = sum(components)
    diff = actual - expected_total

    if abs(diff) > tolerance:
        sign = "+" if diff > 0 else ""
        raise ValueError(
            f"Minor unit sum mismatch{' ' + context if context else ''}: "
            f"expected {expected_total}, got {actual} "
            f"(diff: {sign}{diff})"
        )


def format_money(currency: str, amount: Amount) -> str:
    """
    Human-readable amount for error messages and tickets.

    Examples:
        >>> format_money("XOF", 5841)
        '5,841 FCFA'
        >>> format_money("EUR", "10.5")
        '€10.50'
    """
    currency = currency.upper()
    value = quantize(currency, amount)
    exponent = currency_exponent(currency)
    number = f"{value:,.{exponent}f}"

    if currency in ("XOF", "XAF"):
        return f"{number} FCFA"

    symbols = {
        "USD": "$",
        "EUR": "€",
        "GBP": "£",
        "JPY": "¥",
    }
    symbol = symbols.get(currency)
    if symbol:
        return f"{symbol}{number}"
    return f"{number} {currency}"

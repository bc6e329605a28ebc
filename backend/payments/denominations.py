"""
Cash change denomination breakdown.

``breakdown`` is the classic greedy algorithm: largest note first, take as
many as fit, move on. Greedy is only optimal for canonical ladders, so
``is_greedy_canonical`` re-verifies a ladder against exact change-making and
``change_breakdown`` (what the payment engine calls) falls back to the
dynamic-programming solution when the ladder is not canonical.

The BCEAO ladder (10000 ... 5) is NOT canonical: 400 is 200 + 200 but greedy
hands back 250 + 100 + 50.

Amounts the ladder cannot express (anything not a multiple of 5 for FCFA)
are reported as ``remainder`` instead of being silently dropped.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache
from math import gcd
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from .money import Amount, to_decimal

logger = logging.getLogger(__name__)

BCEAO_DENOMINATIONS = (10000, 5000, 2000, 1000, 500, 250, 200, 100, 50, 25, 10, 5)


@dataclass(frozen=True)
class ChangeBreakdown:
    """Notes/coins to hand back, largest first, plus what could not be expressed."""

    amount: Decimal
    counts: Dict[Decimal, int] = field(default_factory=dict)
    remainder: Decimal = Decimal("0")

    @property
    def is_exact(self) -> bool:
        return self.remainder == 0

    @property
    def piece_count(self) -> int:
        return sum(self.counts.values())

    @property
    def dispensed(self) -> Decimal:
        return sum((d * c for d, c in self.counts.items()), Decimal("0"))

    def as_json(self) -> Dict[str, object]:
        """Serializable form stored on the Payment row."""
        return {
            "amount": str(self.amount),
            "counts": {str(d): c for d, c in self.counts.items()},
            "remainder": str(self.remainder),
        }


def _normalize(denominations: Optional[Iterable[Amount]]) -> List[Decimal]:
    if denominations is None:
        denominations = BCEAO_DENOMINATIONS
    values = sorted({to_decimal(d) for d in denominations}, reverse=True)
    if not values or values[-1] <= 0:
        raise ValueError("Denominations must be a non-empty set of positive amounts")
    return values


def _scale_factor(values: Sequence[Decimal]) -> int:
    """Power of ten that turns every value into an integer."""
    places = max(max(-v.normalize().as_tuple().exponent, 0) for v in values)
    return 10 ** places


def breakdown(change_amount: Amount, denominations: Optional[Iterable[Amount]] = None) -> ChangeBreakdown:
    """
    Greedy largest-first breakdown of change_amount.

    Examples:
        >>> breakdown(159).counts
        {Decimal('100'): 1, Decimal('50'): 1, Decimal('5'): 1}
        >>> breakdown(159).remainder
        Decimal('4')
    """
    amount = to_decimal(change_amount)
    if amount < 0:
        raise ValueError("Change amount cannot be negative")

    remaining = amount
    counts: Dict[Decimal, int] = {}
    for denomination in _normalize(denominations):
        count = int(remaining // denomination)
        if count:
            counts[denomination] = count
            remaining -= denomination * count

    return ChangeBreakdown(amount=amount, counts=counts, remainder=remaining)


@lru_cache(maxsize=32)
def _min_pieces_table(units: Tuple[int, ...], limit: int) -> Tuple[List[int], List[int]]:
    """
    Classic unbounded change-making table over integer units.
    best[v] is the fewest pieces summing to v (-1 when v is unreachable),
    choice[v] the largest piece used in one optimal solution.
    """
    best = [-1] * (limit + 1)
    choice = [0] * (limit + 1)
    best[0] = 0
    for value in range(1, limit + 1):
        for unit in units:  # descending, so ties prefer larger pieces
            if unit <= value and best[value - unit] >= 0:
                candidate = best[value - unit] + 1
                if best[value] < 0 or candidate < best[value]:
                    best[value] = candidate
                    choice[value] = unit
    return best, choice


def _as_units(amount: Decimal, values: List[Decimal]) -> Tuple[Tuple[int, ...], int, int, int]:
    scale = _scale_factor(values + [amount])
    raw_units = [int(v * scale) for v in values]
    step = 0
    for unit in raw_units:
        step = gcd(step, unit)
    units = tuple(unit // step for unit in raw_units)
    return units, int(amount * scale) // step, step, scale


def optimal_breakdown(change_amount: Amount, denominations: Optional[Iterable[Amount]] = None) -> ChangeBreakdown:
    """
    Fewest-pieces breakdown by dynamic programming.

    Dispenses the largest reachable amount not exceeding change_amount and
    reports the rest as remainder, like ``breakdown`` does.
    """
    amount = to_decimal(change_amount)
    if amount < 0:
        raise ValueError("Change amount cannot be negative")

    values = _normalize(denominations)
    units, target, step, scale = _as_units(amount, values)
    best, choice = _min_pieces_table(units, target)

    reachable = target
    while reachable > 0 and best[reachable] < 0:
        reachable -= 1

    counts_by_unit: Dict[int, int] = {}
    value = reachable
    while value > 0:
        unit = choice[value]
        counts_by_unit[unit] = counts_by_unit.get(unit, 0) + 1
        value -= unit

    counts: Dict[Decimal, int] = {}
    for denomination, unit in zip(values, units):
        if unit in counts_by_unit:
            counts[denomination] = counts_by_unit[unit]

    dispensed = Decimal(reachable * step) / scale
    return ChangeBreakdown(amount=amount, counts=counts, remainder=amount - dispensed)


def is_greedy_canonical(denominations: Optional[Iterable[Amount]] = None) -> bool:
    """
    True when greedy change-making is optimal for every amount.

    A counterexample, if one exists, lies below the sum of the two largest
    denominations, so only that range is checked.
    """
    values = _normalize(denominations)
    if len(values) == 1:
        return True

    units, _, _, _ = _as_units(Decimal("0"), values)
    bound = units[0] + units[1]
    best, _ = _min_pieces_table(units, bound)

    for value in range(1, bound):
        if best[value] < 0:
            continue
        remaining = value
        pieces = 0
        for unit in units:
            pieces += remaining // unit
            remaining %= unit
        if remaining or pieces > best[value]:
            logger.debug(f"Greedy is not optimal for {value} units of {units}")
            return False
    return True


def change_breakdown(change_amount: Amount, denominations: Optional[Iterable[Amount]] = None) -> ChangeBreakdown:
    """Breakdown used at the register: greedy on canonical ladders, exact otherwise."""
    values = tuple(_normalize(denominations))
    if _canonical(values):
        return breakdown(change_amount, values)
    return optimal_breakdown(change_amount, values)


@lru_cache(maxsize=8)
def _canonical(values: Tuple[Decimal, ...]) -> bool:
    return is_greedy_canonical(values)

"""
Table and server allocation algorithms.

Everything here is pure: callers pass in tables and servers (model instances
or the lightweight TableInfo/ServerInfo records) and get plans back. The
persistence side lives in tables.services.

    recommend     best-fit single table, else a first-fit pair to merge
    auto_assign   first-fit decreasing server assignment with zone preference
    classify_load covers -> light / normal / heavy / overloaded
"""

from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from core_backend.errors import ValidationFailed

AVAILABLE = "available"

LOAD_LIGHT = "light"
LOAD_NORMAL = "normal"
LOAD_HEAVY = "heavy"
LOAD_OVERLOADED = "overloaded"

DEFAULT_LOAD_THRESHOLDS = {LOAD_LIGHT: 8, LOAD_NORMAL: 15, LOAD_HEAVY: 20}


@dataclass(frozen=True)
class TableInfo:
    id: Any
    number: str
    capacity: int
    status: str = AVAILABLE
    zone: str = ""
    server_id: Any = None
    merged_into_id: Any = None


@dataclass(frozen=True)
class ServerInfo:
    id: Any
    name: str
    max_tables: int
    zone: str = ""


@dataclass(frozen=True)
class Recommendation:
    """Either a single table (plus up to two alternatives) or a pair to merge."""

    party_size: int
    table: Any = None
    alternatives: Tuple[Any, ...] = ()
    combination: Tuple[Any, ...] = ()
    total_capacity: int = 0

    @property
    def found(self) -> bool:
        return self.table is not None or bool(self.combination)

    @property
    def requires_merge(self) -> bool:
        return self.table is None and bool(self.combination)


@dataclass
class AssignmentPlan:
    assignments: Dict[Any, Any] = field(default_factory=dict)  # table id -> server id
    unassigned: List[Any] = field(default_factory=list)  # table ids nobody could take
    loads: Dict[Any, int] = field(default_factory=dict)  # server id -> table count


def capacity_of(table) -> int:
    return int(getattr(table, "effective_capacity", None) or table.capacity)


def _number_key(table) -> Tuple[int, Any]:
    number = str(table.number)
    return (0, int(number)) if number.isdigit() else (1, number)


def _is_free(table) -> bool:
    return table.status == AVAILABLE and getattr(table, "merged_into_id", None) is None


def _check_party_size(party_size) -> int:
    try:
        party_size = int(party_size)
    except (TypeError, ValueError):
        raise ValidationFailed("Party size must be a whole number.", field="party_size")
    if party_size < 1:
        raise ValidationFailed("Party size must be at least 1.", field="party_size")
    return party_size


def find_combination(party_size: int, tables: Sequence[Any]) -> Optional[Tuple[Any, Any]]:
    """
    First pair of free tables (input order) whose summed capacity seats the party.
    Greedy first-fit, not an optimal packing.
    """
    party_size = _check_party_size(party_size)
    free = [t for t in tables if _is_free(t)]
    for first, second in combinations(free, 2):
        if capacity_of(first) + capacity_of(second) >= party_size:
            return first, second
    return None


def recommend(party_size: int, tables: Iterable[Any]) -> Recommendation:
    """
    Smallest free table that seats the party, ties broken by table number.
    A merge pair is only suggested when no single table fits.

    Examples:
        party of 5 with capacities [4, 2, 6] -> the 6-seat table
    """
    party_size = _check_party_size(party_size)
    tables = list(tables)

    fitting = sorted(
        (t for t in tables if _is_free(t) and capacity_of(t) >= party_size),
        key=lambda t: (capacity_of(t) - party_size, _number_key(t)),
    )
    if fitting:
        return Recommendation(
            party_size=party_size,
            table=fitting[0],
            alternatives=tuple(fitting[1:3]),
        )

    pair = find_combination(party_size, tables)
    if pair:
        return Recommendation(
            party_size=party_size,
            combination=pair,
            total_capacity=sum(capacity_of(t) for t in pair),
        )

    return Recommendation(party_size=party_size)


def auto_assign(
    tables: Iterable[Any],
    servers: Iterable[Any],
    current_loads: Optional[Mapping[Any, int]] = None,
) -> AssignmentPlan:
    """
    Load-balance tables over servers.

    Servers are ranked by descending max_tables. Tables are walked zone by
    zone; each goes to the same-zone server with the fewest tables who is
    below their cap, falling back to any server with room. Deterministic:
    ties go to the earlier-ranked server.
    """
    ranked = sorted(enumerate(servers), key=lambda pair: (-int(pair[1].max_tables), pair[0]))
    ranked = [server for _, server in ranked]

    current_loads = current_loads or {}
    plan = AssignmentPlan(loads={s.id: int(current_loads.get(s.id, 0)) for s in ranked})

    ordered_tables = sorted(tables, key=lambda t: ((t.zone or ""), _number_key(t)))
    for table in ordered_tables:
        with_room = [s for s in ranked if plan.loads[s.id] < int(s.max_tables)]
        same_zone = [s for s in with_room if (s.zone or "") == (table.zone or "")]
        pool = same_zone or with_room
        if not pool:
            plan.unassigned.append(table.id)
            continue

        chosen = min(pool, key=lambda s: plan.loads[s.id])
        plan.assignments[table.id] = chosen.id
        plan.loads[chosen.id] += 1

    return plan


def classify_load(covers: int, thresholds: Optional[Mapping[str, int]] = None) -> str:
    """Server load label from the number of covers they are serving."""
    thresholds = thresholds or DEFAULT_LOAD_THRESHOLDS
    if covers > thresholds[LOAD_HEAVY]:
        return LOAD_OVERLOADED
    if covers > thresholds[LOAD_NORMAL]:
        return LOAD_HEAVY
    if covers > thresholds[LOAD_LIGHT]:
        return LOAD_NORMAL
    return LOAD_LIGHT

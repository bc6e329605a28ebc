"""
Table Allocator Tests

The allocator is pure: these tests feed it TableInfo/ServerInfo records and
check the plans it returns. No database access.
"""
import pytest

from core_backend.errors import ValidationFailed
from tables import allocator
from tables.allocator import ServerInfo, TableInfo


def _tables(*rows):
    """rows: (number, capacity[, status[, zone]])"""
    tables = []
    for row in rows:
        number, capacity = row[0], row[1]
        status = row[2] if len(row) > 2 else "available"
        zone = row[3] if len(row) > 3 else ""
        tables.append(TableInfo(id=f"t{number}", number=str(number), capacity=capacity, status=status, zone=zone))
    return tables


class TestRecommend:
    """Best-fit single table, then first-fit merge pair"""

    def test_smallest_fitting_table(self):
        """
        CRITICAL: Verify the least wasteful table is recommended

        party of 5 with capacities [4, 2, 6] -> the 6-seat table
        """
        result = allocator.recommend(5, _tables((1, 4), (2, 2), (3, 6)))

        assert result.found
        assert result.table.number == "3"
        assert not result.requires_merge

    def test_ties_broken_by_table_number(self):
        result = allocator.recommend(3, _tables((12, 4), (3, 4), (7, 4), (9, 4)))

        assert result.table.number == "3"
        assert [t.number for t in result.alternatives] == ["7", "9"]

    def test_at_most_two_alternatives(self):
        result = allocator.recommend(2, _tables((1, 2), (2, 2), (3, 4), (4, 6)))
        assert len(result.alternatives) == 2
        assert [t.number for t in result.alternatives] == ["2", "3"]

    def test_unavailable_and_merged_tables_skipped(self):
        tables = _tables((1, 6, "occupied"), (2, 6, "cleaning"), (3, 6))
        tables.append(TableInfo(id="t4", number="4", capacity=6, merged_into_id="t3"))

        result = allocator.recommend(5, tables)

        assert result.table.number == "3"
        assert result.alternatives == ()

    def test_merge_pair_when_no_single_table_fits(self):
        result = allocator.recommend(7, _tables((1, 2), (2, 4), (3, 4)))

        assert result.table is None
        assert result.requires_merge
        assert [t.number for t in result.combination] == ["2", "3"]
        assert result.total_capacity == 8

    def test_first_fit_pair_in_input_order(self):
        result = allocator.recommend(7, _tables((1, 4), (2, 2), (3, 4)))

        assert [t.number for t in result.combination] == ["1", "3"]
        assert result.total_capacity == 8

    def test_nothing_fits(self):
        result = allocator.recommend(20, _tables((1, 4), (2, 4)))

        assert not result.found
        assert result.table is None
        assert result.combination == ()

    @pytest.mark.parametrize("party_size", [0, -2, "many"])
    def test_invalid_party_size(self, party_size):
        with pytest.raises(ValidationFailed):
            allocator.recommend(party_size, _tables((1, 4)))


class TestAutoAssign:
    """First-fit decreasing server assignment"""

    def test_respects_caps_and_zones(self):
        """
        CRITICAL: Verify no server is given more tables than their cap
        """
        tables = _tables(
            (1, 4, "available", "terrace"),
            (2, 4, "available", "terrace"),
            (3, 4, "available", "terrace"),
            (4, 4, "available", "indoor"),
            (5, 4, "available", "indoor"),
        )
        awa = ServerInfo(id="awa", name="Awa", max_tables=3, zone="terrace")
        kofi = ServerInfo(id="kofi", name="Kofi", max_tables=2, zone="indoor")

        plan = allocator.auto_assign(tables, [kofi, awa])

        assert plan.unassigned == []
        assert plan.loads == {"awa": 3, "kofi": 2}
        assert {plan.assignments[f"t{n}"] for n in (1, 2, 3)} == {"awa"}
        assert {plan.assignments[f"t{n}"] for n in (4, 5)} == {"kofi"}

    def test_falls_back_to_other_zone(self):
        tables = _tables((1, 4, "available", "terrace"), (2, 4, "available", "terrace"))
        kofi = ServerInfo(id="kofi", name="Kofi", max_tables=2, zone="indoor")

        plan = allocator.auto_assign(tables, [kofi])

        assert plan.assignments == {"t1": "kofi", "t2": "kofi"}

    def test_overflow_reported_unassigned(self):
        tables = _tables((1, 2), (2, 2), (3, 2))
        solo = ServerInfo(id="solo", name="Solo", max_tables=2)

        plan = allocator.auto_assign(tables, [solo])

        assert plan.unassigned == ["t3"]
        assert plan.loads["solo"] == 2

    def test_balances_within_zone(self):
        tables = _tables(*[(n, 4) for n in range(1, 5)])
        a = ServerInfo(id="a", name="A", max_tables=4)
        b = ServerInfo(id="b", name="B", max_tables=4)

        plan = allocator.auto_assign(tables, [a, b])

        assert plan.loads == {"a": 2, "b": 2}

    def test_existing_load_counts(self):
        tables = _tables((1, 2), (2, 2))
        a = ServerInfo(id="a", name="A", max_tables=2)
        b = ServerInfo(id="b", name="B", max_tables=2)

        plan = allocator.auto_assign(tables, [a, b], current_loads={"a": 2})

        assert plan.assignments == {"t1": "b", "t2": "b"}

    def test_deterministic(self):
        tables = _tables(*[(n, 4, "available", "terrace" if n % 2 else "indoor") for n in range(1, 9)])
        servers = [
            ServerInfo(id="a", name="A", max_tables=3, zone="terrace"),
            ServerInfo(id="b", name="B", max_tables=3, zone="indoor"),
            ServerInfo(id="c", name="C", max_tables=2),
        ]
        assert allocator.auto_assign(tables, servers).assignments == allocator.auto_assign(tables, servers).assignments


class TestClassifyLoad:

    @pytest.mark.parametrize(
        "covers,label",
        [(0, "light"), (8, "light"), (9, "normal"), (15, "normal"), (16, "heavy"), (20, "heavy"), (21, "overloaded")],
    )
    def test_default_thresholds(self, covers, label):
        assert allocator.classify_load(covers) == label

    def test_custom_thresholds(self):
        assert allocator.classify_load(5, {"light": 2, "normal": 4, "heavy": 6}) == "heavy"

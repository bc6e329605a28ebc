from typing import Iterable, List, Optional
import logging

from django.db import transaction
from django.db.models import Sum

from core_backend.errors import ConflictError, ValidationFailed
from outlets.config import engine_settings

from . import allocator
from .models import Server, Table

logger = logging.getLogger(__name__)

ACTIVE_ORDER_EXCLUDED_STATUSES = ("paid", "cancelled")


class TableService:
    """Service for table seating, merging and server assignment."""

    @staticmethod
    def _has_active_order(table: Table) -> bool:
        from orders.models import Order

        return Order.objects.filter(table=table).exclude(
            status__in=ACTIVE_ORDER_EXCLUDED_STATUSES
        ).exists()

    @staticmethod
    def recommend_for_party(outlet, party_size: int) -> allocator.Recommendation:
        """Recommend a table (or a pair to merge) among the outlet's tables."""
        tables = Table.objects.filter(outlet=outlet).select_related("merged_into")
        recommendation = allocator.recommend(party_size, tables)
        if recommendation.table is not None:
            logger.info(
                f"Party of {recommendation.party_size} at {outlet.code}: table {recommendation.table.number}"
            )
        elif recommendation.combination:
            numbers = ", ".join(t.number for t in recommendation.combination)
            logger.info(
                f"Party of {recommendation.party_size} at {outlet.code}: merge tables {numbers} "
                f"({recommendation.total_capacity} seats)"
            )
        else:
            logger.info(f"Party of {recommendation.party_size} at {outlet.code}: no table available")
        return recommendation

    @staticmethod
    @transaction.atomic
    def merge_tables(table_ids: Iterable, new_capacity: Optional[int] = None) -> Table:
        """
        Merge tables into one logical table. The first id becomes the primary.

        Raises:
            ValidationFailed: fewer than two tables, mixed outlets, or a
                new_capacity that disagrees with the summed capacity
            ConflictError: a member is not available or already merged
        """
        table_ids = list(dict.fromkeys(str(table_id) for table_id in table_ids))
        if len(table_ids) < 2:
            raise ValidationFailed("Select at least two tables to merge.", field="table_ids")

        tables = {str(t.id): t for t in Table.objects.select_for_update().filter(id__in=table_ids)}
        missing = [table_id for table_id in table_ids if table_id not in tables]
        if missing:
            raise Table.DoesNotExist(f"Tables not found: {', '.join(missing)}")

        members: List[Table] = [tables[table_id] for table_id in table_ids]
        if len({t.outlet_id for t in members}) > 1:
            raise ValidationFailed("Tables from different outlets cannot be merged.", field="table_ids")

        for table in members:
            if table.status != Table.TableStatus.AVAILABLE:
                raise ConflictError(
                    f"Table {table.number} is {table.get_status_display().lower()} and cannot be merged.",
                    resource=table,
                )
            if table.is_merge_member or table.is_merge_primary:
                raise ConflictError(f"Table {table.number} is already part of a merge.", resource=table)

        combined = sum(t.capacity for t in members)
        if new_capacity is not None and int(new_capacity) != combined:
            raise ValidationFailed(
                f"Merged capacity must equal the sum of the tables ({combined}), got {new_capacity}.",
                field="new_capacity",
            )

        primary, others = members[0], members[1:]
        primary.combined_capacity = combined
        primary.save(update_fields=["combined_capacity", "updated_at"])
        for table in others:
            table.merged_into = primary
            table.save(update_fields=["merged_into", "updated_at"])

        logger.info(
            f"Merged tables {', '.join(t.number for t in members)} into {primary.number} ({combined} seats)"
        )
        return primary

    @staticmethod
    @transaction.atomic
    def split_merged(table_id) -> List[Table]:
        """
        Reverse a merge. All members (primary included) go back to available.

        Raises:
            ValidationFailed: the table is not the primary of a merge
            ConflictError: the merged table still carries an active order
        """
        primary = Table.objects.select_for_update().get(pk=table_id)
        if primary.is_merge_member:
            primary = Table.objects.select_for_update().get(pk=primary.merged_into_id)
        if not primary.is_merge_primary:
            raise ValidationFailed(f"Table {primary.number} is not a merged table.", field="table_id")
        if TableService._has_active_order(primary):
            raise ConflictError(
                f"Table {primary.number} still has an open order; settle or transfer it before splitting.",
                resource=primary,
            )

        members = list(Table.objects.select_for_update().filter(merged_into=primary))
        for table in members:
            table.merged_into = None
            table.status = Table.TableStatus.AVAILABLE
            table.save(update_fields=["merged_into", "status", "updated_at"])

        primary.combined_capacity = None
        primary.status = Table.TableStatus.AVAILABLE
        primary.save(update_fields=["combined_capacity", "status", "updated_at"])

        logger.info(f"Split merged table {primary.number} ({len(members) + 1} tables)")
        return [primary] + members

    @staticmethod
    def seat(table: Table) -> Table:
        """Mark a table (and the members merged into it) occupied."""
        Table.objects.filter(pk=table.pk).update(status=Table.TableStatus.OCCUPIED)
        Table.objects.filter(merged_into_id=table.pk).update(status=Table.TableStatus.OCCUPIED)
        table.status = Table.TableStatus.OCCUPIED
        return table

    @staticmethod
    def release(table: Table, needs_cleaning: bool = True) -> Table:
        """Free a table after its order closes: cleaning if the party ate, available otherwise."""
        status = Table.TableStatus.CLEANING if needs_cleaning else Table.TableStatus.AVAILABLE
        Table.objects.filter(pk=table.pk).update(status=status)
        Table.objects.filter(merged_into_id=table.pk).update(status=status)
        table.status = status
        logger.info(f"Table {table.number} released ({status})")
        return table

    @staticmethod
    @transaction.atomic
    def mark_clean(table: Table) -> Table:
        table = Table.objects.select_for_update().get(pk=table.pk)
        if table.status != Table.TableStatus.CLEANING:
            raise ConflictError(f"Table {table.number} is not waiting for cleaning.", resource=table)
        return TableService.release(table, needs_cleaning=False)

    @staticmethod
    @transaction.atomic
    def auto_assign_servers(outlet) -> allocator.AssignmentPlan:
        """
        Assign on-shift servers to the outlet's unassigned, in-service tables
        and persist the plan. Tables already assigned count toward the load.
        """
        servers = list(Server.objects.filter(outlet=outlet, is_on_shift=True))
        server_ids = {s.id for s in servers}

        tables = list(
            Table.objects.select_for_update()
            .filter(outlet=outlet, merged_into__isnull=True)
            .exclude(status=Table.TableStatus.OUT_OF_ORDER)
        )

        current_loads = {}
        unassigned = []
        for table in tables:
            if table.server_id in server_ids:
                current_loads[table.server_id] = current_loads.get(table.server_id, 0) + 1
            else:
                unassigned.append(table)

        plan = allocator.auto_assign(unassigned, servers, current_loads)

        by_id = {t.id: t for t in unassigned}
        for table_id, server_id in plan.assignments.items():
            table = by_id[table_id]
            table.server_id = server_id
            table.save(update_fields=["server", "updated_at"])

        if plan.unassigned:
            logger.warning(
                f"Auto-assign at {outlet.code}: {len(plan.unassigned)} tables left without a server"
            )
        logger.info(f"Auto-assign at {outlet.code}: {len(plan.assignments)} tables assigned")
        return plan

    @staticmethod
    def server_load(server: Server) -> dict:
        """Tables, covers and load label for a server's active orders."""
        from orders.models import Order

        active_orders = Order.objects.filter(server=server).exclude(
            status__in=ACTIVE_ORDER_EXCLUDED_STATUSES
        )
        covers = active_orders.aggregate(total=Sum("customer_count"))["total"] or 0
        return {
            "server_id": server.id,
            "server_name": server.name,
            "tables": Table.objects.filter(server=server).count(),
            "covers": covers,
            "load": allocator.classify_load(covers, engine_settings.server_load_thresholds),
        }

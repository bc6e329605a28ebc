"""
The register's handle on the order it is editing.

An OrderSession replaces a shared, global cart store: the UI creates one per
register (or per open tab), passes it where it is needed and mutates the
order only through its methods. Every method returns an OperationResult and
the session's snapshot only moves forward after the database write has
committed, so a failed operation leaves the screen exactly as it was.

Each call runs inside the outlet's organization context and restores the
caller's context on the way out. Model instances returned in a result (a
Payment, a Table) are plain rows; reading their related managers, such as
``payment.settlements``, goes through the organization-scoped managers and
needs ``organization_context(outlet.organization)`` around it.
"""

from typing import Any, Callable, Iterable, Mapping, Optional
import logging
import uuid

from django.db import DatabaseError, transaction
from rest_framework import serializers

from core_backend.errors import ErrorCode, EngineError, OperationResult, PersistenceUnavailable
from outlets.managers import organization_context

from .calculators import DiscountSpec
from .models import Order, OrderItem
from .serializers import (
    AddItemSerializer,
    CreateOrderSerializer,
    CustomerCountSerializer,
    DiscountSerializer,
    ReasonSerializer,
    UpdateQuantitySerializer,
)
from .services import OrderDiscountService, OrderItemService, OrderService, ProductRef
from .snapshots import OrderSnapshot

logger = logging.getLogger(__name__)


def _first_error(detail) -> str:
    """Flatten DRF error detail into one sentence for the UI."""
    if isinstance(detail, Mapping):
        for field_name, value in detail.items():
            message = _first_error(value)
            return message if field_name == "non_field_errors" else f"{field_name}: {message}"
    if isinstance(detail, (list, tuple)) and detail:
        return _first_error(detail[0])
    return str(detail)


def _validated(serializer_class, data) -> dict:
    serializer = serializer_class(data=data)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


class OrderSession:
    """
    One register's view of its active order.

    Usage:
        session = OrderSession(outlet, cashier=request.user)
        result = session.create_order(customer_count=2, table_id=table.id)
        result = session.add_item({"id": "p1", "name": "Attieke", "price": "2500"}, quantity=2)
        if not result:
            show_error(result.message)
    """

    def __init__(self, outlet, cashier=None):
        self.outlet = outlet
        self.cashier = cashier
        self._snapshot: Optional[OrderSnapshot] = None
        self._attempt_token: Optional[str] = None
        self.last_payment = None

    @property
    def snapshot(self) -> Optional[OrderSnapshot]:
        return self._snapshot

    @property
    def has_order(self) -> bool:
        return self._snapshot is not None

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _load(self, order_id) -> OrderSnapshot:
        order = Order.objects.select_related("outlet", "table").get(pk=order_id)
        return OrderSnapshot.from_order(order)

    def _current_order(self) -> Order:
        return Order.objects.select_related("outlet", "table").get(pk=self._snapshot.id)

    def _no_order(self) -> OperationResult:
        return OperationResult.failure(ErrorCode.CONFLICT, "No order is open on this register.")

    def _run(
        self, operation: Callable[[], Any], order_id: Callable[[Any], Any] = None, reload: bool = True
    ) -> OperationResult:
        """
        Run one mutation and translate its outcome.

        Expected failures (engine errors, invalid input, an unreachable
        database) come back as failed results carrying the unchanged
        snapshot. Lookups of ids that do not exist raise, since only a bug
        produces them.
        """
        with organization_context(self.outlet.organization):
            try:
                value = operation()
            except EngineError as e:
                logger.info(f"Register operation refused ({e.code}): {e.message}")
                return OperationResult.from_exception(e, snapshot=self._snapshot)
            except serializers.ValidationError as e:
                return OperationResult.failure(ErrorCode.VALIDATION, _first_error(e.detail), snapshot=self._snapshot)
            except DatabaseError as e:
                logger.error(f"Database unavailable during register operation: {e}")
                return OperationResult.from_exception(PersistenceUnavailable(), snapshot=self._snapshot)

            target = order_id(value) if order_id else (self._snapshot.id if self._snapshot else None)
            if reload and target is not None:
                try:
                    self._snapshot = self._load(target)
                except DatabaseError as e:
                    # The write committed; the next refresh() picks it up
                    logger.warning(f"Could not reload order {target} after a committed change: {e}")
        return OperationResult.success(value, snapshot=self._snapshot)

    # ------------------------------------------------------------------
    # Opening and closing
    # ------------------------------------------------------------------

    def _create(self, data: dict) -> Order:
        from tables.models import Server, Table

        table = Table.objects.get(pk=data["table_id"], outlet=self.outlet) if data.get("table_id") else None
        server = Server.objects.get(pk=data["server_id"]) if data.get("server_id") else None
        return OrderService.create_order(
            self.outlet,
            customer_count=data["customer_count"],
            table=table,
            order_type=data.get("order_type"),
            cashier=self.cashier,
            server=server,
            guest_id=data.get("guest_id"),
            folio_id=data.get("folio_id"),
            notes=data.get("notes", ""),
        )

    def create_order(self, customer_count: int = 1, table_id=None, **fields) -> OperationResult:
        """Open a new order and make it the session's active order."""

        def operation():
            data = _validated(CreateOrderSerializer, dict(fields, customer_count=customer_count, table_id=table_id))
            return self._create(data)

        result = self._run(operation, order_id=lambda order: order.pk)
        if result:
            self._attempt_token = None
            self.last_payment = None
        return result

    def open_order(self, order_id) -> OperationResult:
        """Resume editing an existing order of this outlet."""

        def operation():
            order = Order.objects.get(pk=order_id, outlet=self.outlet)
            return order

        result = self._run(operation, order_id=lambda order: order.pk)
        if result:
            self._attempt_token = None
        return result

    def clear_order(self) -> OperationResult:
        """Forget the active order locally. Nothing persisted is touched."""
        self._snapshot = None
        self._attempt_token = None
        self.last_payment = None
        return OperationResult.success()

    def refresh(self) -> OperationResult:
        """Re-read the active order; applied only if it is not older than ours."""
        if self._snapshot is None:
            return OperationResult.success()
        with organization_context(self.outlet.organization):
            try:
                remote = self._load(self._snapshot.id)
            except DatabaseError as e:
                logger.error(f"Database unavailable during refresh: {e}")
                return OperationResult.from_exception(PersistenceUnavailable(), snapshot=self._snapshot)
        applied = self.apply_remote_snapshot(remote)
        return OperationResult.success(applied, snapshot=self._snapshot)

    def apply_remote_snapshot(self, snapshot: OrderSnapshot) -> bool:
        """
        Last-writer-wins on the whole order: a remote snapshot replaces ours
        only when its version is at least ours.
        """
        if snapshot is None or self._snapshot is None or snapshot.id != self._snapshot.id:
            return False
        if snapshot.version < self._snapshot.version:
            logger.debug(
                f"Ignoring stale snapshot of {snapshot.order_number} "
                f"(v{snapshot.version} < v{self._snapshot.version})"
            )
            return False
        self._snapshot = snapshot
        return True

    # ------------------------------------------------------------------
    # Cart editing
    # ------------------------------------------------------------------

    def add_item(self, product: Any, quantity: int = 1, special_instructions: str = "") -> OperationResult:
        """
        Add a product. With no order open, a takeaway order is opened first
        in the same transaction, the way a register starts a fresh cart.
        """

        def operation():
            if isinstance(product, Mapping):
                data = _validated(
                    AddItemSerializer,
                    {"product": product, "quantity": quantity, "special_instructions": special_instructions},
                )
                ref, qty, notes = ProductRef.coerce(data["product"]), data["quantity"], data["special_instructions"]
            else:
                ref, qty, notes = ProductRef.coerce(product), quantity, special_instructions

            with transaction.atomic():
                if self._snapshot is None:
                    order = self._create(_validated(CreateOrderSerializer, {}))
                else:
                    order = self._current_order()
                return OrderItemService.add_item(order, ref, qty, notes)

        return self._run(operation, order_id=lambda item: item.order_id)

    def update_quantity(self, item_id, quantity: int) -> OperationResult:
        if self._snapshot is None:
            return self._no_order()
        item = self._item(item_id)

        def operation():
            data = _validated(UpdateQuantitySerializer, {"quantity": quantity})
            return OrderItemService.update_quantity(item, data["quantity"])

        return self._run(operation)

    def remove_item(self, item_id) -> OperationResult:
        if self._snapshot is None:
            return self._no_order()
        item = self._item(item_id)
        return self._run(lambda: OrderItemService.remove_item(item))

    def cancel_item(self, item_id, reason: str) -> OperationResult:
        if self._snapshot is None:
            return self._no_order()
        item = self._item(item_id)

        def operation():
            data = _validated(ReasonSerializer, {"reason": reason})
            return OrderItemService.cancel_item(item, data["reason"])

        return self._run(operation)

    def _item(self, item_id) -> OrderItem:
        with organization_context(self.outlet.organization):
            return OrderItem.objects.get(pk=item_id, order_id=self._snapshot.id)

    def apply_discount(self, discount_type: str, value=0) -> OperationResult:
        if self._snapshot is None:
            return self._no_order()

        def operation():
            data = _validated(DiscountSerializer, {"discount_type": discount_type, "value": value})
            spec = DiscountSpec.from_raw(data["discount_type"], data["value"])
            return OrderDiscountService.apply_discount(self._current_order(), spec)

        return self._run(operation)

    def update_customer_count(self, customer_count: int) -> OperationResult:
        if self._snapshot is None:
            return self._no_order()

        def operation():
            data = _validated(CustomerCountSerializer, {"customer_count": customer_count})
            return OrderService.update_customer_count(self._current_order(), data["customer_count"])

        return self._run(operation)

    # ------------------------------------------------------------------
    # Kitchen and tables
    # ------------------------------------------------------------------

    def send_to_kitchen(self) -> OperationResult:
        """Fire pending lines; the result's value is a FireResult."""
        from kds.services import KitchenService

        if self._snapshot is None:
            return self._no_order()
        result = self._run(lambda: KitchenService.send_to_kitchen(self._current_order()))
        if result and result.value.nothing_to_send:
            return OperationResult.success(result.value, snapshot=result.snapshot, message="Nothing new to send.")
        return result

    def cancel_order(self, reason: str) -> OperationResult:
        if self._snapshot is None:
            return self._no_order()

        def operation():
            data = _validated(ReasonSerializer, {"reason": reason})
            return OrderService.cancel_order(self._current_order(), data["reason"])

        return self._run(operation)

    def transfer_table(self, table_id) -> OperationResult:
        from tables.models import Table

        if self._snapshot is None:
            return self._no_order()

        def operation():
            table = Table.objects.get(pk=table_id, outlet=self.outlet)
            return OrderService.transfer_table(self._current_order(), table)

        return self._run(operation)

    def recommend_table(self, party_size: int) -> OperationResult:
        """Table recommendation for a walk-in party; does not touch the active order."""
        from tables.serializers import PartySizeSerializer
        from tables.services import TableService

        def operation():
            data = _validated(PartySizeSerializer, {"party_size": party_size})
            return TableService.recommend_for_party(self.outlet, data["party_size"])

        return self._run(operation, reload=False)

    def merge_tables(self, table_ids: Iterable, new_capacity: int = None) -> OperationResult:
        from tables.serializers import MergeTablesSerializer
        from tables.services import TableService

        def operation():
            data = _validated(MergeTablesSerializer, {"table_ids": list(table_ids), "new_capacity": new_capacity})
            return TableService.merge_tables(data["table_ids"], data.get("new_capacity"))

        return self._run(operation, reload=False)

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def _settle(self, tenders, mode: str, attempt_token: str = None) -> OperationResult:
        """
        Settle the active order. A failed checkout keeps its attempt token,
        so pressing pay again resumes the same attempt instead of charging twice.
        """
        from payments.services import PaymentService

        if self._snapshot is None:
            return self._no_order()
        if attempt_token:
            self._attempt_token = str(attempt_token)
        elif self._attempt_token is None:
            self._attempt_token = uuid.uuid4().hex

        token = self._attempt_token
        result = self._run(lambda: PaymentService.settle(self._current_order(), tenders, token, mode))
        if result:
            self.last_payment = result.value
            self._attempt_token = None
        return result

    def _checkout(self, mode: str, tenders: Iterable[Mapping], attempt_token: str = None) -> OperationResult:
        from payments.serializers import SettlePaymentSerializer

        try:
            data = _validated(
                SettlePaymentSerializer,
                {"attempt_token": attempt_token, "mode": mode, "tenders": list(tenders)},
            )
        except serializers.ValidationError as e:
            return OperationResult.failure(ErrorCode.VALIDATION, _first_error(e.detail), snapshot=self._snapshot)
        return self._settle(data["tenders"], mode=data["mode"], attempt_token=data.get("attempt_token"))

    def checkout(self, method: str, amount_tendered=None, reference: str = "", attempt_token: str = None) -> OperationResult:
        """Pay the whole bill with one instrument. Cash may overpay; the rest is change."""
        tender = {"method": method, "amount_tendered": amount_tendered, "reference": reference}
        return self._checkout("single", [tender], attempt_token)

    def checkout_split(self, tenders: Iterable[Mapping], attempt_token: str = None) -> OperationResult:
        """Pay with several instruments whose amounts add up to the bill."""
        return self._checkout("split", tenders, attempt_token)

    def charge_to_room(self, folio_id: str = None, attempt_token: str = None) -> OperationResult:
        """Post the bill to a guest folio (the order's own folio by default)."""
        tender = {"method": "room_charge", "reference": (folio_id or "").strip()}
        return self._checkout("room_charge", [tender], attempt_token)

    def suggest_split(self, parts: int) -> OperationResult:
        """Even shares of the active bill for a number of guests; writes nothing."""
        from payments.serializers import EvenSplitSerializer
        from payments.services import PaymentService

        if self._snapshot is None:
            return self._no_order()
        try:
            data = _validated(EvenSplitSerializer, {"parts": parts})
        except serializers.ValidationError as e:
            return OperationResult.failure(ErrorCode.VALIDATION, _first_error(e.detail), snapshot=self._snapshot)
        shares = PaymentService.suggest_even_split(
            self._snapshot.total_amount, data["parts"], self._snapshot.currency
        )
        return OperationResult.success(shares, snapshot=self._snapshot)

    def acknowledge_change(self) -> OperationResult:
        """Confirm the change was handed back for the last payment."""
        from payments.services import PaymentService

        if self.last_payment is None:
            return OperationResult.failure(ErrorCode.CONFLICT, "There is no payment waiting for change.")
        payment = self.last_payment
        result = self._run(lambda: PaymentService.acknowledge_change(payment))
        if result:
            self.last_payment = result.value
        return result

from __future__ import annotations

import itertools
import logging
from collections import Counter
from contextlib import ExitStack
from dataclasses import replace
from threading import Lock
from typing import Any, Iterable

from restaurant_pos.core.clock import Clock, utcnow
from restaurant_pos.core.config import Settings
from restaurant_pos.core.errors import InvalidTransition, NotFoundError, ValidationError
from restaurant_pos.models.order import (
    ACTIVE_STATUSES,
    ALLOWED_TRANSITIONS,
    CANCELLED,
    CLOSED_STATUSES,
    DINE_IN,
    FIXED,
    KITCHEN_STATUSES,
    ORDER_MODES,
    ORDER_STATUSES,
    PAID,
    PENDING,
    PREPARING,
    READY,
    TAKEAWAY,
    Discount,
    Order,
    OrderLine,
    TimelineEntry,
)
from restaurant_pos.services.event_bus import (
    ORDER_CREATED,
    ORDER_LINES_CHANGED,
    ORDER_MERGED,
    ORDER_SPLIT,
    ORDER_STATUS_CHANGED,
    EventBus,
)
from restaurant_pos.services.inventory import InventoryLedger
from restaurant_pos.services.pricing import compute_totals
from restaurant_pos.services.tables import TableRegistry

logger = logging.getLogger(__name__)


def _order_number(order_id: int) -> str:
    return f"ORD-{order_id:04d}"


class OrderStore:
    """Owner of every Order aggregate.

    Status changes, line edits, splits and merges all run under the lock of
    each order involved. Inventory is deducted exactly once, on the first
    entry into ``preparing``; a shortfall aborts that transition.
    Events are emitted after the order locks are released.
    """

    def __init__(
        self,
        settings: Settings,
        inventory: InventoryLedger,
        events: EventBus,
        tables: TableRegistry | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._settings = settings
        self._inventory = inventory
        self._events = events
        self._tables = tables
        self._clock = clock
        self._orders: dict[int, Order] = {}
        self._order_locks: dict[int, Lock] = {}
        self._by_key: dict[str, int] = {}
        self._lock = Lock()
        self._order_seq = itertools.count(1)
        self._line_seq = itertools.count(1)

    # -- helpers ----------------------------------------------------------

    def _reprice(self, order: Order) -> None:
        order.totals = compute_totals(order.lines, order.discount, order.tax_rate, order.service_charge_rate)

    def _lock_for(self, order_id: int) -> Lock:
        with self._lock:
            lock = self._order_locks.get(order_id)
        if lock is None:
            raise NotFoundError(f"Order {order_id} not found")
        return lock

    def _status_payload(self, order: Order, previous: str | None) -> dict[str, Any]:
        return {
            "order_id": order.id,
            "order_number": order.order_number,
            "status": order.status,
            "previous_status": previous,
            "table_id": order.table_id,
        }

    def _renumber(self, lines: Iterable[OrderLine]) -> list[OrderLine]:
        return [replace(line, id=next(self._line_seq)) for line in lines]

    # -- creation ---------------------------------------------------------

    def create_order(
        self,
        lines: Iterable[OrderLine],
        *,
        mode: str | None = None,
        table_id: int | None = None,
        staff_id: str | None = None,
        discount: Discount | None = None,
        idempotency_key: str | None = None,
    ) -> Order:
        lines = list(lines)
        if not lines:
            raise ValidationError("Order must have at least one line")
        for line in lines:
            if line.quantity <= 0:
                raise ValidationError("Quantity must be a positive integer")
        mode = mode or (DINE_IN if table_id is not None else TAKEAWAY)
        if mode not in ORDER_MODES:
            raise ValidationError(f"Unknown order mode: {mode}")
        if self._tables is not None and table_id is not None:
            self._tables.ensure_seatable(table_id)

        now = self._clock()
        with self._lock:
            if idempotency_key and idempotency_key in self._by_key:
                existing = self._orders.get(self._by_key[idempotency_key])
                if existing is not None:
                    logger.info("order replayed idempotency_key=%s order_id=%s", idempotency_key, existing.id)
                    return existing
            order_id = next(self._order_seq)
            order = Order(
                id=order_id,
                order_number=_order_number(order_id),
                mode=mode,
                lines=self._renumber(lines),
                tax_rate=self._settings.tax_rate,
                service_charge_rate=self._settings.service_charge_rate,
                created_at=now,
                updated_at=now,
                timeline=[TimelineEntry(PENDING, now, "Order created")],
                table_id=table_id,
                staff_id=staff_id,
                discount=discount,
                idempotency_key=idempotency_key,
            )
            self._reprice(order)
            self._orders[order.id] = order
            self._order_locks[order.id] = Lock()
            if idempotency_key:
                self._by_key[idempotency_key] = order.id

        if self._tables is not None and table_id is not None:
            try:
                self._tables.seat(table_id, order.id, staff_id=staff_id)
            except ValidationError:
                self._discard(order)
                raise
        logger.info("order created order_id=%s mode=%s lines=%s", order.id, mode, len(order.lines))
        self._events.emit(
            ORDER_CREATED,
            {"order_id": order.id, "order_number": order.order_number, "table_id": table_id, "mode": mode},
        )
        return order

    def _discard(self, order: Order) -> None:
        with self._lock:
            self._orders.pop(order.id, None)
            self._order_locks.pop(order.id, None)
            if order.idempotency_key and self._by_key.get(order.idempotency_key) == order.id:
                del self._by_key[order.idempotency_key]
        logger.warning("order discarded order_id=%s table_id=%s", order.id, order.table_id)

    # -- lifecycle --------------------------------------------------------

    def transition(self, order_id: int, new_status: str, note: str = "") -> Order:
        if new_status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {new_status}")
        with self._lock_for(order_id):
            order = self.get(order_id)
            previous = order.status
            if new_status not in ALLOWED_TRANSITIONS[previous]:
                logger.warning("order transition rejected order_id=%s from=%s to=%s", order_id, previous, new_status)
                raise InvalidTransition(previous, new_status)
            if new_status == PREPARING and not order.inventory_deducted:
                requirement = self._inventory.compute_requirement(order.lines)
                self._inventory.deduct(requirement, order_id=order.id, note=order.order_number)
                order.inventory_deducted = True
            now = self._clock()
            order.status = new_status
            order.updated_at = now
            if new_status == PAID:
                order.paid_at = now
            order.timeline.append(TimelineEntry(new_status, now, note or ""))

        if new_status in CLOSED_STATUSES and self._tables is not None and order.table_id is not None:
            self._tables.release(order.table_id, order.id)
        logger.info("order status changed order_id=%s from=%s to=%s", order_id, previous, new_status)
        self._events.emit(ORDER_STATUS_CHANGED, self._status_payload(order, previous))
        return order

    def cancel(self, order_id: int, reason: str = "") -> Order:
        return self.transition(order_id, CANCELLED, reason)

    # -- line edits -------------------------------------------------------

    def _lines_changed(self, order: Order) -> None:
        logger.info("order lines changed order_id=%s lines=%s", order.id, len(order.lines))
        self._events.emit(ORDER_LINES_CHANGED, {"order_id": order.id, "line_ids": [line.id for line in order.lines]})

    def _editable(self, order: Order) -> None:
        if order.status != PENDING:
            raise ValidationError(f"Order {order.order_number} can only be edited while pending")

    def add_line(self, order_id: int, line: OrderLine) -> Order:
        if line.quantity <= 0:
            raise ValidationError("Quantity must be a positive integer")
        with self._lock_for(order_id):
            order = self.get(order_id)
            self._editable(order)
            for index, existing in enumerate(order.lines):
                if existing.item_id == line.item_id and existing.modifier_ids == line.modifier_ids:
                    order.lines[index] = replace(existing, quantity=existing.quantity + line.quantity)
                    break
            else:
                order.lines.extend(self._renumber([line]))
            self._reprice(order)
            order.updated_at = self._clock()
        self._lines_changed(order)
        return order

    def remove_line(self, order_id: int, line_id: int) -> Order:
        with self._lock_for(order_id):
            order = self.get(order_id)
            self._editable(order)
            remaining = [line for line in order.lines if line.id != line_id]
            if len(remaining) == len(order.lines):
                raise NotFoundError(f"Order line {line_id} not found")
            if not remaining:
                raise ValidationError("Order must keep at least one line; cancel it instead")
            order.lines = remaining
            self._reprice(order)
            order.updated_at = self._clock()
        self._lines_changed(order)
        return order

    def update_line_quantity(self, order_id: int, line_id: int, quantity: int) -> Order:
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("Quantity must be an integer")
        if quantity <= 0:
            return self.remove_line(order_id, line_id)
        with self._lock_for(order_id):
            order = self.get(order_id)
            self._editable(order)
            for index, line in enumerate(order.lines):
                if line.id == line_id:
                    order.lines[index] = replace(line, quantity=quantity)
                    break
            else:
                raise NotFoundError(f"Order line {line_id} not found")
            self._reprice(order)
            order.updated_at = self._clock()
        self._lines_changed(order)
        return order

    # -- restructuring ----------------------------------------------------

    def split_order(self, order_id: int, line_ids: Iterable[int]) -> tuple[Order, Order]:
        """Move whole lines into a new order; both sides keep at least one line."""
        wanted = set(line_ids)
        if not wanted:
            raise ValidationError("Select at least one line to split")
        with self._lock_for(order_id):
            order = self.get(order_id)
            if order.status in CLOSED_STATUSES:
                raise ValidationError(f"Cannot split a {order.status} order")
            present = {line.id for line in order.lines}
            missing = wanted - present
            if missing:
                raise NotFoundError(f"Order lines {sorted(missing)} not found")
            if wanted == present:
                raise ValidationError("Split must leave at least one line on the original order")

            moved = [line for line in order.lines if line.id in wanted]
            order.lines = [line for line in order.lines if line.id not in wanted]
            now = self._clock()
            with self._lock:
                new_id = next(self._order_seq)
                new_order = Order(
                    id=new_id,
                    order_number=_order_number(new_id),
                    mode=order.mode,
                    lines=moved,
                    tax_rate=order.tax_rate,
                    service_charge_rate=order.service_charge_rate,
                    created_at=now,
                    updated_at=now,
                    status=order.status,
                    timeline=[TimelineEntry(order.status, now, f"Split from {order.order_number}")],
                    table_id=order.table_id,
                    staff_id=order.staff_id,
                    # a fixed amount was granted once, it stays with the original bill
                    discount=None if order.discount is None or order.discount.kind == FIXED else order.discount,
                    inventory_deducted=order.inventory_deducted,
                    parent_order_id=order.id,
                )
                self._orders[new_order.id] = new_order
                self._order_locks[new_order.id] = Lock()
            order.timeline.append(TimelineEntry(order.status, now, f"Split into {new_order.order_number}"))
            order.updated_at = now
            self._reprice(order)
            self._reprice(new_order)

        if self._tables is not None and new_order.table_id is not None:
            self._tables.seat(new_order.table_id, new_order.id)
        logger.info("order split order_id=%s new_order_id=%s lines=%s", order.id, new_order.id, len(moved))
        self._events.emit(
            ORDER_SPLIT,
            {
                "order_id": order.id,
                "new_order_id": new_order.id,
                "new_order_number": new_order.order_number,
                "line_ids": sorted(wanted),
            },
        )
        return order, new_order

    def merge_orders(self, primary_id: int, secondary_id: int) -> Order:
        if primary_id == secondary_id:
            raise ValidationError("Cannot merge an order with itself")
        locks = {primary_id: self._lock_for(primary_id), secondary_id: self._lock_for(secondary_id)}
        with ExitStack() as stack:
            for key in sorted(locks):
                stack.enter_context(locks[key])
            primary = self.get(primary_id)
            secondary = self.get(secondary_id)
            if primary.status in CLOSED_STATUSES or secondary.status in CLOSED_STATUSES:
                raise ValidationError("Cannot merge paid or cancelled orders")
            if primary.status != secondary.status:
                raise ValidationError(
                    f"Orders must share a status to merge ({primary.status} != {secondary.status})"
                )
            now = self._clock()
            primary.lines.extend(secondary.lines)
            primary.timeline.append(TimelineEntry(primary.status, now, f"Merged {secondary.order_number}"))
            primary.updated_at = now
            self._reprice(primary)
            with self._lock:
                self._orders.pop(secondary.id, None)
                self._order_locks.pop(secondary.id, None)
                if secondary.idempotency_key:
                    self._by_key[secondary.idempotency_key] = primary.id

        if self._tables is not None and secondary.table_id is not None:
            self._tables.release(secondary.table_id, secondary.id)
        logger.info("orders merged primary_id=%s secondary_id=%s", primary.id, secondary.id)
        self._events.emit(
            ORDER_MERGED,
            {"order_id": primary.id, "merged_order_id": secondary.id, "table_id": primary.table_id},
        )
        return primary

    def transfer_order(self, order_id: int, table_id: int | None = None, staff_id: str | None = None) -> Order:
        if table_id is None and staff_id is None:
            raise ValidationError("Nothing to transfer")
        with self._lock_for(order_id):
            order = self.get(order_id)
            if order.status in CLOSED_STATUSES:
                raise ValidationError(f"Cannot transfer a {order.status} order")
            previous_table = order.table_id
            if table_id is not None and self._tables is not None:
                self._tables.transfer(order.id, previous_table, table_id, staff_id=staff_id)
            if table_id is not None:
                order.table_id = table_id
                order.mode = DINE_IN
            if staff_id is not None:
                order.staff_id = staff_id
            order.updated_at = self._clock()
        logger.info(
            "order transferred order_id=%s from_table=%s to_table=%s staff_id=%s",
            order_id,
            previous_table,
            order.table_id,
            order.staff_id,
        )
        return order

    # -- queries ----------------------------------------------------------

    def get(self, order_id: int) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def all_orders(self) -> list[Order]:
        with self._lock:
            return sorted(self._orders.values(), key=lambda order: order.id)

    def list_orders(
        self,
        status: str | None = None,
        table_id: int | None = None,
        staff_id: str | None = None,
    ) -> list[Order]:
        orders = self.all_orders()
        if status:
            orders = [order for order in orders if order.status == status]
        if table_id is not None:
            orders = [order for order in orders if order.table_id == table_id]
        if staff_id:
            orders = [order for order in orders if order.staff_id == staff_id]
        return orders

    def active_orders(self) -> list[Order]:
        return [order for order in self.all_orders() if order.status in ACTIVE_STATUSES]

    def kitchen_orders(self) -> list[Order]:
        return [order for order in self.all_orders() if order.status in KITCHEN_STATUSES]

    def ready_orders(self) -> list[Order]:
        return self.list_orders(status=READY)

    def statistics(self) -> dict[str, Any]:
        orders = self.all_orders()
        by_status = Counter(order.status for order in orders)
        paid = [order for order in orders if order.status == PAID]
        revenue = sum(order.totals.total for order in paid)
        return {
            "total_orders": len(orders),
            "by_status": {status: by_status.get(status, 0) for status in ORDER_STATUSES},
            "active_orders": sum(by_status.get(status, 0) for status in ACTIVE_STATUSES),
            "revenue": revenue,
            "average_order_value": revenue / len(paid) if paid else 0.0,
        }

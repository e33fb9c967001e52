from __future__ import annotations

import itertools
import logging
from contextlib import ExitStack, contextmanager
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Iterable, Iterator

from restaurant_pos.core.clock import Clock, utcnow
from restaurant_pos.core.config import Settings
from restaurant_pos.core.errors import InsufficientStock, NotFoundError, ValidationError
from restaurant_pos.models.inventory import (
    ADJUSTMENT,
    AUTO_REORDER,
    EXPIRY_WARNING,
    LOW_STOCK,
    ORDER_SALE,
    OUT_OF_STOCK,
    PURCHASE_ORDER,
    PURCHASE_ORDER_APPROVAL,
    RESTOCK,
    WASTE,
    Alert,
    InventoryItem,
    PurchaseOrder,
    PurchaseOrderLine,
    RecipeLine,
    Shortfall,
    StockMovement,
    Supplier,
    WasteEntry,
)
from restaurant_pos.models.order import OrderLine
from restaurant_pos.services.event_bus import (
    INVENTORY_EXPIRING,
    INVENTORY_LOW_STOCK,
    INVENTORY_OUT_OF_STOCK,
    EventBus,
)

logger = logging.getLogger(__name__)

PO_PENDING = "pending"
PO_PENDING_APPROVAL = "pending_approval"
PO_RECEIVED = "received"

# decimal places kept for stock quantities
STOCK_PRECISION = 6

_ALERT_EVENTS = {
    LOW_STOCK: INVENTORY_LOW_STOCK,
    OUT_OF_STOCK: INVENTORY_OUT_OF_STOCK,
    EXPIRY_WARNING: INVENTORY_EXPIRING,
}


def _quantity(value: float) -> float:
    return round(value, STOCK_PRECISION)


def _days_until(moment: datetime, now: datetime) -> int:
    return (moment.date() - now.date()).days


class InventoryLedger:
    """Ingredient stock, recipes and the append-only movement ledger.

    Every stock change goes through ``_apply_movement`` while the item lock is
    held. Multi-ingredient deductions take the locks in sorted id order and
    check the whole requirement before touching any balance.
    """

    def __init__(
        self,
        settings: Settings,
        events: EventBus,
        clock: Clock = utcnow,
    ) -> None:
        self._settings = settings
        self._events = events
        self._clock = clock
        self._items: dict[str, InventoryItem] = {}
        self._item_locks: dict[str, Lock] = {}
        self._recipes: dict[int, list[RecipeLine]] = {}
        self._modifier_recipes: dict[int, list[RecipeLine]] = {}
        self._suppliers: dict[str, Supplier] = {}
        self._movements: list[StockMovement] = []
        self._alerts: list[Alert] = []
        self._tripped: dict[tuple[str, str], str] = {}
        self._waste: list[WasteEntry] = []
        self._purchase_orders: dict[str, PurchaseOrder] = {}
        self._lock = Lock()
        self._movement_seq = itertools.count(1)
        self._alert_seq = itertools.count(1)
        self._waste_seq = itertools.count(1)
        self._po_seq = itertools.count(1)

    # -- registration -----------------------------------------------------

    def add_item(self, item: InventoryItem) -> InventoryItem:
        if item.current_stock < 0:
            raise ValidationError("Stock must not be negative")
        with self._lock:
            self._items[item.id] = item
            self._item_locks.setdefault(item.id, Lock())
        return item

    def add_supplier(self, supplier: Supplier) -> Supplier:
        with self._lock:
            self._suppliers[supplier.id] = supplier
        return supplier

    def set_recipe(self, menu_item_id: int, lines: Iterable[RecipeLine]) -> None:
        self._recipes[menu_item_id] = list(lines)

    def set_modifier_recipe(self, modifier_id: int, lines: Iterable[RecipeLine]) -> None:
        self._modifier_recipes[modifier_id] = list(lines)

    def recipe_for(self, menu_item_id: int) -> list[RecipeLine]:
        return list(self._recipes.get(menu_item_id, []))

    def get_item(self, inventory_id: str) -> InventoryItem:
        item = self._items.get(inventory_id)
        if item is None:
            raise NotFoundError(f"Inventory item {inventory_id} not found")
        return item

    def list_items(self, category: str | None = None) -> list[InventoryItem]:
        items = sorted(self._items.values(), key=lambda item: item.id)
        if category:
            items = [item for item in items if item.category == category]
        return items

    def get_supplier(self, supplier_id: str) -> Supplier:
        supplier = self._suppliers.get(supplier_id)
        if supplier is None:
            raise NotFoundError(f"Supplier {supplier_id} not found")
        return supplier

    def list_suppliers(self) -> list[Supplier]:
        return sorted(self._suppliers.values(), key=lambda supplier: supplier.id)

    # -- deduction --------------------------------------------------------

    def compute_requirement(self, lines: Iterable[OrderLine]) -> dict[str, float]:
        requirement: dict[str, float] = {}
        for line in lines:
            recipe = list(self._recipes.get(line.item_id, []))
            for modifier in line.modifiers:
                recipe.extend(self._modifier_recipes.get(modifier.id, []))
            for recipe_line in recipe:
                requirement[recipe_line.inventory_id] = _quantity(
                    requirement.get(recipe_line.inventory_id, 0.0) + recipe_line.quantity * line.quantity
                )
        return requirement

    def check(self, requirement: dict[str, float]) -> list[Shortfall]:
        shortfalls: list[Shortfall] = []
        for inventory_id in sorted(requirement):
            required = _quantity(requirement[inventory_id])
            item = self._items.get(inventory_id)
            if item is None:
                shortfalls.append(Shortfall(inventory_id, inventory_id, required, 0.0))
                continue
            if _quantity(item.current_stock) < required:
                shortfalls.append(Shortfall(inventory_id, item.name, required, item.current_stock))
        return shortfalls

    @contextmanager
    def _locked(self, inventory_ids: Iterable[str]) -> Iterator[None]:
        with ExitStack() as stack:
            for inventory_id in sorted(set(inventory_ids)):
                lock = self._item_locks.get(inventory_id)
                if lock is not None:
                    stack.enter_context(lock)
            yield

    def deduct(
        self,
        requirement: dict[str, float],
        reason: str = ORDER_SALE,
        order_id: int | None = None,
        note: str = "",
    ) -> list[StockMovement]:
        requirement = {key: _quantity(value) for key, value in requirement.items() if _quantity(value) > 0}
        if not requirement:
            return []
        with self._locked(requirement):
            shortfalls = self.check(requirement)
            if shortfalls:
                logger.warning(
                    "stock deduction rejected order_id=%s shortfalls=%s",
                    order_id,
                    [shortfall.inventory_id for shortfall in shortfalls],
                )
                raise InsufficientStock(shortfalls)
            movements = [
                self._apply_movement(self._items[inventory_id], -quantity, reason, order_id=order_id, note=note)
                for inventory_id, quantity in sorted(requirement.items())
            ]
        logger.info("stock deducted order_id=%s ingredients=%s", order_id, len(movements))
        self.evaluate_alerts(requirement.keys())
        return movements

    def _apply_movement(
        self,
        item: InventoryItem,
        delta: float,
        reason: str,
        order_id: int | None = None,
        note: str = "",
        cost: float | None = None,
    ) -> StockMovement:
        previous = item.current_stock
        item.current_stock = _quantity(previous + delta)
        movement = StockMovement(
            id=f"MOV{next(self._movement_seq):05d}",
            inventory_id=item.id,
            delta=delta,
            reason=reason,
            previous_stock=previous,
            resulting_balance=item.current_stock,
            cost=cost if cost is not None else abs(delta) * item.unit_cost,
            timestamp=self._clock(),
            order_id=order_id,
            note=note,
        )
        with self._lock:
            self._movements.append(movement)
        return movement

    # -- manual movements -------------------------------------------------

    def add_stock(
        self,
        inventory_id: str,
        quantity: float,
        reason: str = RESTOCK,
        cost: float | None = None,
        note: str = "",
    ) -> StockMovement:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")
        item = self.get_item(inventory_id)
        with self._locked([inventory_id]):
            movement = self._apply_movement(item, quantity, reason, note=note, cost=cost)
            item.last_restocked = movement.timestamp
        logger.info("stock added inventory_id=%s quantity=%s", inventory_id, quantity)
        self.evaluate_alerts([inventory_id])
        return movement

    def record_waste(self, inventory_id: str, quantity: float, reason: str) -> WasteEntry:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")
        if not reason:
            raise ValidationError("Reason is required for waste")
        item = self.get_item(inventory_id)
        with self._locked([inventory_id]):
            if _quantity(item.current_stock) < _quantity(quantity):
                shortfall = Shortfall(item.id, item.name, quantity, item.current_stock)
                raise InsufficientStock([shortfall], "Insufficient stock to record waste")
            movement = self._apply_movement(item, -quantity, WASTE, note=reason)
        entry = WasteEntry(
            id=f"WST{next(self._waste_seq):04d}",
            inventory_id=item.id,
            quantity=quantity,
            reason=reason,
            cost=movement.cost,
            recorded_at=movement.timestamp,
        )
        with self._lock:
            self._waste.append(entry)
        logger.info("waste recorded inventory_id=%s quantity=%s reason=%s", inventory_id, quantity, reason)
        self.evaluate_alerts([inventory_id])
        return entry

    def adjust_stock(self, inventory_id: str, new_level: float, reason: str) -> StockMovement:
        if not reason:
            raise ValidationError("Reason is required for adjustment")
        if new_level < 0:
            raise ValidationError("Stock must not be negative")
        item = self.get_item(inventory_id)
        with self._locked([inventory_id]):
            movement = self._apply_movement(item, new_level - item.current_stock, ADJUSTMENT, note=reason)
        logger.info(
            "stock adjusted inventory_id=%s from=%s to=%s",
            inventory_id,
            movement.previous_stock,
            movement.resulting_balance,
        )
        self.evaluate_alerts([inventory_id])
        return movement

    # -- queries ----------------------------------------------------------

    def low_stock_items(self) -> list[InventoryItem]:
        return [item for item in self.list_items() if item.current_stock <= item.min_stock_level]

    def out_of_stock_items(self) -> list[InventoryItem]:
        return [item for item in self.list_items() if item.current_stock <= 0]

    def expiring_soon(self, days: int | None = None) -> list[InventoryItem]:
        window = self._settings.expiry_warning_days if days is None else days
        now = self._clock()
        return [
            item
            for item in self.list_items()
            if item.track_expiry and item.expiry_date is not None and _days_until(item.expiry_date, now) <= window
        ]

    def items_needing_reorder(self) -> list[InventoryItem]:
        return [item for item in self.list_items() if item.auto_reorder and item.current_stock <= item.reorder_point]

    def total_value(self) -> float:
        return sum(item.current_stock * item.unit_cost for item in self._items.values())

    def movements(
        self,
        inventory_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        reason: str | None = None,
    ) -> list[StockMovement]:
        with self._lock:
            movements = list(self._movements)
        if inventory_id:
            movements = [movement for movement in movements if movement.inventory_id == inventory_id]
        if since:
            movements = [movement for movement in movements if movement.timestamp >= since]
        if until:
            movements = [movement for movement in movements if movement.timestamp < until]
        if reason:
            movements = [movement for movement in movements if movement.reason == reason]
        return movements

    def waste_entries(self) -> list[WasteEntry]:
        with self._lock:
            return list(self._waste)

    def statistics(self) -> dict[str, Any]:
        return {
            "total_items": len(self._items),
            "total_value": self.total_value(),
            "low_stock_count": len(self.low_stock_items()),
            "out_of_stock_count": len(self.out_of_stock_items()),
            "expiring_count": len(self.expiring_soon()),
            "reorder_count": len(self.items_needing_reorder()),
            "active_alerts": len(self.active_alerts()),
            "waste_cost": sum(entry.cost for entry in self.waste_entries()),
            "movement_count": len(self.movements()),
        }

    # -- alerts -----------------------------------------------------------

    def _raise_alert(
        self,
        kind: str,
        severity: str,
        message: str,
        inventory_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> Alert | None:
        if inventory_id:
            with self._lock:
                if self._tripped.get((kind, inventory_id)) == severity:
                    return None
                self._tripped[(kind, inventory_id)] = severity
        alert = Alert(
            id=f"ALT{next(self._alert_seq):04d}",
            kind=kind,
            severity=severity,
            message=message,
            created_at=self._clock(),
            inventory_id=inventory_id,
            data=data or {},
        )
        with self._lock:
            for existing in self._alerts:
                if inventory_id and existing.is_active and existing.kind == kind and existing.inventory_id == inventory_id:
                    existing.is_active = False
            self._alerts.append(alert)
        return alert

    def _resolve_alert(self, kind: str, inventory_id: str) -> None:
        with self._lock:
            self._tripped.pop((kind, inventory_id), None)
            for existing in self._alerts:
                if existing.is_active and existing.kind == kind and existing.inventory_id == inventory_id:
                    existing.is_active = False

    def evaluate_alerts(self, inventory_ids: Iterable[str] | None = None) -> list[Alert]:
        """Re-evaluate stock and expiry thresholds for the given items.

        An alert is raised and its inventory event emitted only when a
        threshold is crossed (or its severity rises). Conditions that no
        longer hold resolve their alert and re-arm it.
        """
        ids = list(inventory_ids) if inventory_ids is not None else list(self._items)
        now = self._clock()
        raised: list[Alert | None] = []
        for inventory_id in ids:
            item = self._items.get(inventory_id)
            if item is None:
                continue
            stock = item.current_stock
            if stock <= 0:
                self._resolve_alert(LOW_STOCK, item.id)
                raised.append(
                    self._raise_alert(OUT_OF_STOCK, "danger", f"Out of stock: {item.name}", item.id)
                )
            elif stock <= item.min_stock_level:
                self._resolve_alert(OUT_OF_STOCK, item.id)
                raised.append(
                    self._raise_alert(
                        LOW_STOCK,
                        "warning",
                        f"Low stock: {item.name} ({stock:g} {item.unit} remaining)",
                        item.id,
                        {"current_stock": stock, "min_level": item.min_stock_level},
                    )
                )
            else:
                self._resolve_alert(LOW_STOCK, item.id)
                self._resolve_alert(OUT_OF_STOCK, item.id)

            if item.track_expiry and item.expiry_date is not None:
                days = _days_until(item.expiry_date, now)
                if days <= self._settings.expiry_warning_days:
                    raised.append(
                        self._raise_alert(
                            EXPIRY_WARNING,
                            "danger" if days <= 1 else "warning",
                            f"{item.name} expires in {days} day(s)",
                            item.id,
                            {"expiry_date": item.expiry_date.isoformat(), "days_until_expiry": days},
                        )
                    )
                else:
                    self._resolve_alert(EXPIRY_WARNING, item.id)

            if item.auto_reorder and stock <= item.reorder_point:
                raised.append(
                    self._raise_alert(
                        AUTO_REORDER,
                        "info",
                        f"{item.name} has reached reorder point ({stock:g} {item.unit} remaining)",
                        item.id,
                        {"supplier_id": item.supplier_id, "reorder_quantity": item.reorder_quantity},
                    )
                )
            else:
                self._resolve_alert(AUTO_REORDER, item.id)

        raised = [alert for alert in raised if alert is not None]
        for alert in raised:
            event_name = _ALERT_EVENTS.get(alert.kind)
            if event_name:
                self._events.emit(
                    event_name,
                    {"alert_id": alert.id, "inventory_id": alert.inventory_id, "message": alert.message},
                )
        return raised

    def active_alerts(self, kind: str | None = None) -> list[Alert]:
        with self._lock:
            alerts = [alert for alert in self._alerts if alert.is_active]
        if kind:
            alerts = [alert for alert in alerts if alert.kind == kind]
        return alerts

    def acknowledge_alert(self, alert_id: str) -> Alert:
        with self._lock:
            for alert in self._alerts:
                if alert.id == alert_id:
                    alert.is_active = False
                    alert.acknowledged_at = self._clock()
                    return alert
        raise NotFoundError(f"Alert {alert_id} not found")

    # -- purchasing -------------------------------------------------------

    def reorder_suggestions(self) -> list[dict[str, Any]]:
        grouped: dict[str, dict[str, Any]] = {}
        for item in self.items_needing_reorder():
            supplier_id = item.supplier_id or "unassigned"
            entry = grouped.setdefault(
                supplier_id,
                {"supplier_id": supplier_id, "items": [], "estimated_total": 0.0},
            )
            quantity = item.reorder_quantity or max(item.max_stock_level - item.current_stock, 0.0)
            entry["items"].append(
                {
                    "inventory_id": item.id,
                    "name": item.name,
                    "current_stock": item.current_stock,
                    "quantity": quantity,
                    "unit_cost": item.unit_cost,
                }
            )
            entry["estimated_total"] += quantity * item.unit_cost
        return [grouped[key] for key in sorted(grouped)]

    def _expected_delivery(self, supplier: Supplier, now: datetime) -> datetime:
        days = {day.lower() for day in supplier.delivery_days}
        for offset in range(1, 8):
            candidate = now + timedelta(days=offset)
            if candidate.strftime("%A").lower() in days:
                return candidate
        return now + timedelta(days=7)

    def create_purchase_order(
        self,
        supplier_id: str,
        lines: Iterable[dict[str, Any]],
        notes: str = "",
    ) -> PurchaseOrder:
        supplier = self.get_supplier(supplier_id)
        if not supplier.is_active:
            raise ValidationError(f"Supplier {supplier.name} is inactive")
        po_lines: list[PurchaseOrderLine] = []
        for raw in lines:
            item = self.get_item(str(raw.get("inventory_id")))
            quantity = float(raw.get("quantity") or 0)
            if quantity <= 0:
                raise ValidationError("Quantity must be greater than zero")
            unit_cost = raw.get("unit_cost")
            po_lines.append(
                PurchaseOrderLine(
                    inventory_id=item.id,
                    quantity=quantity,
                    unit_cost=float(unit_cost) if unit_cost is not None else item.unit_cost,
                )
            )
        if not po_lines:
            raise ValidationError("Purchase order needs at least one line")

        total = sum(line.total for line in po_lines)
        now = self._clock()
        status = PO_PENDING_APPROVAL if total > self._settings.purchase_order_approval_limit else PO_PENDING
        purchase_order = PurchaseOrder(
            id=f"PO{next(self._po_seq):04d}",
            supplier_id=supplier.id,
            lines=po_lines,
            total=total,
            status=status,
            created_at=now,
            expected_delivery=self._expected_delivery(supplier, now),
            notes=notes or "",
        )
        with self._lock:
            self._purchase_orders[purchase_order.id] = purchase_order
        if status == PO_PENDING_APPROVAL:
            self._raise_alert(
                PURCHASE_ORDER_APPROVAL,
                "warning",
                f"Purchase Order {purchase_order.id} requires approval",
                data={"purchase_order_id": purchase_order.id},
            )
        logger.info("purchase order created id=%s supplier_id=%s status=%s", purchase_order.id, supplier.id, status)
        return purchase_order

    def get_purchase_order(self, po_id: str) -> PurchaseOrder:
        purchase_order = self._purchase_orders.get(po_id)
        if purchase_order is None:
            raise NotFoundError(f"Purchase order {po_id} not found")
        return purchase_order

    def list_purchase_orders(self, status: str | None = None) -> list[PurchaseOrder]:
        with self._lock:
            orders = list(self._purchase_orders.values())
        if status:
            orders = [order for order in orders if order.status == status]
        return orders

    def approve_purchase_order(self, po_id: str) -> PurchaseOrder:
        purchase_order = self.get_purchase_order(po_id)
        if purchase_order.status != PO_PENDING_APPROVAL:
            raise ValidationError(f"Purchase order {po_id} is not awaiting approval")
        purchase_order.status = PO_PENDING
        with self._lock:
            for alert in self._alerts:
                if alert.kind == PURCHASE_ORDER_APPROVAL and alert.data.get("purchase_order_id") == po_id:
                    alert.is_active = False
        return purchase_order

    def receive_purchase_order(self, po_id: str) -> PurchaseOrder:
        purchase_order = self.get_purchase_order(po_id)
        if purchase_order.status != PO_PENDING:
            raise ValidationError(f"Purchase order {po_id} cannot be received while {purchase_order.status}")
        for line in purchase_order.lines:
            self.add_stock(
                line.inventory_id,
                line.quantity,
                reason=PURCHASE_ORDER,
                cost=line.total,
                note=purchase_order.id,
            )
        purchase_order.status = PO_RECEIVED
        purchase_order.received_at = self._clock()
        logger.info("purchase order received id=%s", po_id)
        return purchase_order

from __future__ import annotations

import logging
from threading import Lock
from typing import TYPE_CHECKING, Iterable

from restaurant_pos.core.config import Settings
from restaurant_pos.core.errors import NotFoundError, ValidationError
from restaurant_pos.models.cart import CartLine
from restaurant_pos.models.catalog import MenuItem, Modifier
from restaurant_pos.models.order import DISCOUNT_KINDS, PERCENTAGE, Discount, LineModifier, OrderLine, Totals
from restaurant_pos.services.catalog import CatalogProvider
from restaurant_pos.services.pricing import compute_totals

if TYPE_CHECKING:
    from restaurant_pos.models.order import Order
    from restaurant_pos.services.orders import OrderStore

logger = logging.getLogger(__name__)

DEFAULT_TERMINAL = "default"


def _validate_quantity(quantity) -> int:
    # bool is an int subclass; True must not count as a quantity of one
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be a positive integer")
    if quantity <= 0:
        raise ValidationError("Quantity must be a positive integer")
    return quantity


def resolve_selection(
    catalog: CatalogProvider, item_id: int, modifier_ids: Iterable[int] = ()
) -> tuple[MenuItem, list[Modifier]]:
    item = catalog.get_menu_item(item_id)
    if not item.is_available:
        raise ValidationError(f"Menu item {item.name} is not available")
    modifiers = []
    for modifier_id in sorted(set(modifier_ids)):
        modifier = catalog.get_modifier(modifier_id)
        if modifier.item_id != item.id:
            raise ValidationError(f"Modifier {modifier_id} does not belong to menu item {item.id}")
        modifiers.append(modifier)
    return item, modifiers


def _to_order_line(line_id: int, item: MenuItem, modifiers: Iterable[Modifier], quantity: int, note: str) -> OrderLine:
    return OrderLine(
        id=line_id,
        item_id=item.id,
        name=item.name,
        unit_price=item.price,
        quantity=quantity,
        modifiers=tuple(LineModifier(id=modifier.id, name=modifier.name, price=modifier.price) for modifier in modifiers),
        note=note or "",
        category_id=item.category_id,
        station=item.station,
        prep_time=item.prep_time,
    )


def snapshot_line(
    catalog: CatalogProvider,
    item_id: int,
    quantity: int,
    modifier_ids: Iterable[int] = (),
    note: str = "",
    line_id: int = 0,
) -> OrderLine:
    """Price a single selection outside a cart, e.g. an edit to a pending order."""
    quantity = _validate_quantity(quantity)
    item, modifiers = resolve_selection(catalog, item_id, modifier_ids)
    return _to_order_line(line_id, item, modifiers, quantity, note)


class Cart:
    """In-progress order for a single terminal.

    Lines hold catalog references only. Prices are resolved on every
    ``order_lines`` call and frozen into ``OrderLine`` snapshots at checkout.
    """

    def __init__(self, terminal_id: str, catalog: CatalogProvider, settings: Settings) -> None:
        self.terminal_id = terminal_id
        self._catalog = catalog
        self._settings = settings
        self.lines: list[CartLine] = []
        self.discount: Discount | None = None
        self._next_line_id = 1

    def add_line(
        self,
        item_id: int,
        quantity: int = 1,
        modifier_ids: Iterable[int] = (),
        note: str = "",
    ) -> CartLine:
        quantity = _validate_quantity(quantity)
        item, modifiers = resolve_selection(self._catalog, item_id, modifier_ids)
        modifier_set = frozenset(modifier.id for modifier in modifiers)

        for line in self.lines:
            if line.item_id == item.id and line.modifier_ids == modifier_set:
                line.quantity += quantity
                if note:
                    line.note = note
                return line

        line = CartLine(
            id=self._next_line_id,
            item_id=item.id,
            quantity=quantity,
            modifier_ids=modifier_set,
            note=note or "",
        )
        self._next_line_id += 1
        self.lines.append(line)
        return line

    def _find_line(self, line_id: int) -> CartLine:
        for line in self.lines:
            if line.id == line_id:
                return line
        raise NotFoundError(f"Cart line {line_id} not found")

    def remove_line(self, line_id: int) -> None:
        line = self._find_line(line_id)
        self.lines.remove(line)

    def set_line_quantity(self, line_id: int, quantity: int) -> CartLine | None:
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("Quantity must be an integer")
        line = self._find_line(line_id)
        if quantity <= 0:
            self.lines.remove(line)
            return None
        line.quantity = quantity
        return line

    def apply_discount(self, kind: str, value: float, name: str = "") -> Discount:
        if kind not in DISCOUNT_KINDS:
            raise ValidationError(f"Unknown discount kind: {kind}")
        if value < 0:
            raise ValidationError("Discount must not be negative")
        if kind == PERCENTAGE and value > self._settings.max_discount_percent:
            raise ValidationError(f"Discount cannot exceed {self._settings.max_discount_percent:g}%")
        if kind != PERCENTAGE and value > self._settings.max_fixed_discount:
            raise ValidationError(f"Discount cannot exceed {self._settings.max_fixed_discount:g}")
        self.discount = Discount(kind=kind, value=float(value), name=name or "")
        return self.discount

    def remove_discount(self) -> None:
        self.discount = None

    def clear(self) -> None:
        self.lines = []
        self.discount = None

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def order_lines(self) -> list[OrderLine]:
        snapshots = []
        for line in self.lines:
            item = self._catalog.get_menu_item(line.item_id)
            modifiers = [self._catalog.get_modifier(modifier_id) for modifier_id in sorted(line.modifier_ids)]
            snapshots.append(_to_order_line(line.id, item, modifiers, line.quantity, line.note))
        return snapshots

    def totals(self) -> Totals:
        return compute_totals(
            self.order_lines(),
            self.discount,
            self._settings.tax_rate,
            self._settings.service_charge_rate,
        )

    def checkout(
        self,
        orders: "OrderStore",
        *,
        mode: str | None = None,
        table_id: int | None = None,
        staff_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> "Order":
        if self.is_empty:
            raise ValidationError("Cart is empty")
        order = orders.create_order(
            self.order_lines(),
            mode=mode,
            table_id=table_id,
            staff_id=staff_id,
            discount=self.discount,
            idempotency_key=idempotency_key,
        )
        self.clear()
        logger.info("cart checked out terminal_id=%s order_id=%s", self.terminal_id, order.id)
        return order


class CartRegistry:
    def __init__(self, catalog: CatalogProvider, settings: Settings) -> None:
        self._catalog = catalog
        self._settings = settings
        self._carts: dict[str, Cart] = {}
        self._lock = Lock()

    def get(self, terminal_id: str | None = None) -> Cart:
        key = (terminal_id or "").strip() or DEFAULT_TERMINAL
        with self._lock:
            cart = self._carts.get(key)
            if cart is None:
                cart = Cart(key, self._catalog, self._settings)
                self._carts[key] = cart
            return cart

    def discard(self, terminal_id: str) -> None:
        with self._lock:
            self._carts.pop(terminal_id, None)

    def terminals(self) -> list[str]:
        with self._lock:
            return sorted(self._carts)

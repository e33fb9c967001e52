from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol

from restaurant_pos.core.errors import NotFoundError, ValidationError
from restaurant_pos.models.catalog import Category, MenuItem, Modifier

logger = logging.getLogger(__name__)


class CatalogProvider(Protocol):
    def list_menu_items(self) -> list[MenuItem]:
        ...

    def list_modifiers(self, item_id: int) -> list[Modifier]:
        ...

    def get_menu_item(self, item_id: int) -> MenuItem:
        ...

    def get_modifier(self, modifier_id: int) -> Modifier:
        ...


class InMemoryCatalog:
    def __init__(
        self,
        categories: Iterable[Category] = (),
        items: Iterable[MenuItem] = (),
        modifiers: Iterable[Modifier] = (),
    ) -> None:
        self._categories: dict[int, Category] = {category.id: category for category in categories}
        self._items: dict[int, MenuItem] = {item.id: item for item in items}
        self._modifiers: dict[int, Modifier] = {modifier.id: modifier for modifier in modifiers}

    def list_menu_items(self) -> list[MenuItem]:
        return sorted(self._items.values(), key=lambda item: item.id)

    def list_modifiers(self, item_id: int) -> list[Modifier]:
        self.get_menu_item(item_id)
        return sorted(
            (modifier for modifier in self._modifiers.values() if modifier.item_id == item_id),
            key=lambda modifier: modifier.id,
        )

    def get_menu_item(self, item_id: int) -> MenuItem:
        item = self._items.get(item_id)
        if item is None:
            raise NotFoundError(f"Menu item {item_id} not found")
        return item

    def get_modifier(self, modifier_id: int) -> Modifier:
        modifier = self._modifiers.get(modifier_id)
        if modifier is None:
            raise NotFoundError(f"Modifier {modifier_id} not found")
        return modifier

    def get_category(self, category_id: int) -> Optional[Category]:
        return self._categories.get(category_id)

    def list_categories(self, active_only: bool = True) -> list[Category]:
        categories = self._categories.values()
        if active_only:
            categories = [category for category in categories if category.is_active]
        return sorted(categories, key=lambda category: (category.sort_order, category.id))

    def search(self, query: str = "", category_id: int | None = None) -> list[MenuItem]:
        needle = (query or "").strip().lower()
        results = []
        for item in self.list_menu_items():
            if not item.is_available:
                continue
            if category_id is not None and item.category_id != category_id:
                continue
            if needle and needle not in item.name.lower() and needle not in item.description.lower():
                continue
            results.append(item)
        return results

    def set_availability(self, item_id: int, available: bool) -> MenuItem:
        item = self.get_menu_item(item_id)
        item.is_available = bool(available)
        logger.info("menu item availability changed item_id=%s available=%s", item_id, item.is_available)
        return item

    def update_price(self, item_id: int, price: float) -> MenuItem:
        if price < 0:
            raise ValidationError("Price must not be negative")
        item = self.get_menu_item(item_id)
        item.price = float(price)
        logger.info("menu item price changed item_id=%s price=%s", item_id, item.price)
        return item

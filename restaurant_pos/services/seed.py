"""Demo data loaded when ``SEED_DEMO_DATA`` is on."""

from __future__ import annotations

from copy import deepcopy
from datetime import datetime, timedelta

from restaurant_pos.models.catalog import Category, MenuItem, Modifier
from restaurant_pos.models.inventory import InventoryItem, RecipeLine, Supplier
from restaurant_pos.models.table import FREE, RESERVED, Table
from restaurant_pos.services.catalog import InMemoryCatalog
from restaurant_pos.services.inventory import InventoryLedger
from restaurant_pos.services.tables import TableRegistry

CATEGORIES = [
    Category(1, "Appetizers", sort_order=1),
    Category(2, "Main Course", sort_order=2),
    Category(3, "Desserts", sort_order=3),
    Category(4, "Beverages", sort_order=4),
    Category(5, "Salads", sort_order=5),
]

MENU_ITEMS = [
    MenuItem(1, 5, "Caesar Salad", 12.99, "Crisp romaine lettuce with caesar dressing", prep_time=10, station="salads", modifier_ids=[1, 2]),
    MenuItem(2, 2, "Grilled Chicken", 18.99, "Juicy grilled chicken breast with herbs", prep_time=25, station="grill", modifier_ids=[3, 4]),
    MenuItem(3, 3, "Chocolate Cake", 8.99, "Rich chocolate cake with ganache", prep_time=5, station="desserts"),
    MenuItem(4, 4, "Fresh Orange Juice", 4.99, "Freshly squeezed orange juice", prep_time=2, station="beverages"),
    MenuItem(5, 2, "Margherita Pizza", 14.99, "Tomato, mozzarella and basil", prep_time=12, station="pizza_oven"),
]

MODIFIERS = [
    Modifier(1, 1, "Extra Croutons", 2.0),
    Modifier(2, 1, "No Anchovies", 0.0),
    Modifier(3, 2, "Extra Spicy", 0.0),
    Modifier(4, 2, "Side of Rice", 3.0),
]

SUPPLIERS = [
    Supplier("SUP001", "Fresh Foods Co.", ["Monday", "Wednesday", "Friday"], minimum_order=500),
    Supplier("SUP002", "Garden Fresh Produce", ["Tuesday", "Thursday", "Saturday"], minimum_order=200),
    Supplier("SUP003", "Dairy Best Ltd.", ["Monday", "Thursday"], minimum_order=300),
]

# menu item id -> ingredients per unit sold
RECIPES = {
    1: [RecipeLine("INV002", 0.1), RecipeLine("INV003", 0.05)],
    2: [RecipeLine("INV001", 0.2), RecipeLine("INV002", 0.1), RecipeLine("INV003", 0.05)],
    5: [RecipeLine("INV002", 0.15), RecipeLine("INV003", 0.25)],
}


def demo_catalog() -> InMemoryCatalog:
    return InMemoryCatalog(deepcopy(CATEGORIES), deepcopy(MENU_ITEMS), deepcopy(MODIFIERS))


def demo_inventory_items(now: datetime) -> list[InventoryItem]:
    return [
        InventoryItem(
            id="INV001",
            name="Chicken Breast",
            unit="kg",
            current_stock=15.5,
            category="Proteins",
            min_stock_level=5,
            max_stock_level=50,
            reorder_point=8,
            reorder_quantity=20,
            unit_cost=8.5,
            supplier_id="SUP001",
            expiry_date=now + timedelta(days=5),
            track_expiry=True,
            auto_reorder=True,
        ),
        InventoryItem(
            id="INV002",
            name="Tomatoes",
            unit="kg",
            current_stock=25,
            category="Vegetables",
            min_stock_level=10,
            max_stock_level=100,
            reorder_point=15,
            reorder_quantity=50,
            unit_cost=3.2,
            supplier_id="SUP002",
            expiry_date=now + timedelta(days=8),
            track_expiry=True,
            auto_reorder=True,
        ),
        InventoryItem(
            id="INV003",
            name="Cheese (Mozzarella)",
            unit="kg",
            current_stock=8.2,
            category="Dairy",
            min_stock_level=3,
            max_stock_level=25,
            reorder_point=5,
            reorder_quantity=15,
            unit_cost=12.75,
            supplier_id="SUP003",
            expiry_date=now + timedelta(days=10),
            track_expiry=True,
            auto_reorder=True,
        ),
    ]


def seed_inventory(inventory: InventoryLedger, now: datetime) -> None:
    for supplier in deepcopy(SUPPLIERS):
        inventory.add_supplier(supplier)
    for item in demo_inventory_items(now):
        inventory.add_item(item)
    for menu_item_id, lines in RECIPES.items():
        inventory.set_recipe(menu_item_id, lines)


def seed_tables(tables: TableRegistry) -> None:
    tables.add_table(Table(1, "T1", capacity=2, section="Main"))
    tables.add_table(Table(2, "T2", capacity=4, section="Main"))
    tables.add_table(
        Table(3, "T3", capacity=6, status=RESERVED, section="Patio", reservation={"name": "Walk-in party", "party_size": 5})
    )
    tables.add_table(Table(4, "T4", capacity=4, status=FREE, section="Patio"))

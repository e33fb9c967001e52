"""Reusable data sets for the POS test scenarios."""

from datetime import datetime, timezone

FIXED_NOW = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)

# two items, one with a +2 modifier; 10% off, 8% tax, 10% service
PRICING_CATALOG = {
    "categories": [{"id": 1, "name": "Mains"}, {"id": 2, "name": "Sides"}],
    "items": [
        {"id": 10, "category_id": 1, "name": "House Burger", "price": 10.0, "station": "grill", "prep_time": 12},
        {"id": 20, "category_id": 2, "name": "Fries", "price": 5.0, "station": "fryer", "prep_time": 6},
        {"id": 30, "category_id": 1, "name": "Tasting Menu", "price": 100.0, "station": "saute", "prep_time": 20},
    ],
    "modifiers": [
        {"id": 100, "item_id": 10, "name": "Extra Cheese", "price": 2.0},
        {"id": 200, "item_id": 20, "name": "Truffle Salt", "price": 1.5},
    ],
}

PRICING_SCENARIO = {
    "lines": [
        {"item_id": 10, "quantity": 2, "modifier_ids": [100]},
        {"item_id": 20, "quantity": 1, "modifier_ids": []},
    ],
    "discount": {"kind": "percentage", "value": 10},
    "tax_rate": 0.08,
    "service_charge_rate": 0.10,
    "expected": {
        "subtotal": 29.0,
        "discount": 2.9,
        "taxable": 26.1,
        "tax": 2.088,
        "service_charge": 2.61,
        "total": 30.798,
    },
}

SHORT_INGREDIENT = {
    "id": "INV900",
    "name": "Flour",
    "unit": "kg",
    "current_stock": 2.0,
    "min_stock_level": 0.5,
    "unit_cost": 1.2,
}

PLENTIFUL_INGREDIENT = {
    "id": "INV901",
    "name": "Butter",
    "unit": "kg",
    "current_stock": 10.0,
    "min_stock_level": 1.0,
    "unit_cost": 6.0,
}

SPLIT_PAYMENT_LEGS = [
    {"method": "card", "amount": 60.0, "metadata": {"token": "tok_visa"}},
    {"method": "cash", "amount": 40.0, "tendered": 30.0},
]

DECLINED_CARD = {"method": "card", "metadata": {"token": "tok_declined"}}

CHECKOUT_HAPPY_PATH = {
    "lines": [
        {"item_id": 1, "quantity": 1, "modifier_ids": [1]},
        {"item_id": 4, "quantity": 2},
    ],
    "checkout": {"table_id": 1, "staff_id": "waiter-7"},
}

RESERVATION_PAYLOAD = {"name": "Silva", "party_size": 4, "time": "19:30", "notes": "Window seat"}

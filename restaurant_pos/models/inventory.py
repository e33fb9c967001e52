from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

ORDER_SALE = "order_sale"
RESTOCK = "restock"
WASTE = "waste"
ADJUSTMENT = "adjustment"
PURCHASE_ORDER = "purchase_order"

LOW_STOCK = "low_stock"
OUT_OF_STOCK = "out_of_stock"
EXPIRY_WARNING = "expiry_warning"
AUTO_REORDER = "auto_reorder"
PURCHASE_ORDER_APPROVAL = "purchase_order_approval"


@dataclass
class InventoryItem:
    id: str
    name: str
    unit: str
    current_stock: float = 0.0
    category: str = ""
    min_stock_level: float = 0.0
    max_stock_level: float = 0.0
    reorder_point: float = 0.0
    reorder_quantity: float = 0.0
    unit_cost: float = 0.0
    supplier_id: str | None = None
    expiry_date: datetime | None = None
    track_expiry: bool = False
    auto_reorder: bool = False
    last_restocked: datetime | None = None


@dataclass(frozen=True)
class RecipeLine:
    inventory_id: str
    quantity: float


@dataclass(frozen=True)
class StockMovement:
    """One write-once entry of the stock ledger."""

    id: str
    inventory_id: str
    delta: float
    reason: str
    previous_stock: float
    resulting_balance: float
    cost: float
    timestamp: datetime
    order_id: int | None = None
    note: str = ""


@dataclass(frozen=True)
class Shortfall:
    inventory_id: str
    name: str
    required: float
    available: float

    @property
    def shortage(self) -> float:
        return self.required - self.available

    def to_dict(self) -> dict[str, Any]:
        return {
            "inventory_id": self.inventory_id,
            "name": self.name,
            "required": self.required,
            "available": self.available,
            "shortage": self.shortage,
        }


@dataclass
class Alert:
    id: str
    kind: str
    severity: str
    message: str
    created_at: datetime
    inventory_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    acknowledged_at: datetime | None = None


@dataclass(frozen=True)
class WasteEntry:
    id: str
    inventory_id: str
    quantity: float
    reason: str
    cost: float
    recorded_at: datetime


@dataclass
class Supplier:
    id: str
    name: str
    delivery_days: list[str] = field(default_factory=list)
    minimum_order: float = 0.0
    is_active: bool = True


@dataclass(frozen=True)
class PurchaseOrderLine:
    inventory_id: str
    quantity: float
    unit_cost: float

    @property
    def total(self) -> float:
        return self.quantity * self.unit_cost


@dataclass
class PurchaseOrder:
    id: str
    supplier_id: str
    lines: list[PurchaseOrderLine]
    total: float
    status: str
    created_at: datetime
    expected_delivery: datetime
    notes: str = ""
    received_at: datetime | None = None

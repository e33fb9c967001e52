from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

PENDING = "pending"
PREPARING = "preparing"
READY = "ready"
SERVED = "served"
PAID = "paid"
CANCELLED = "cancelled"

ORDER_STATUSES = (PENDING, PREPARING, READY, SERVED, PAID, CANCELLED)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({PREPARING, CANCELLED}),
    PREPARING: frozenset({READY, CANCELLED}),
    READY: frozenset({SERVED, CANCELLED}),
    SERVED: frozenset({PAID, CANCELLED}),
    PAID: frozenset(),
    CANCELLED: frozenset(),
}

ACTIVE_STATUSES = frozenset({PENDING, PREPARING, READY})
KITCHEN_STATUSES = frozenset({PENDING, PREPARING})
CLOSED_STATUSES = frozenset({PAID, CANCELLED})

DINE_IN = "dine_in"
TAKEAWAY = "takeaway"
DELIVERY = "delivery"
ORDER_MODES = frozenset({DINE_IN, TAKEAWAY, DELIVERY})

PERCENTAGE = "percentage"
FIXED = "fixed"
DISCOUNT_KINDS = frozenset({PERCENTAGE, FIXED})


@dataclass(frozen=True)
class LineModifier:
    id: int
    name: str
    price: float


@dataclass(frozen=True)
class OrderLine:
    """Priced snapshot of a cart line.

    Prices are copied from the catalog when the line is built, so later
    catalog changes never reach historical orders.
    """

    id: int
    item_id: int
    name: str
    unit_price: float
    quantity: int
    modifiers: tuple[LineModifier, ...] = ()
    note: str = ""
    category_id: int | None = None
    station: str = "expo"
    prep_time: int | None = None

    @property
    def modifier_ids(self) -> frozenset[int]:
        return frozenset(modifier.id for modifier in self.modifiers)


@dataclass(frozen=True)
class Discount:
    kind: str
    value: float
    name: str = ""


@dataclass(frozen=True)
class Totals:
    subtotal: float = 0.0
    discount: float = 0.0
    taxable: float = 0.0
    tax: float = 0.0
    service_charge: float = 0.0
    total: float = 0.0


@dataclass(frozen=True)
class TimelineEntry:
    status: str
    timestamp: datetime
    note: str = ""


@dataclass
class Order:
    id: int
    order_number: str
    mode: str
    lines: list[OrderLine]
    tax_rate: float
    service_charge_rate: float
    created_at: datetime
    updated_at: datetime
    status: str = PENDING
    totals: Totals = field(default_factory=Totals)
    timeline: list[TimelineEntry] = field(default_factory=list)
    table_id: int | None = None
    staff_id: str | None = None
    discount: Discount | None = None
    paid_at: datetime | None = None
    inventory_deducted: bool = False
    idempotency_key: str | None = None
    parent_order_id: int | None = None

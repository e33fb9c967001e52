from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

FREE = "free"
OCCUPIED = "occupied"
RESERVED = "reserved"
CLEANING = "cleaning"
OUT_OF_ORDER = "out_of_order"

TABLE_STATUSES = (FREE, OCCUPIED, RESERVED, CLEANING, OUT_OF_ORDER)


@dataclass
class Table:
    id: int
    number: str
    capacity: int = 4
    status: str = FREE
    assigned_staff_id: str | None = None
    current_order_id: int | None = None
    reservation: dict[str, Any] | None = None
    section: str = ""
    order_ids: list[int] = field(default_factory=list)

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

RECEIVED = "received"
PREPARING = "preparing"
COMPLETED = "completed"
CLOSED = "closed"

QUEUED = "queued"
ITEM_STATUSES = frozenset({QUEUED, PREPARING, COMPLETED})

NORMAL = "normal"
HIGH = "high"

ON_TRACK = "on_track"
WARNING = "warning"
LATE = "late"


@dataclass(frozen=True)
class Station:
    key: str
    name: str
    avg_prep_time: int


@dataclass
class TicketItem:
    id: int
    line_id: int
    name: str
    quantity: int
    station: str
    prep_time: int
    modifiers: tuple[str, ...] = ()
    note: str = ""
    status: str = QUEUED
    completed_at: datetime | None = None


@dataclass
class KitchenTicket:
    id: str
    order_id: int
    order_number: str
    items: list[TicketItem]
    estimated_prep_time: int
    received_at: datetime
    priority: str = NORMAL
    table_id: int | None = None
    status: str = RECEIVED
    started_at: datetime | None = None
    completed_at: datetime | None = None

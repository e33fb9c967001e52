from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Category:
    id: int
    name: str
    is_active: bool = True
    sort_order: int = 0


@dataclass
class Modifier:
    id: int
    item_id: int
    name: str
    price: float = 0.0


@dataclass
class MenuItem:
    id: int
    category_id: int
    name: str
    price: float
    description: str = ""
    is_available: bool = True
    # minutes
    prep_time: int = 10
    station: str = "expo"
    modifier_ids: list[int] = field(default_factory=list)

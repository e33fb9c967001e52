from __future__ import annotations

from dataclasses import dataclass


@dataclass
class CartLine:
    id: int
    item_id: int
    quantity: int
    modifier_ids: frozenset[int] = frozenset()
    note: str = ""

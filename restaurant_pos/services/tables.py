from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Iterable

from restaurant_pos.core.errors import NotFoundError, ValidationError
from restaurant_pos.models.table import CLEANING, FREE, OCCUPIED, OUT_OF_ORDER, RESERVED, TABLE_STATUSES, Table

logger = logging.getLogger(__name__)


class TableRegistry:
    def __init__(self, tables: Iterable[Table] = ()) -> None:
        self._tables: dict[int, Table] = {table.id: table for table in tables}
        self._lock = Lock()

    def add_table(self, table: Table) -> Table:
        if table.status not in TABLE_STATUSES:
            raise ValidationError(f"Unknown table status: {table.status}")
        with self._lock:
            self._tables[table.id] = table
        return table

    def get(self, table_id: int) -> Table:
        table = self._tables.get(table_id)
        if table is None:
            raise NotFoundError(f"Table {table_id} not found")
        return table

    def list_tables(self, status: str | None = None, section: str | None = None) -> list[Table]:
        tables = sorted(self._tables.values(), key=lambda table: table.id)
        if status:
            tables = [table for table in tables if table.status == status]
        if section:
            tables = [table for table in tables if table.section == section]
        return tables

    def set_status(self, table_id: int, status: str, staff_id: str | None = None) -> Table:
        if status not in TABLE_STATUSES:
            raise ValidationError(f"Unknown table status: {status}")
        with self._lock:
            table = self.get(table_id)
            table.status = status
            if staff_id is not None:
                table.assigned_staff_id = staff_id
            if status == FREE:
                table.assigned_staff_id = None
                table.current_order_id = None
                table.order_ids = []
        logger.info("table status changed table_id=%s status=%s", table_id, status)
        return table

    def reserve(self, table_id: int, reservation: dict[str, Any]) -> Table:
        with self._lock:
            table = self.get(table_id)
            if table.status != FREE:
                raise ValidationError("Table is not available for reservation")
            table.status = RESERVED
            table.reservation = dict(reservation)
        logger.info("table reserved table_id=%s", table_id)
        return table

    def clear_reservation(self, table_id: int) -> Table:
        with self._lock:
            table = self.get(table_id)
            if table.status != RESERVED:
                raise ValidationError("Table has no reservation")
            table.status = FREE
            table.reservation = None
        return table

    def assign_staff(self, table_id: int, staff_id: str | None) -> Table:
        with self._lock:
            table = self.get(table_id)
            table.assigned_staff_id = staff_id
        return table

    def ensure_seatable(self, table_id: int) -> Table:
        table = self.get(table_id)
        if table.status in (CLEANING, OUT_OF_ORDER):
            raise ValidationError(f"Table {table.number} is {table.status}")
        return table

    def seat(self, table_id: int, order_id: int, staff_id: str | None = None) -> Table:
        with self._lock:
            table = self.get(table_id)
            if table.status in (CLEANING, OUT_OF_ORDER):
                raise ValidationError(f"Table {table.number} is {table.status}")
            table.status = OCCUPIED
            table.reservation = None
            table.current_order_id = order_id
            if order_id not in table.order_ids:
                table.order_ids.append(order_id)
            if staff_id:
                table.assigned_staff_id = staff_id
        logger.info("table seated table_id=%s order_id=%s", table_id, order_id)
        return table

    def release(self, table_id: int, order_id: int) -> Table | None:
        """Detach a closed order. The last order out leaves the table for cleaning."""
        with self._lock:
            table = self._tables.get(table_id)
            if table is None:
                return None
            if order_id in table.order_ids:
                table.order_ids.remove(order_id)
            if table.current_order_id == order_id:
                table.current_order_id = table.order_ids[-1] if table.order_ids else None
            if not table.order_ids and table.status == OCCUPIED:
                table.status = CLEANING
        return table

    def transfer(self, order_id: int, from_table_id: int | None, to_table_id: int, staff_id: str | None = None) -> Table:
        target = self.get(to_table_id)
        if target.status in (CLEANING, OUT_OF_ORDER):
            raise ValidationError(f"Table {target.number} is {target.status}")
        if from_table_id is not None and from_table_id != to_table_id:
            source = self.release(from_table_id, order_id)
            if source is not None and source.status == CLEANING:
                # nobody actually ate there
                self.set_status(from_table_id, FREE)
        return self.seat(to_table_id, order_id, staff_id=staff_id)

    def statistics(self) -> dict[str, int]:
        counts = {status: 0 for status in TABLE_STATUSES}
        for table in self._tables.values():
            counts[table.status] = counts.get(table.status, 0) + 1
        counts["total"] = len(self._tables)
        return counts

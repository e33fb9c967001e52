from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from restaurant_pos.core.errors import PosError
from restaurant_pos.deps import get_context, http_error
from restaurant_pos.models.table import Table
from restaurant_pos.services.context import PosContext

router = APIRouter(prefix="/api/tables", tags=["tables"])


class TableStatusUpdate(BaseModel):
    status: str
    staff_id: Optional[str] = None


class ReservationIn(BaseModel):
    name: str
    party_size: int = Field(..., gt=0)
    time: Optional[str] = None
    phone: Optional[str] = None
    notes: str = ""


class StaffAssignment(BaseModel):
    staff_id: Optional[str] = None


def _table_to_dict(table: Table) -> Dict[str, Any]:
    return {
        "id": table.id,
        "number": table.number,
        "capacity": table.capacity,
        "section": table.section,
        "status": table.status,
        "assigned_staff_id": table.assigned_staff_id,
        "current_order_id": table.current_order_id,
        "order_ids": list(table.order_ids),
        "reservation": table.reservation,
    }


@router.get("")
def list_tables(
    status: Optional[str] = Query(None),
    section: Optional[str] = Query(None),
    context: PosContext = Depends(get_context),
):
    return [_table_to_dict(table) for table in context.tables.list_tables(status=status, section=section)]


@router.get("/stats")
def table_statistics(context: PosContext = Depends(get_context)):
    return context.tables.statistics()


@router.get("/{table_id}")
def get_table(table_id: int, context: PosContext = Depends(get_context)):
    try:
        table = context.tables.get(table_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return _table_to_dict(table)


@router.patch("/{table_id}/status")
def update_table_status(table_id: int, body: TableStatusUpdate, context: PosContext = Depends(get_context)):
    try:
        table = context.tables.set_status(table_id, body.status.strip().lower(), staff_id=body.staff_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return _table_to_dict(table)


@router.post("/{table_id}/reservation")
def reserve_table(table_id: int, body: ReservationIn, context: PosContext = Depends(get_context)):
    try:
        table = context.tables.reserve(table_id, body.model_dump())
    except PosError as exc:
        raise http_error(exc) from exc
    return _table_to_dict(table)


@router.delete("/{table_id}/reservation")
def cancel_reservation(table_id: int, context: PosContext = Depends(get_context)):
    try:
        table = context.tables.clear_reservation(table_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return _table_to_dict(table)


@router.patch("/{table_id}/staff")
def assign_table_staff(table_id: int, body: StaffAssignment, context: PosContext = Depends(get_context)):
    try:
        table = context.tables.assign_staff(table_id, body.staff_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return _table_to_dict(table)

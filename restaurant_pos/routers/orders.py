from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from restaurant_pos.core.errors import PosError, ValidationError
from restaurant_pos.deps import get_context, http_error
from restaurant_pos.models.order import Order, OrderLine
from restaurant_pos.services.cart import snapshot_line
from restaurant_pos.services.context import PosContext
from restaurant_pos.services.pricing import line_total, round_currency, totals_to_dict

router = APIRouter(prefix="/api", tags=["orders"])


class StatusUpdate(BaseModel):
    status: str
    note: Optional[str] = None


class LineIn(BaseModel):
    item_id: int
    quantity: int = 1
    modifier_ids: List[int] = Field(default_factory=list)
    note: str = ""


class QuantityUpdate(BaseModel):
    quantity: int


class SplitRequest(BaseModel):
    line_ids: List[int]


class MergeRequest(BaseModel):
    primary_order_id: int
    secondary_order_id: int


class TransferRequest(BaseModel):
    table_id: Optional[int] = None
    staff_id: Optional[str] = None


def line_to_dict(line: OrderLine) -> Dict[str, Any]:
    return {
        "id": line.id,
        "item_id": line.item_id,
        "name": line.name,
        "unit_price": line.unit_price,
        "quantity": line.quantity,
        "modifiers": [{"id": modifier.id, "name": modifier.name, "price": modifier.price} for modifier in line.modifiers],
        "note": line.note,
        "category_id": line.category_id,
        "station": line.station,
        "line_total": round_currency(line_total(line)),
    }


def order_to_dict(o: Order) -> Dict[str, Any]:
    return {
        "id": o.id,
        "order_number": o.order_number,
        "mode": o.mode,
        "status": o.status,
        "table_id": o.table_id,
        "staff_id": o.staff_id,
        "lines": [line_to_dict(line) for line in o.lines],
        "discount": (
            {"kind": o.discount.kind, "value": o.discount.value, "name": o.discount.name} if o.discount else None
        ),
        "tax_rate": o.tax_rate,
        "service_charge_rate": o.service_charge_rate,
        "totals": totals_to_dict(o.totals),
        "timeline": [
            {"status": entry.status, "timestamp": entry.timestamp.isoformat(), "note": entry.note}
            for entry in o.timeline
        ],
        "inventory_deducted": o.inventory_deducted,
        "parent_order_id": o.parent_order_id,
        "created_at": o.created_at.isoformat(),
        "updated_at": o.updated_at.isoformat(),
        "paid_at": o.paid_at.isoformat() if o.paid_at else None,
    }


@router.get("/orders")
def list_orders(
    status: Optional[str] = Query(None),
    table_id: Optional[int] = Query(None),
    staff_id: Optional[str] = Query(None),
    context: PosContext = Depends(get_context),
):
    orders = context.orders.list_orders(status=status, table_id=table_id, staff_id=staff_id)
    return [order_to_dict(order) for order in orders]


@router.get("/orders/active")
def list_active_orders(context: PosContext = Depends(get_context)):
    return [order_to_dict(order) for order in context.orders.active_orders()]


@router.get("/orders/kitchen")
def list_kitchen_orders(context: PosContext = Depends(get_context)):
    return [order_to_dict(order) for order in context.orders.kitchen_orders()]


@router.get("/orders/ready")
def list_ready_orders(context: PosContext = Depends(get_context)):
    return [order_to_dict(order) for order in context.orders.ready_orders()]


@router.get("/orders/stats")
def order_statistics(context: PosContext = Depends(get_context)):
    stats = context.orders.statistics()
    stats["revenue"] = round_currency(stats["revenue"])
    stats["average_order_value"] = round_currency(stats["average_order_value"])
    return stats


@router.post("/orders/merge")
def merge_orders(body: MergeRequest, context: PosContext = Depends(get_context)):
    try:
        order = context.orders.merge_orders(body.primary_order_id, body.secondary_order_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return order_to_dict(order)


@router.get("/orders/{order_id}")
def get_order(order_id: int, context: PosContext = Depends(get_context)):
    try:
        order = context.orders.get(order_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return order_to_dict(order)


@router.patch("/orders/{order_id}/status")
def update_order_status(order_id: int, body: StatusUpdate, context: PosContext = Depends(get_context)):
    try:
        order = context.orders.transition(order_id, body.status.strip().lower(), body.note or "")
    except PosError as exc:
        raise http_error(exc) from exc
    return order_to_dict(order)


@router.post("/orders/{order_id}/lines")
def add_order_line(order_id: int, body: LineIn, context: PosContext = Depends(get_context)):
    try:
        line = snapshot_line(context.catalog, body.item_id, body.quantity, body.modifier_ids, body.note)
        order = context.orders.add_line(order_id, line)
    except PosError as exc:
        raise http_error(exc) from exc
    return order_to_dict(order)


@router.patch("/orders/{order_id}/lines/{line_id}")
def update_order_line(order_id: int, line_id: int, body: QuantityUpdate, context: PosContext = Depends(get_context)):
    try:
        order = context.orders.update_line_quantity(order_id, line_id, body.quantity)
    except PosError as exc:
        raise http_error(exc) from exc
    return order_to_dict(order)


@router.delete("/orders/{order_id}/lines/{line_id}")
def remove_order_line(order_id: int, line_id: int, context: PosContext = Depends(get_context)):
    try:
        order = context.orders.remove_line(order_id, line_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return order_to_dict(order)


@router.post("/orders/{order_id}/split")
def split_order(order_id: int, body: SplitRequest, context: PosContext = Depends(get_context)):
    if not body.line_ids:
        raise http_error(ValidationError("Select at least one line to split"))
    try:
        original, new_order = context.orders.split_order(order_id, body.line_ids)
    except PosError as exc:
        raise http_error(exc) from exc
    return {"original": order_to_dict(original), "new_order": order_to_dict(new_order)}


@router.post("/orders/{order_id}/transfer")
def transfer_order(order_id: int, body: TransferRequest, context: PosContext = Depends(get_context)):
    try:
        order = context.orders.transfer_order(order_id, table_id=body.table_id, staff_id=body.staff_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return order_to_dict(order)

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from restaurant_pos.core.errors import PosError
from restaurant_pos.deps import get_context, http_error
from restaurant_pos.models.inventory import Alert, InventoryItem, PurchaseOrder, StockMovement, WasteEntry
from restaurant_pos.services.cart import snapshot_line
from restaurant_pos.services.context import PosContext
from restaurant_pos.services.pricing import round_currency

router = APIRouter(prefix="/api/inventory", tags=["inventory"])


class RestockIn(BaseModel):
    quantity: float = Field(gt=0)
    cost: Optional[float] = Field(default=None, ge=0)
    note: str = ""


class WasteIn(BaseModel):
    quantity: float = Field(gt=0)
    reason: str


class AdjustIn(BaseModel):
    new_level: float = Field(ge=0)
    reason: str


class PurchaseOrderLineIn(BaseModel):
    inventory_id: str
    quantity: float = Field(gt=0)
    unit_cost: Optional[float] = Field(default=None, ge=0)


class PurchaseOrderIn(BaseModel):
    supplier_id: str
    lines: List[PurchaseOrderLineIn]
    notes: str = ""


class RequirementLineIn(BaseModel):
    item_id: int
    quantity: int = 1
    modifier_ids: List[int] = Field(default_factory=list)


def _item_to_dict(item: InventoryItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "name": item.name,
        "category": item.category,
        "unit": item.unit,
        "current_stock": item.current_stock,
        "min_stock_level": item.min_stock_level,
        "max_stock_level": item.max_stock_level,
        "reorder_point": item.reorder_point,
        "reorder_quantity": item.reorder_quantity,
        "unit_cost": item.unit_cost,
        "supplier_id": item.supplier_id,
        "expiry_date": item.expiry_date.isoformat() if item.expiry_date else None,
        "track_expiry": item.track_expiry,
        "auto_reorder": item.auto_reorder,
        "last_restocked": item.last_restocked.isoformat() if item.last_restocked else None,
    }


def _movement_to_dict(movement: StockMovement) -> Dict[str, Any]:
    return {
        "id": movement.id,
        "inventory_id": movement.inventory_id,
        "delta": movement.delta,
        "reason": movement.reason,
        "previous_stock": movement.previous_stock,
        "resulting_balance": movement.resulting_balance,
        "cost": round_currency(movement.cost),
        "order_id": movement.order_id,
        "note": movement.note,
        "timestamp": movement.timestamp.isoformat(),
    }


def _alert_to_dict(alert: Alert) -> Dict[str, Any]:
    return {
        "id": alert.id,
        "kind": alert.kind,
        "severity": alert.severity,
        "message": alert.message,
        "inventory_id": alert.inventory_id,
        "data": alert.data,
        "is_active": alert.is_active,
        "created_at": alert.created_at.isoformat(),
        "acknowledged_at": alert.acknowledged_at.isoformat() if alert.acknowledged_at else None,
    }


def _waste_to_dict(entry: WasteEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "inventory_id": entry.inventory_id,
        "quantity": entry.quantity,
        "reason": entry.reason,
        "cost": round_currency(entry.cost),
        "recorded_at": entry.recorded_at.isoformat(),
    }


def _purchase_order_to_dict(purchase_order: PurchaseOrder) -> Dict[str, Any]:
    return {
        "id": purchase_order.id,
        "supplier_id": purchase_order.supplier_id,
        "status": purchase_order.status,
        "total": round_currency(purchase_order.total),
        "lines": [
            {
                "inventory_id": line.inventory_id,
                "quantity": line.quantity,
                "unit_cost": line.unit_cost,
                "total": round_currency(line.total),
            }
            for line in purchase_order.lines
        ],
        "notes": purchase_order.notes,
        "created_at": purchase_order.created_at.isoformat(),
        "expected_delivery": purchase_order.expected_delivery.isoformat(),
        "received_at": purchase_order.received_at.isoformat() if purchase_order.received_at else None,
    }


@router.get("/items")
def list_items(category: Optional[str] = Query(None), context: PosContext = Depends(get_context)):
    return [_item_to_dict(item) for item in context.inventory.list_items(category=category)]


@router.get("/items/{inventory_id}")
def get_item(inventory_id: str, context: PosContext = Depends(get_context)):
    try:
        item = context.inventory.get_item(inventory_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return _item_to_dict(item)


@router.post("/items/{inventory_id}/restock")
def restock_item(inventory_id: str, body: RestockIn, context: PosContext = Depends(get_context)):
    try:
        movement = context.inventory.add_stock(inventory_id, body.quantity, cost=body.cost, note=body.note)
    except PosError as exc:
        raise http_error(exc) from exc
    return _movement_to_dict(movement)


@router.post("/items/{inventory_id}/waste")
def record_waste(inventory_id: str, body: WasteIn, context: PosContext = Depends(get_context)):
    try:
        entry = context.inventory.record_waste(inventory_id, body.quantity, body.reason.strip())
    except PosError as exc:
        raise http_error(exc) from exc
    return _waste_to_dict(entry)


@router.post("/items/{inventory_id}/adjust")
def adjust_item(inventory_id: str, body: AdjustIn, context: PosContext = Depends(get_context)):
    try:
        movement = context.inventory.adjust_stock(inventory_id, body.new_level, body.reason.strip())
    except PosError as exc:
        raise http_error(exc) from exc
    return _movement_to_dict(movement)


@router.post("/check")
def check_requirement(lines: List[RequirementLineIn], context: PosContext = Depends(get_context)):
    try:
        order_lines = [
            snapshot_line(context.catalog, line.item_id, line.quantity, line.modifier_ids) for line in lines
        ]
    except PosError as exc:
        raise http_error(exc) from exc
    requirement = context.inventory.compute_requirement(order_lines)
    shortfalls = context.inventory.check(requirement)
    return {
        "requirement": requirement,
        "available": not shortfalls,
        "shortfalls": [shortfall.to_dict() for shortfall in shortfalls],
    }


@router.get("/low-stock")
def low_stock(context: PosContext = Depends(get_context)):
    return [_item_to_dict(item) for item in context.inventory.low_stock_items()]


@router.get("/out-of-stock")
def out_of_stock(context: PosContext = Depends(get_context)):
    return [_item_to_dict(item) for item in context.inventory.out_of_stock_items()]


@router.get("/expiring")
def expiring(days: Optional[int] = Query(None, ge=0), context: PosContext = Depends(get_context)):
    return [_item_to_dict(item) for item in context.inventory.expiring_soon(days)]


@router.get("/reorder-suggestions")
def reorder_suggestions(context: PosContext = Depends(get_context)):
    return context.inventory.reorder_suggestions()


@router.get("/movements")
def list_movements(
    inventory_id: Optional[str] = Query(None),
    since: Optional[datetime] = Query(None),
    reason: Optional[str] = Query(None),
    context: PosContext = Depends(get_context),
):
    movements = context.inventory.movements(inventory_id=inventory_id, since=since, reason=reason)
    return [_movement_to_dict(movement) for movement in movements]


@router.get("/waste")
def list_waste(context: PosContext = Depends(get_context)):
    return [_waste_to_dict(entry) for entry in context.inventory.waste_entries()]


@router.get("/stats")
def inventory_statistics(context: PosContext = Depends(get_context)):
    stats = context.inventory.statistics()
    stats["total_value"] = round_currency(stats["total_value"])
    stats["waste_cost"] = round_currency(stats["waste_cost"])
    return stats


@router.get("/alerts")
def list_alerts(kind: Optional[str] = Query(None), context: PosContext = Depends(get_context)):
    return [_alert_to_dict(alert) for alert in context.inventory.active_alerts(kind)]


@router.post("/alerts/{alert_id}/acknowledge")
def acknowledge_alert(alert_id: str, context: PosContext = Depends(get_context)):
    try:
        alert = context.inventory.acknowledge_alert(alert_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return _alert_to_dict(alert)


@router.get("/suppliers")
def list_suppliers(context: PosContext = Depends(get_context)):
    return [
        {
            "id": supplier.id,
            "name": supplier.name,
            "delivery_days": supplier.delivery_days,
            "minimum_order": supplier.minimum_order,
            "is_active": supplier.is_active,
        }
        for supplier in context.inventory.list_suppliers()
    ]


@router.get("/purchase-orders")
def list_purchase_orders(status: Optional[str] = Query(None), context: PosContext = Depends(get_context)):
    return [_purchase_order_to_dict(order) for order in context.inventory.list_purchase_orders(status)]


@router.post("/purchase-orders", status_code=201)
def create_purchase_order(body: PurchaseOrderIn, context: PosContext = Depends(get_context)):
    try:
        purchase_order = context.inventory.create_purchase_order(
            body.supplier_id,
            [line.model_dump() for line in body.lines],
            notes=body.notes,
        )
    except PosError as exc:
        raise http_error(exc) from exc
    return _purchase_order_to_dict(purchase_order)


@router.post("/purchase-orders/{po_id}/approve")
def approve_purchase_order(po_id: str, context: PosContext = Depends(get_context)):
    try:
        purchase_order = context.inventory.approve_purchase_order(po_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return _purchase_order_to_dict(purchase_order)


@router.post("/purchase-orders/{po_id}/receive")
def receive_purchase_order(po_id: str, context: PosContext = Depends(get_context)):
    try:
        purchase_order = context.inventory.receive_purchase_order(po_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return _purchase_order_to_dict(purchase_order)

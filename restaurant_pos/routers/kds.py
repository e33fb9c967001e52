from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from restaurant_pos.core.errors import PosError
from restaurant_pos.deps import get_context, http_error
from restaurant_pos.models.kitchen import KitchenTicket, TicketItem
from restaurant_pos.services.context import PosContext

router = APIRouter(prefix="/api/kds", tags=["kds"])


class ItemStatusUpdate(BaseModel):
    status: str


def _ticket_item_to_dict(item: TicketItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "line_id": item.line_id,
        "name": item.name,
        "quantity": item.quantity,
        "station": item.station,
        "prep_time": item.prep_time,
        "modifiers": list(item.modifiers),
        "note": item.note,
        "status": item.status,
        "completed_at": item.completed_at.isoformat() if item.completed_at else None,
    }


def _ticket_to_dict(ticket: KitchenTicket) -> Dict[str, Any]:
    return {
        "id": ticket.id,
        "order_id": ticket.order_id,
        "order_number": ticket.order_number,
        "table_id": ticket.table_id,
        "priority": ticket.priority,
        "status": ticket.status,
        "estimated_prep_time": ticket.estimated_prep_time,
        "items": [_ticket_item_to_dict(item) for item in ticket.items],
        "received_at": ticket.received_at.isoformat(),
        "started_at": ticket.started_at.isoformat() if ticket.started_at else None,
        "completed_at": ticket.completed_at.isoformat() if ticket.completed_at else None,
    }


@router.get("/tickets")
def list_tickets(context: PosContext = Depends(get_context)):
    return [_ticket_to_dict(ticket) for ticket in context.kitchen.open_tickets()]


@router.get("/tickets/overdue")
def list_overdue_tickets(context: PosContext = Depends(get_context)):
    return [_ticket_to_dict(ticket) for ticket in context.kitchen.overdue_tickets()]


@router.get("/tickets/{ticket_id}")
def get_ticket(ticket_id: str, context: PosContext = Depends(get_context)):
    try:
        ticket = context.kitchen.get_ticket(ticket_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return _ticket_to_dict(ticket)


@router.get("/orders/{order_id}/ticket")
def get_ticket_for_order(order_id: int, context: PosContext = Depends(get_context)):
    try:
        ticket = context.kitchen.ticket_for_order(order_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return _ticket_to_dict(ticket)


@router.patch("/tickets/{ticket_id}/items/{item_id}")
def update_ticket_item(
    ticket_id: str,
    item_id: int,
    body: ItemStatusUpdate,
    context: PosContext = Depends(get_context),
):
    try:
        ticket = context.kitchen.update_item_status(ticket_id, item_id, body.status.strip().lower())
    except PosError as exc:
        raise http_error(exc) from exc
    return _ticket_to_dict(ticket)


@router.get("/tickets/{ticket_id}/timer")
def get_ticket_timer(ticket_id: str, context: PosContext = Depends(get_context)):
    try:
        return context.kitchen.timer_state(ticket_id)
    except PosError as exc:
        raise http_error(exc) from exc


@router.get("/stations")
def list_stations(context: PosContext = Depends(get_context)):
    return [
        {"key": station.key, "name": station.name, "avg_prep_time": station.avg_prep_time}
        for station in context.kitchen.stations.values()
    ]


@router.get("/stations/workload")
def station_workload(context: PosContext = Depends(get_context)):
    return context.kitchen.station_workload()


@router.get("/stations/{station}/queue")
def station_queue(station: str, context: PosContext = Depends(get_context)):
    try:
        queue = context.kitchen.station_queue(station)
    except PosError as exc:
        raise http_error(exc) from exc
    return [
        {"ticket_id": entry["ticket_id"], "order_number": entry["order_number"], "item": _ticket_item_to_dict(entry["item"])}
        for entry in queue
    ]


@router.get("/performance")
def kitchen_performance(context: PosContext = Depends(get_context)):
    return context.kitchen.performance()

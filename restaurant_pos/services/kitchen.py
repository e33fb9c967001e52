from __future__ import annotations

import itertools
import logging
from datetime import timedelta
from threading import Lock
from typing import Any, Iterable

from restaurant_pos.core.clock import Clock, utcnow
from restaurant_pos.core.config import Settings
from restaurant_pos.core.errors import InvalidTransition, NotFoundError, ValidationError
from restaurant_pos.models.kitchen import (
    CLOSED,
    COMPLETED,
    HIGH,
    ITEM_STATUSES,
    LATE,
    NORMAL,
    ON_TRACK,
    PREPARING,
    QUEUED,
    RECEIVED,
    WARNING,
    KitchenTicket,
    Station,
    TicketItem,
)
from restaurant_pos.models.order import CANCELLED, READY, SERVED, Order
from restaurant_pos.models.order import PREPARING as ORDER_PREPARING
from restaurant_pos.services.event_bus import (
    KITCHEN_TICKET_COMPLETED,
    ORDER_CREATED,
    ORDER_LINES_CHANGED,
    ORDER_MERGED,
    ORDER_SPLIT,
    ORDER_STATUS_CHANGED,
    EventBus,
)
from restaurant_pos.services.orders import OrderStore

logger = logging.getLogger(__name__)

DEFAULT_STATION = "expo"

DEFAULT_STATIONS = (
    Station("hot_appetizers", "Hot Appetizers", 8),
    Station("cold_appetizers", "Cold Appetizers", 5),
    Station("salads", "Salads", 7),
    Station("grill", "Grill", 15),
    Station("saute", "Saute", 12),
    Station("fryer", "Fryer", 8),
    Station("pizza_oven", "Pizza Oven", 10),
    Station("desserts", "Desserts", 6),
    Station("beverages", "Beverages", 3),
    Station("expo", "Expo", 2),
)

WARNING_RATIO = 0.8
LATE_RATIO = 1.2
ON_TIME_TOLERANCE = 1.1
FALLBACK_PREP_MINUTES = 10


class KitchenDispatch:
    """Routes order lines to stations and times each ticket.

    Tickets follow the order through bus events and never write to the
    order. The only way back into the order is ``OrderStore.transition``
    when every item is done.
    """

    def __init__(
        self,
        settings: Settings,
        orders: OrderStore,
        events: EventBus,
        clock: Clock = utcnow,
        stations: Iterable[Station] = DEFAULT_STATIONS,
    ) -> None:
        self._settings = settings
        self._orders = orders
        self._events = events
        self._clock = clock
        self.stations: dict[str, Station] = {station.key: station for station in stations}
        self._tickets: dict[str, KitchenTicket] = {}
        self._by_order: dict[int, str] = {}
        self._lock = Lock()
        self._ticket_seq = itertools.count(1)
        self._item_seq = itertools.count(1)
        self._unsubscribe = [
            events.subscribe(ORDER_CREATED, self._on_order_created),
            events.subscribe(ORDER_STATUS_CHANGED, self._on_status_changed),
            events.subscribe(ORDER_SPLIT, self._on_order_split),
            events.subscribe(ORDER_MERGED, self._on_orders_merged),
            events.subscribe(ORDER_LINES_CHANGED, self._on_lines_changed),
        ]

    def close(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

    # -- ticket building --------------------------------------------------

    def _station_for(self, key: str | None) -> str:
        return key if key in self.stations else DEFAULT_STATION

    def estimate_prep_time(self, items: Iterable[TicketItem]) -> int:
        per_station: dict[str, int] = {}
        for item in items:
            per_station[item.station] = per_station.get(item.station, 0) + item.prep_time
        return max([*per_station.values(), self._settings.kitchen_min_prep_minutes])

    def _priority(self, order: Order) -> str:
        return HIGH if len(order.lines) > self._settings.large_order_item_count else NORMAL

    def _build_items(self, order: Order) -> list[TicketItem]:
        items = []
        for line in order.lines:
            station = self._station_for(line.station)
            prep_time = line.prep_time or self.stations[station].avg_prep_time or FALLBACK_PREP_MINUTES
            items.append(
                TicketItem(
                    id=next(self._item_seq),
                    line_id=line.id,
                    name=line.name,
                    quantity=line.quantity,
                    station=station,
                    prep_time=prep_time,
                    modifiers=tuple(modifier.name for modifier in line.modifiers),
                    note=line.note,
                )
            )
        return items

    def create_ticket(self, order: Order) -> KitchenTicket:
        items = self._build_items(order)
        with self._lock:
            existing = self._by_order.get(order.id)
            if existing is not None:
                return self._tickets[existing]
            ticket = KitchenTicket(
                id=f"KT{next(self._ticket_seq):04d}",
                order_id=order.id,
                order_number=order.order_number,
                items=items,
                estimated_prep_time=self.estimate_prep_time(items),
                received_at=self._clock(),
                priority=self._priority(order),
                table_id=order.table_id,
            )
            self._tickets[ticket.id] = ticket
            self._by_order[order.id] = ticket.id
        logger.info(
            "kitchen ticket created ticket_id=%s order_id=%s estimate=%s priority=%s",
            ticket.id,
            order.id,
            ticket.estimated_prep_time,
            ticket.priority,
        )
        return ticket

    # -- event handlers ---------------------------------------------------

    def _on_order_created(self, payload: dict[str, Any]) -> None:
        self.create_ticket(self._orders.get(payload["order_id"]))

    def _on_status_changed(self, payload: dict[str, Any]) -> None:
        status = payload.get("status")
        with self._lock:
            ticket_id = self._by_order.get(payload.get("order_id"))
            ticket = self._tickets.get(ticket_id) if ticket_id else None
            if ticket is None:
                return
            now = self._clock()
            if status == ORDER_PREPARING and ticket.started_at is None:
                ticket.status = PREPARING
                ticket.started_at = now
            elif status == READY and ticket.status != COMPLETED:
                for item in ticket.items:
                    if item.status != COMPLETED:
                        item.status = COMPLETED
                        item.completed_at = now
                ticket.status = COMPLETED
                ticket.completed_at = now
            elif status in (SERVED, CANCELLED):
                ticket.status = CLOSED

    def _on_order_split(self, payload: dict[str, Any]) -> None:
        line_ids = set(payload.get("line_ids") or [])
        new_order = self._orders.get(payload["new_order_id"])
        with self._lock:
            ticket_id = self._by_order.get(payload["order_id"])
            source = self._tickets.get(ticket_id) if ticket_id else None
            if source is None:
                return
            moved = [item for item in source.items if item.line_id in line_ids]
            source.items = [item for item in source.items if item.line_id not in line_ids]
            source.estimated_prep_time = self.estimate_prep_time(source.items)
            ticket = KitchenTicket(
                id=f"KT{next(self._ticket_seq):04d}",
                order_id=new_order.id,
                order_number=new_order.order_number,
                items=moved,
                estimated_prep_time=self.estimate_prep_time(moved),
                received_at=source.received_at,
                priority=self._priority(new_order),
                table_id=new_order.table_id,
                status=source.status,
                started_at=source.started_at,
            )
            self._tickets[ticket.id] = ticket
            self._by_order[new_order.id] = ticket.id

    def _on_orders_merged(self, payload: dict[str, Any]) -> None:
        with self._lock:
            primary_id = self._by_order.get(payload["order_id"])
            secondary_id = self._by_order.pop(payload["merged_order_id"], None)
            secondary = self._tickets.pop(secondary_id, None) if secondary_id else None
            primary = self._tickets.get(primary_id) if primary_id else None
            if primary is None or secondary is None:
                return
            primary.items.extend(secondary.items)
            primary.estimated_prep_time = self.estimate_prep_time(primary.items)

    def _on_lines_changed(self, payload: dict[str, Any]) -> None:
        order = self._orders.get(payload["order_id"])
        fresh_items = self._build_items(order)
        with self._lock:
            ticket_id = self._by_order.get(order.id)
            ticket = self._tickets.get(ticket_id) if ticket_id else None
            if ticket is None:
                return
            current = {item.line_id: item for item in ticket.items}
            items = []
            for fresh in fresh_items:
                kept = current.get(fresh.line_id)
                if kept is not None:
                    kept.quantity = fresh.quantity
                    items.append(kept)
                else:
                    items.append(fresh)
            ticket.items = items
            ticket.estimated_prep_time = self.estimate_prep_time(items)
            ticket.priority = self._priority(order)
        logger.info("kitchen ticket updated ticket_id=%s order_id=%s items=%s", ticket.id, order.id, len(items))

    # -- item progress ----------------------------------------------------

    def update_item_status(self, ticket_id: str, item_id: int, status: str) -> KitchenTicket:
        if status not in ITEM_STATUSES:
            raise ValidationError(f"Unknown item status: {status}")
        completed_now = False
        with self._lock:
            ticket = self.get_ticket(ticket_id)
            if ticket.status == CLOSED:
                raise ValidationError(f"Ticket {ticket_id} is closed")
            item = next((candidate for candidate in ticket.items if candidate.id == item_id), None)
            if item is None:
                raise NotFoundError(f"Ticket item {item_id} not found")
            now = self._clock()
            item.status = status
            item.completed_at = now if status == COMPLETED else None
            if status == PREPARING and ticket.started_at is None:
                ticket.status = PREPARING
                ticket.started_at = now
            if ticket.items and all(candidate.status == COMPLETED for candidate in ticket.items):
                if ticket.status != COMPLETED:
                    ticket.status = COMPLETED
                    ticket.completed_at = now
                    completed_now = True
            elif ticket.status == COMPLETED:
                ticket.status = PREPARING
                ticket.completed_at = None

        if completed_now:
            logger.info("kitchen ticket completed ticket_id=%s order_id=%s", ticket.id, ticket.order_id)
            self._events.emit(
                KITCHEN_TICKET_COMPLETED,
                {"ticket_id": ticket.id, "order_id": ticket.order_id, "order_number": ticket.order_number},
            )
            if self._settings.kitchen_auto_ready:
                self._mark_order_ready(ticket)
        return ticket

    def _mark_order_ready(self, ticket: KitchenTicket) -> None:
        try:
            order = self._orders.get(ticket.order_id)
        except NotFoundError:
            return
        if order.status != ORDER_PREPARING:
            logger.info("auto ready skipped order_id=%s status=%s", order.id, order.status)
            return
        try:
            self._orders.transition(order.id, READY, "Kitchen completed")
        except InvalidTransition:
            logger.warning("auto ready rejected order_id=%s", order.id)

    # -- queries ----------------------------------------------------------

    def get_ticket(self, ticket_id: str) -> KitchenTicket:
        ticket = self._tickets.get(ticket_id)
        if ticket is None:
            raise NotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    def ticket_for_order(self, order_id: int) -> KitchenTicket:
        ticket_id = self._by_order.get(order_id)
        if ticket_id is None:
            raise NotFoundError(f"No ticket for order {order_id}")
        return self._tickets[ticket_id]

    def open_tickets(self) -> list[KitchenTicket]:
        with self._lock:
            tickets = [ticket for ticket in self._tickets.values() if ticket.status in (RECEIVED, PREPARING)]
        rank = {HIGH: 0, NORMAL: 1}
        return sorted(tickets, key=lambda ticket: (rank.get(ticket.priority, 2), ticket.received_at))

    def station_queue(self, station: str) -> list[dict[str, Any]]:
        if station not in self.stations:
            raise NotFoundError(f"Station {station} not found")
        queue = []
        for ticket in self.open_tickets():
            for item in ticket.items:
                if item.station == station and item.status != COMPLETED:
                    queue.append({"ticket_id": ticket.id, "order_number": ticket.order_number, "item": item})
        return queue

    def station_workload(self) -> dict[str, dict[str, int]]:
        workload = {key: {"queued": 0, "preparing": 0, "minutes": 0} for key in self.stations}
        for ticket in self.open_tickets():
            for item in ticket.items:
                if item.status == COMPLETED:
                    continue
                entry = workload[item.station]
                entry["queued" if item.status == QUEUED else "preparing"] += 1
                entry["minutes"] += item.prep_time
        return workload

    def _elapsed_minutes(self, ticket: KitchenTicket) -> float:
        start = ticket.started_at or ticket.received_at
        end = ticket.completed_at or self._clock()
        return (end - start).total_seconds() / 60

    def timer_state(self, ticket_id: str) -> dict[str, Any]:
        ticket = self.get_ticket(ticket_id)
        elapsed = self._elapsed_minutes(ticket)
        ratio = elapsed / ticket.estimated_prep_time if ticket.estimated_prep_time else 0.0
        if ratio >= LATE_RATIO:
            state = LATE
        elif ratio >= WARNING_RATIO:
            state = WARNING
        else:
            state = ON_TRACK
        return {
            "ticket_id": ticket.id,
            "running": ticket.status == PREPARING,
            "elapsed_minutes": round(elapsed, 2),
            "estimated_minutes": ticket.estimated_prep_time,
            "ratio": round(ratio, 3),
            "state": state,
        }

    def overdue_tickets(self) -> list[KitchenTicket]:
        now = self._clock()
        return [
            ticket
            for ticket in self.open_tickets()
            if now > ticket.received_at + timedelta(minutes=ticket.estimated_prep_time)
        ]

    def performance(self) -> dict[str, Any]:
        with self._lock:
            done = [
                ticket
                for ticket in self._tickets.values()
                if ticket.completed_at is not None and all(item.status == COMPLETED for item in ticket.items)
            ]
        if not done:
            return {"completed": 0, "avg_prep_minutes": 0.0, "on_time_percentage": 0.0}
        durations = [(ticket, self._elapsed_minutes(ticket)) for ticket in done]
        on_time = [ticket for ticket, minutes in durations if minutes <= ticket.estimated_prep_time * ON_TIME_TOLERANCE]
        return {
            "completed": len(done),
            "avg_prep_minutes": round(sum(minutes for _, minutes in durations) / len(done), 2),
            "on_time_percentage": round(len(on_time) / len(done) * 100, 1),
        }

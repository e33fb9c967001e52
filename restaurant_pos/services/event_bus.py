from __future__ import annotations

import logging
from collections import defaultdict, deque
from datetime import datetime
from threading import Lock
from typing import Any, Callable, DefaultDict, Deque, List

from restaurant_pos.core.clock import Clock, utcnow

ORDER_CREATED = "order.created"
ORDER_STATUS_CHANGED = "order.statusChanged"
ORDER_SPLIT = "order.split"
ORDER_MERGED = "order.merged"
ORDER_LINES_CHANGED = "order.linesChanged"
INVENTORY_LOW_STOCK = "inventory.lowStock"
INVENTORY_OUT_OF_STOCK = "inventory.outOfStock"
INVENTORY_EXPIRING = "inventory.expiring"
PAYMENT_COMPLETED = "payment.completed"
PAYMENT_FAILED = "payment.failed"
KITCHEN_TICKET_COMPLETED = "kitchen.ticketCompleted"

Handler = Callable[[dict[str, Any]], None]


class EventBus:
    """Synchronous in-process pub/sub.

    Handlers run in subscription order inside the emitting call. A failing
    handler is logged and skipped, it never fails the operation that emitted
    the event.
    """

    def __init__(self, feed_size: int = 200, clock: Clock = utcnow) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)
        self._feed: Deque[dict[str, Any]] = deque(maxlen=feed_size)
        self._clock = clock
        self._lock = Lock()
        self._logger = logging.getLogger(__name__)

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        emitted_at: datetime = self._clock()
        with self._lock:
            self._feed.append({"event": event_name, "payload": dict(payload), "emitted_at": emitted_at})
            handlers = list(self._handlers.get(event_name, []))
        if not handlers:
            self._logger.debug("EventBus: no handlers for %s", event_name)
            return
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                self._logger.exception("EventBus handler failed for %s", event_name)

    def subscribe(self, event_name: str, handler: Handler) -> Callable[[], None]:
        with self._lock:
            self._handlers[event_name].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers.get(event_name, []):
                    self._handlers[event_name].remove(handler)

        return unsubscribe

    def recent(self, limit: int = 50, event_name: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            events = list(self._feed)
        if event_name:
            events = [event for event in events if event["event"] == event_name]
        return list(reversed(events))[:limit]

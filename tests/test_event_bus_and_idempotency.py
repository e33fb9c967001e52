import asyncio

import pytest

from restaurant_pos.services.event_bus import ORDER_CREATED, ORDER_STATUS_CHANGED, EventBus
from restaurant_pos.services.idempotency import IdempotencyRegistry
from tests.conftest import FakeClock


def test_handlers_run_in_subscription_order():
    bus = EventBus()
    calls = []
    bus.subscribe(ORDER_CREATED, lambda payload: calls.append(("first", payload["order_id"])))
    bus.subscribe(ORDER_CREATED, lambda payload: calls.append(("second", payload["order_id"])))

    bus.emit(ORDER_CREATED, {"order_id": 1})

    assert calls == [("first", 1), ("second", 1)]


def test_failing_handler_does_not_stop_the_others():
    bus = EventBus()
    calls = []

    def broken(_payload):
        raise RuntimeError("printer offline")

    bus.subscribe(ORDER_CREATED, broken)
    bus.subscribe(ORDER_CREATED, calls.append)

    bus.emit(ORDER_CREATED, {"order_id": 2})

    assert calls == [{"order_id": 2}]


def test_unsubscribe_detaches_handler():
    bus = EventBus()
    calls = []
    unsubscribe = bus.subscribe(ORDER_CREATED, calls.append)

    unsubscribe()
    unsubscribe()
    bus.emit(ORDER_CREATED, {"order_id": 3})

    assert calls == []


def test_recent_feed_is_bounded_and_newest_first():
    bus = EventBus(feed_size=2, clock=FakeClock())

    bus.emit(ORDER_CREATED, {"order_id": 1})
    bus.emit(ORDER_STATUS_CHANGED, {"order_id": 1, "status": "preparing"})
    bus.emit(ORDER_CREATED, {"order_id": 2})

    assert [entry["payload"]["order_id"] for entry in bus.recent()] == [2, 1]
    assert [entry["event"] for entry in bus.recent(event_name=ORDER_CREATED)] == [ORDER_CREATED]
    assert len(bus.recent(limit=1)) == 1


def test_idempotent_run_replays_only_successes():
    registry = IdempotencyRegistry()
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise ValueError("terminal busy")
        return {"order_id": len(attempts)}

    with pytest.raises(ValueError):
        registry.run("checkout", "key-1", flaky)
    first = registry.run("checkout", "key-1", flaky)
    second = registry.run("checkout", "key-1", flaky)

    assert first == {"order_id": 2}
    assert second is first
    assert len(attempts) == 2


def test_keys_are_scoped_and_optional():
    registry = IdempotencyRegistry()

    registry.remember("checkout", "k", "order")

    assert registry.lookup("checkout", "k") == (True, "order")
    assert registry.lookup("payment", "k") == (False, None)
    assert registry.run("checkout", None, lambda: "fresh") == "fresh"
    assert registry.lookup("checkout", None) == (False, None)

    registry.clear()
    assert registry.lookup("checkout", "k") == (False, None)


def test_async_run_replays_the_first_result():
    registry = IdempotencyRegistry()
    calls = []

    async def charge():
        calls.append(1)
        return f"tx-{len(calls)}"

    async def scenario():
        return [await registry.run_async("payment", "p-1", charge) for _ in range(3)]

    assert asyncio.run(scenario()) == ["tx-1", "tx-1", "tx-1"]
    assert calls == [1]

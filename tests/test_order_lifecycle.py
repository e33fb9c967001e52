from collections import Counter

import pytest

from restaurant_pos.core.errors import InsufficientStock, InvalidTransition, NotFoundError, ValidationError
from restaurant_pos.models.inventory import InventoryItem, RecipeLine
from restaurant_pos.models.order import FIXED, PERCENTAGE, Discount
from restaurant_pos.models.table import CLEANING, OCCUPIED, Table
from restaurant_pos.services.cart import snapshot_line
from restaurant_pos.services.event_bus import ORDER_CREATED, ORDER_STATUS_CHANGED
from tests.fixtures_data import SHORT_INGREDIENT


def _order(pos, *selections, **kwargs):
    lines = [snapshot_line(pos.catalog, item_id, quantity) for item_id, quantity in selections]
    return pos.orders.create_order(lines, **kwargs)


def _line_multiset(orders):
    counts = Counter()
    for order in orders:
        for line in order.lines:
            counts[(line.item_id, line.modifier_ids)] += line.quantity
    return counts


def test_order_walks_the_full_lifecycle(pos):
    order = _order(pos, (10, 1))

    for status in ("preparing", "ready", "served", "paid"):
        pos.orders.transition(order.id, status)

    assert order.status == "paid"
    assert order.paid_at is not None
    assert [entry.status for entry in order.timeline] == ["pending", "preparing", "ready", "served", "paid"]


def test_skipping_states_is_rejected(pos):
    order = _order(pos, (10, 1))

    with pytest.raises(InvalidTransition) as exc_info:
        pos.orders.transition(order.id, "served")

    assert exc_info.value.current == "pending"
    assert order.status == "pending"
    assert len(order.timeline) == 1


def test_same_state_transition_does_not_duplicate_timeline(pos):
    order = _order(pos, (10, 1))
    pos.orders.transition(order.id, "preparing")

    with pytest.raises(InvalidTransition):
        pos.orders.transition(order.id, "preparing")

    assert [entry.status for entry in order.timeline] == ["pending", "preparing"]


def test_unknown_status_and_unknown_order_are_rejected(pos):
    order = _order(pos, (10, 1))

    with pytest.raises(ValidationError):
        pos.orders.transition(order.id, "teleported")
    with pytest.raises(NotFoundError):
        pos.orders.transition(999, "preparing")


def test_closed_orders_accept_no_further_transitions(pos):
    order = _order(pos, (10, 1))
    pos.orders.cancel(order.id, "guest left")

    with pytest.raises(InvalidTransition):
        pos.orders.transition(order.id, "preparing")
    assert order.timeline[-1].note == "guest left"


def test_inventory_is_deducted_once_when_preparation_starts(pos):
    pos.inventory.add_item(InventoryItem(**SHORT_INGREDIENT))
    pos.inventory.set_recipe(10, [RecipeLine("INV900", 0.5)])
    order = _order(pos, (10, 2))

    assert pos.inventory.get_item("INV900").current_stock == 2.0

    pos.orders.transition(order.id, "preparing")
    pos.orders.transition(order.id, "cancelled")

    assert order.inventory_deducted is True
    assert pos.inventory.get_item("INV900").current_stock == pytest.approx(1.0)
    [movement] = pos.inventory.movements(reason="order_sale")
    assert movement.order_id == order.id


def test_shortfall_aborts_the_move_to_preparing(pos):
    pos.inventory.add_item(InventoryItem(**SHORT_INGREDIENT))
    pos.inventory.set_recipe(10, [RecipeLine("INV900", 1.5)])
    order = _order(pos, (10, 2))

    with pytest.raises(InsufficientStock):
        pos.orders.transition(order.id, "preparing")

    assert order.status == "pending"
    assert order.inventory_deducted is False
    assert len(order.timeline) == 1
    assert pos.inventory.get_item("INV900").current_stock == 2.0


def test_lines_can_only_change_while_pending(pos):
    order = _order(pos, (10, 1), (20, 1))
    line_id = order.lines[0].id

    pos.orders.update_line_quantity(order.id, line_id, 3)
    pos.orders.add_line(order.id, snapshot_line(pos.catalog, 20, 2))

    assert order.totals.subtotal == pytest.approx(30.0 + 15.0)
    assert [line.quantity for line in order.lines] == [3, 3]

    pos.orders.transition(order.id, "preparing")

    with pytest.raises(ValidationError):
        pos.orders.add_line(order.id, snapshot_line(pos.catalog, 20, 1))
    with pytest.raises(ValidationError):
        pos.orders.remove_line(order.id, line_id)


def test_last_line_cannot_be_removed(pos):
    order = _order(pos, (10, 1))

    with pytest.raises(ValidationError):
        pos.orders.remove_line(order.id, order.lines[0].id)
    with pytest.raises(NotFoundError):
        pos.orders.remove_line(order.id, 9999)


def test_split_then_merge_keeps_every_line(pos):
    order = _order(pos, (10, 2), (20, 1), (30, 1), discount=Discount(PERCENTAGE, 10))
    before = _line_multiset([order])
    total_before = order.totals.total

    original, new_order = pos.orders.split_order(order.id, [order.lines[1].id, order.lines[2].id])

    assert new_order.parent_order_id == original.id
    assert _line_multiset([original, new_order]) == before
    assert original.totals.total + new_order.totals.total == pytest.approx(total_before)

    merged = pos.orders.merge_orders(original.id, new_order.id)

    assert _line_multiset([merged]) == before
    assert merged.totals.total == pytest.approx(total_before)
    with pytest.raises(NotFoundError):
        pos.orders.get(new_order.id)


def test_split_keeps_fixed_discount_on_the_original(pos):
    order = _order(pos, (10, 1), (20, 1), discount=Discount(FIXED, 3.0))

    original, new_order = pos.orders.split_order(order.id, [order.lines[1].id])

    assert original.discount.kind == FIXED
    assert new_order.discount is None


def test_split_must_leave_a_line_behind(pos):
    order = _order(pos, (10, 1), (20, 1))

    with pytest.raises(ValidationError):
        pos.orders.split_order(order.id, [line.id for line in order.lines])
    with pytest.raises(NotFoundError):
        pos.orders.split_order(order.id, [4242])


def test_merge_requires_matching_status(pos):
    first = _order(pos, (10, 1))
    second = _order(pos, (20, 1))
    pos.orders.transition(second.id, "preparing")

    with pytest.raises(ValidationError):
        pos.orders.merge_orders(first.id, second.id)
    with pytest.raises(ValidationError):
        pos.orders.merge_orders(first.id, first.id)


def test_idempotency_key_replays_the_first_order(pos):
    first = _order(pos, (10, 1), idempotency_key="till-1:42")
    again = _order(pos, (20, 5), idempotency_key="till-1:42")

    assert again is first
    assert len(pos.orders.all_orders()) == 1


def test_dine_in_order_seats_and_releases_its_table(pos):
    pos.tables.add_table(Table(1, "T1"))
    order = _order(pos, (10, 1), table_id=1, staff_id="waiter-1")

    assert order.mode == "dine_in"
    assert pos.tables.get(1).status == OCCUPIED
    assert pos.tables.get(1).current_order_id == order.id

    for status in ("preparing", "ready", "served", "paid"):
        pos.orders.transition(order.id, status)

    assert pos.tables.get(1).status == CLEANING


def test_checkout_to_an_unseatable_table_leaves_no_order_behind(pos):
    pos.tables.add_table(Table(1, "T1", status=CLEANING))
    cart = pos.carts.get("till-1")
    cart.add_line(10, 1)
    created = []
    pos.events.subscribe(ORDER_CREATED, created.append)

    with pytest.raises(ValidationError):
        cart.checkout(pos.orders, table_id=1, idempotency_key="checkout-9")

    assert pos.orders.all_orders() == []
    assert created == []
    assert len(cart.lines) == 1
    assert pos.tables.get(1).order_ids == []


def test_transfer_moves_order_to_another_table(pos):
    pos.tables.add_table(Table(1, "T1"))
    pos.tables.add_table(Table(2, "T2"))
    order = _order(pos, (10, 1), table_id=1)

    pos.orders.transfer_order(order.id, table_id=2, staff_id="waiter-9")

    assert order.table_id == 2
    assert order.staff_id == "waiter-9"
    assert pos.tables.get(1).status == "free"
    assert pos.tables.get(2).current_order_id == order.id


def test_lifecycle_events_are_published(pos):
    seen = []
    pos.events.subscribe(ORDER_CREATED, lambda payload: seen.append(("created", payload["order_id"])))
    pos.events.subscribe(ORDER_STATUS_CHANGED, lambda payload: seen.append((payload["previous_status"], payload["status"])))

    order = _order(pos, (10, 1))
    pos.orders.transition(order.id, "preparing")

    assert seen == [("created", order.id), ("pending", "preparing")]


def test_statistics_count_revenue_from_paid_orders(pos):
    paid = _order(pos, (30, 1))
    _order(pos, (10, 1))
    for status in ("preparing", "ready", "served", "paid"):
        pos.orders.transition(paid.id, status)

    stats = pos.orders.statistics()

    assert stats["total_orders"] == 2
    assert stats["by_status"]["paid"] == 1
    assert stats["active_orders"] == 1
    assert stats["revenue"] == pytest.approx(paid.totals.total)

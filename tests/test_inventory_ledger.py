from datetime import timedelta

import pytest

from restaurant_pos.core.errors import InsufficientStock, NotFoundError, ValidationError
from restaurant_pos.models.inventory import InventoryItem, RecipeLine, Supplier
from restaurant_pos.services.cart import snapshot_line
from restaurant_pos.services.event_bus import INVENTORY_LOW_STOCK, INVENTORY_OUT_OF_STOCK, EventBus
from restaurant_pos.services.inventory import PO_PENDING, PO_PENDING_APPROVAL, PO_RECEIVED, InventoryLedger
from tests.conftest import FakeClock, make_settings
from tests.fixtures_data import PLENTIFUL_INGREDIENT, SHORT_INGREDIENT


def _ledger(**overrides):
    events = EventBus()
    clock = FakeClock()
    ledger = InventoryLedger(make_settings(**overrides), events, clock=clock)
    ledger.add_item(InventoryItem(**SHORT_INGREDIENT))
    ledger.add_item(InventoryItem(**PLENTIFUL_INGREDIENT))
    return ledger, events, clock


def test_deduction_with_shortfall_leaves_stock_untouched():
    ledger, _, _ = _ledger()

    with pytest.raises(InsufficientStock) as exc_info:
        ledger.deduct({"INV900": 3.0})

    [shortfall] = exc_info.value.shortfalls
    assert shortfall.inventory_id == "INV900"
    assert shortfall.shortage == pytest.approx(1.0)
    assert ledger.get_item("INV900").current_stock == 2.0
    assert ledger.movements() == []


def test_multi_ingredient_deduction_is_all_or_nothing():
    ledger, _, _ = _ledger()

    with pytest.raises(InsufficientStock):
        ledger.deduct({"INV900": 1.0, "INV901": 20.0})

    assert ledger.get_item("INV900").current_stock == 2.0
    assert ledger.get_item("INV901").current_stock == 10.0
    assert ledger.movements() == []


def test_unknown_ingredient_counts_as_shortfall():
    ledger, _, _ = _ledger()

    shortfalls = ledger.check({"INV404": 1.0})

    assert shortfalls[0].available == 0.0
    with pytest.raises(InsufficientStock):
        ledger.deduct({"INV404": 1.0, "INV901": 1.0})
    assert ledger.get_item("INV901").current_stock == 10.0


def test_successful_deduction_writes_one_movement_per_ingredient():
    ledger, _, _ = _ledger()

    movements = ledger.deduct({"INV900": 0.5, "INV901": 2.0}, order_id=7, note="ORD-0007")

    assert [movement.inventory_id for movement in movements] == ["INV900", "INV901"]
    assert movements[0].previous_stock == 2.0
    assert movements[0].resulting_balance == pytest.approx(1.5)
    assert movements[1].cost == pytest.approx(12.0)
    assert all(movement.order_id == 7 for movement in movements)
    assert sum(movement.delta for movement in ledger.movements(inventory_id="INV901")) == pytest.approx(-2.0)


def test_requirement_includes_modifier_recipes(catalog):
    ledger, _, _ = _ledger()
    ledger.set_recipe(10, [RecipeLine("INV900", 0.2)])
    ledger.set_modifier_recipe(100, [RecipeLine("INV901", 0.05)])

    requirement = ledger.compute_requirement([snapshot_line(catalog, 10, 3, [100])])

    assert requirement["INV900"] == pytest.approx(0.6)
    assert requirement["INV901"] == pytest.approx(0.15)


def test_fractional_recipe_can_use_up_exactly_the_stock_on_hand(catalog):
    ledger, _, _ = _ledger()
    ledger.add_item(InventoryItem(id="INV903", name="Olive Oil", unit="l", current_stock=0.3))
    ledger.set_recipe(10, [RecipeLine("INV903", 0.1)])

    requirement = ledger.compute_requirement([snapshot_line(catalog, 10, 3)])
    ledger.deduct(requirement)

    assert requirement == {"INV903": 0.3}
    assert ledger.get_item("INV903").current_stock == 0.0


def test_repeated_small_deductions_do_not_drift():
    ledger, _, _ = _ledger()
    ledger.add_item(InventoryItem(id="INV903", name="Olive Oil", unit="l", current_stock=1.0))

    for _ in range(10):
        ledger.deduct({"INV903": 0.1})

    assert ledger.get_item("INV903").current_stock == 0.0
    assert ledger.movements(inventory_id="INV903")[-1].resulting_balance == 0.0


def test_record_waste_reduces_stock_and_costs_it():
    ledger, _, _ = _ledger()

    entry = ledger.record_waste("INV901", 1.5, "dropped tray")

    assert entry.id == "WST0001"
    assert entry.cost == pytest.approx(9.0)
    assert ledger.get_item("INV901").current_stock == pytest.approx(8.5)
    assert ledger.movements(reason="waste")[0].note == "dropped tray"
    with pytest.raises(InsufficientStock):
        ledger.record_waste("INV900", 5, "spoiled")
    with pytest.raises(ValidationError):
        ledger.record_waste("INV900", 1, "")


def test_adjust_stock_requires_reason_and_non_negative_level():
    ledger, _, _ = _ledger()

    with pytest.raises(ValidationError):
        ledger.adjust_stock("INV901", 4, "")
    with pytest.raises(ValidationError):
        ledger.adjust_stock("INV901", -1, "count")

    movement = ledger.adjust_stock("INV901", 4, "weekly count")

    assert movement.delta == pytest.approx(-6.0)
    assert ledger.get_item("INV901").current_stock == 4


def test_low_and_out_of_stock_alerts_follow_the_balance():
    ledger, events, _ = _ledger()
    seen = []
    events.subscribe(INVENTORY_LOW_STOCK, lambda payload: seen.append(("low", payload["inventory_id"])))
    events.subscribe(INVENTORY_OUT_OF_STOCK, lambda payload: seen.append(("out", payload["inventory_id"])))

    ledger.deduct({"INV900": 1.5})
    assert [alert.kind for alert in ledger.active_alerts()] == ["low_stock"]

    ledger.deduct({"INV900": 0.5})
    assert [alert.kind for alert in ledger.active_alerts()] == ["out_of_stock"]

    ledger.add_stock("INV900", 5)
    assert ledger.active_alerts() == []
    assert seen == [("low", "INV900"), ("out", "INV900")]


def test_one_active_alert_per_item_and_kind():
    ledger, _, _ = _ledger()

    ledger.deduct({"INV900": 1.5})
    ledger.deduct({"INV900": 0.25})

    assert len(ledger.active_alerts("low_stock")) == 1


def test_low_stock_event_fires_once_per_threshold_crossing():
    ledger, events, _ = _ledger()
    seen = []
    events.subscribe(INVENTORY_LOW_STOCK, seen.append)

    ledger.deduct({"INV900": 1.5})
    ledger.deduct({"INV900": 0.1})
    ledger.deduct({"INV900": 0.1})
    assert len(seen) == 1

    ledger.add_stock("INV900", 5)
    ledger.deduct({"INV900": 5.0})
    assert len(seen) == 2


def test_acknowledged_low_stock_is_not_raised_again_while_still_low():
    ledger, events, _ = _ledger()
    seen = []
    events.subscribe(INVENTORY_LOW_STOCK, seen.append)
    ledger.deduct({"INV900": 1.5})
    [alert] = ledger.active_alerts("low_stock")

    ledger.acknowledge_alert(alert.id)
    ledger.deduct({"INV900": 0.1})

    assert ledger.active_alerts("low_stock") == []
    assert len(seen) == 1


def test_acknowledged_alert_is_no_longer_active():
    ledger, _, _ = _ledger()
    ledger.deduct({"INV900": 1.8})
    [alert] = ledger.active_alerts()

    acknowledged = ledger.acknowledge_alert(alert.id)

    assert acknowledged.acknowledged_at is not None
    assert ledger.active_alerts() == []
    with pytest.raises(NotFoundError):
        ledger.acknowledge_alert("ALT9999")


def test_expiry_warning_escalates_to_danger_on_last_day():
    ledger, _, clock = _ledger()
    ledger.add_item(
        InventoryItem(
            id="INV902",
            name="Cream",
            unit="l",
            current_stock=4,
            min_stock_level=1,
            expiry_date=clock() + timedelta(days=1),
            track_expiry=True,
        )
    )

    raised = ledger.evaluate_alerts(["INV902"])

    assert [(alert.kind, alert.severity) for alert in raised] == [("expiry_warning", "danger")]
    assert [item.id for item in ledger.expiring_soon()] == ["INV902"]


def test_reorder_suggestions_are_grouped_by_supplier():
    ledger, _, _ = _ledger()
    ledger.add_item(
        InventoryItem(
            id="INV903",
            name="Eggs",
            unit="dozen",
            current_stock=2,
            reorder_point=3,
            reorder_quantity=10,
            unit_cost=2.5,
            supplier_id="SUP010",
            auto_reorder=True,
        )
    )

    [suggestion] = ledger.reorder_suggestions()

    assert suggestion["supplier_id"] == "SUP010"
    assert suggestion["items"][0]["quantity"] == 10
    assert suggestion["estimated_total"] == pytest.approx(25.0)


def test_large_purchase_order_needs_approval_before_receiving():
    ledger, _, _ = _ledger(purchase_order_approval_limit=50.0)
    ledger.add_supplier(Supplier("SUP010", "Mill & Co", ["Monday"]))

    purchase_order = ledger.create_purchase_order("SUP010", [{"inventory_id": "INV900", "quantity": 50}])

    assert purchase_order.status == PO_PENDING_APPROVAL
    assert purchase_order.total == pytest.approx(60.0)
    assert ledger.active_alerts("purchase_order_approval")
    with pytest.raises(ValidationError):
        ledger.receive_purchase_order(purchase_order.id)

    ledger.approve_purchase_order(purchase_order.id)
    assert purchase_order.status == PO_PENDING
    assert ledger.active_alerts("purchase_order_approval") == []

    ledger.receive_purchase_order(purchase_order.id)

    assert purchase_order.status == PO_RECEIVED
    assert ledger.get_item("INV900").current_stock == pytest.approx(52.0)
    assert ledger.movements(reason="purchase_order")[0].note == purchase_order.id
    assert ledger.get_item("INV900").last_restocked is not None


def test_purchase_order_delivery_lands_on_a_supplier_day():
    ledger, _, clock = _ledger()
    ledger.add_supplier(Supplier("SUP010", "Mill & Co", ["Friday"]))

    purchase_order = ledger.create_purchase_order("SUP010", [{"inventory_id": "INV901", "quantity": 1}])

    assert purchase_order.expected_delivery.strftime("%A") == "Friday"
    assert purchase_order.expected_delivery > clock()


def test_statistics_summarise_value_and_alerts():
    ledger, _, _ = _ledger()
    ledger.record_waste("INV900", 1, "burnt")

    stats = ledger.statistics()

    assert stats["total_items"] == 2
    assert stats["total_value"] == pytest.approx(1.2 + 60.0)
    assert stats["waste_cost"] == pytest.approx(1.2)
    assert stats["movement_count"] == 1

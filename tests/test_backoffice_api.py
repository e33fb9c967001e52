import pytest
from fastapi.testclient import TestClient

from restaurant_pos import main
from restaurant_pos.services.context import build_context
from tests.conftest import FakeClock, make_settings
from tests.fixtures_data import CHECKOUT_HAPPY_PATH, RESERVATION_PAYLOAD

TERMINAL = {"X-Terminal-ID": "till-3"}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(
        main,
        "build_context",
        lambda: build_context(settings=make_settings(), clock=FakeClock(), seed=True),
    )
    with TestClient(main.app) as test_client:
        yield test_client


def test_waste_and_restock_drive_stock_alerts(client):
    waste = client.post("/api/inventory/items/INV003/waste", json={"quantity": 5.5, "reason": " dropped tray "})
    assert waste.status_code == 200
    assert waste.json()["reason"] == "dropped tray"
    assert client.get("/api/inventory/items/INV003").json()["current_stock"] == pytest.approx(2.7)

    alerts = client.get("/api/inventory/alerts", params={"kind": "low_stock"}).json()
    assert [alert["inventory_id"] for alert in alerts] == ["INV003"]

    acknowledged = client.post(f"/api/inventory/alerts/{alerts[0]['id']}/acknowledge")
    assert acknowledged.status_code == 200
    assert acknowledged.json()["is_active"] is False
    assert acknowledged.json()["acknowledged_at"] is not None

    client.post("/api/inventory/items/INV003/waste", json={"quantity": 0.1, "reason": "spoiled"})
    assert client.get("/api/inventory/alerts", params={"kind": "low_stock"}).json() == []

    restock = client.post("/api/inventory/items/INV003/restock", json={"quantity": 10, "note": "delivery"})
    assert restock.status_code == 200
    assert restock.json()["resulting_balance"] == pytest.approx(12.6)
    assert restock.json()["reason"] == "restock"
    assert client.get("/api/inventory/alerts").json() == []


def test_inventory_errors_map_to_http_statuses(client):
    missing = client.post("/api/inventory/items/INV999/restock", json={"quantity": 1})
    assert missing.status_code == 404
    assert missing.json()["detail"]["kind"] == "not_found"

    too_much = client.post("/api/inventory/items/INV001/waste", json={"quantity": 100, "reason": "spill"})
    assert too_much.status_code == 409
    assert too_much.json()["detail"]["kind"] == "insufficient_stock"

    blank_reason = client.post("/api/inventory/items/INV001/waste", json={"quantity": 1, "reason": "  "})
    assert blank_reason.status_code == 400

    unknown_alert = client.post("/api/inventory/alerts/ALT9999/acknowledge")
    assert unknown_alert.status_code == 404

    assert client.post("/api/inventory/items/INV001/restock", json={"quantity": 0}).status_code == 422
    assert client.get("/api/inventory/items/INV001").json()["current_stock"] == 15.5


def test_table_reservation_round_trip(client):
    reserved = client.post("/api/tables/2/reservation", json=RESERVATION_PAYLOAD)
    assert reserved.status_code == 200
    assert reserved.json()["status"] == "reserved"
    assert reserved.json()["reservation"]["name"] == "Silva"

    again = client.post("/api/tables/2/reservation", json=RESERVATION_PAYLOAD)
    assert again.status_code == 400
    assert again.json()["detail"]["kind"] == "validation_error"

    cleared = client.delete("/api/tables/2/reservation")
    assert cleared.status_code == 200
    assert cleared.json()["status"] == "free"
    assert cleared.json()["reservation"] is None

    assert client.delete("/api/tables/2/reservation").status_code == 400
    assert client.post("/api/tables/99/reservation", json=RESERVATION_PAYLOAD).status_code == 404


def test_kds_item_status_updates(client):
    for line in CHECKOUT_HAPPY_PATH["lines"]:
        client.post("/api/cart/lines", json=line, headers=TERMINAL)
    order = client.post(
        "/api/cart/checkout",
        json=CHECKOUT_HAPPY_PATH["checkout"],
        headers={**TERMINAL, "Idempotency-Key": "kds-1"},
    ).json()
    ticket = client.get(f"/api/kds/orders/{order['id']}/ticket").json()
    item_id = ticket["items"][0]["id"]

    started = client.patch(f"/api/kds/tickets/{ticket['id']}/items/{item_id}", json={"status": " Preparing "})
    assert started.status_code == 200
    assert started.json()["status"] == "preparing"
    assert started.json()["started_at"] is not None
    assert started.json()["items"][0]["status"] == "preparing"

    invalid = client.patch(f"/api/kds/tickets/{ticket['id']}/items/{item_id}", json={"status": "cooking"})
    assert invalid.status_code == 400

    missing = client.patch(f"/api/kds/tickets/{ticket['id']}/items/999", json={"status": "completed"})
    assert missing.status_code == 404
    assert client.get("/api/kds/tickets/TKT9999").status_code == 404


def test_report_window_defaults_to_the_last_seven_days(client):
    summary = client.get("/api/reports/summary")
    assert summary.status_code == 200
    assert summary.json()["from"] == "2024-02-27"
    assert summary.json()["to"] == "2024-03-04"

    series = client.get("/api/reports/timeseries", params={"from": "2024-03-02", "to": "2024-03-04"})
    assert series.status_code == 200
    assert [point["date"] for point in series.json()["points"]] == ["2024-03-02", "2024-03-03", "2024-03-04"]
    assert all(point["revenue"] == 0 for point in series.json()["points"])


def test_report_rejects_bad_dates_and_granularity(client):
    assert client.get("/api/reports/summary", params={"from": "yesterday"}).status_code == 400
    assert client.get("/api/reports/summary", params={"from": "2024-03-05", "to": "2024-03-01"}).status_code == 400
    assert client.get("/api/reports/timeseries", params={"granularity": "year"}).status_code == 400


def test_menu_lookup(client):
    item = client.get("/api/menu/items/1")
    assert item.status_code == 200
    assert item.json()["modifiers"]

    missing = client.get("/api/menu/items/999")
    assert missing.status_code == 404
    assert missing.json()["detail"]["kind"] == "not_found"

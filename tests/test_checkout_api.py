import pytest
from fastapi.testclient import TestClient

from restaurant_pos import main
from restaurant_pos.services.context import build_context
from tests.conftest import make_settings
from tests.fixtures_data import CHECKOUT_HAPPY_PATH

TERMINAL = {"X-Terminal-ID": "till-1"}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(main, "build_context", lambda: build_context(settings=make_settings(), seed=True))
    with TestClient(main.app) as test_client:
        yield test_client


def _checkout(client, key="checkout-1"):
    for line in CHECKOUT_HAPPY_PATH["lines"]:
        response = client.post("/api/cart/lines", json=line, headers=TERMINAL)
        assert response.status_code == 200
    return client.post(
        "/api/cart/checkout",
        json=CHECKOUT_HAPPY_PATH["checkout"],
        headers={**TERMINAL, "Idempotency-Key": key},
    )


def test_checkout_to_payment_flow(client):
    response = _checkout(client)
    assert response.status_code == 201
    order = response.json()
    assert order["status"] == "pending"
    assert order["table_id"] == 1
    assert order["staff_id"] == "waiter-7"
    assert len(order["lines"]) == 2

    replay = client.post(
        "/api/cart/checkout",
        json=CHECKOUT_HAPPY_PATH["checkout"],
        headers={**TERMINAL, "Idempotency-Key": "checkout-1"},
    )
    assert replay.json()["id"] == order["id"]
    assert client.get("/api/cart", headers=TERMINAL).json()["lines"] == []

    ticket = client.get(f"/api/kds/orders/{order['id']}/ticket")
    assert ticket.status_code == 200
    assert ticket.json()["order_number"] == order["order_number"]
    assert client.get("/api/tables/1").json()["status"] == "occupied"

    for status in ("preparing", "ready", "served"):
        response = client.patch(f"/api/orders/{order['id']}/status", json={"status": status})
        assert response.status_code == 200
        assert response.json()["status"] == status

    payment = client.post(
        "/api/payments",
        json={"order_id": order["id"], "method": "card", "metadata": {"token": "tok_visa"}},
        headers={"Idempotency-Key": "pay-1"},
    )
    assert payment.status_code == 201
    assert payment.json()["status"] == "completed"
    assert payment.json()["total"] == pytest.approx(order["totals"]["total"], abs=0.01)

    paid = client.get(f"/api/orders/{order['id']}").json()
    assert paid["status"] == "paid"
    assert client.get("/api/tables/1").json()["status"] == "cleaning"

    events = [entry["event"] for entry in client.get("/api/events").json()]
    assert "payment.completed" in events
    assert "order.created" in events


def test_invalid_transition_returns_conflict(client):
    order = _checkout(client, key="checkout-2").json()

    response = client.patch(f"/api/orders/{order['id']}/status", json={"status": "served"})

    assert response.status_code == 409
    assert response.json()["detail"]["kind"] == "invalid_transition"
    assert response.json()["detail"]["current_status"] == "pending"

    metrics = client.get("/internal/metrics").json()
    assert metrics["errors"]["invalid_transition"] >= 1
    assert any(key.startswith("PATCH ") for key in metrics["endpoints"])


def test_unknown_order_is_not_found(client):
    response = client.get("/api/orders/999")

    assert response.status_code == 404
    assert response.json()["detail"]["kind"] == "not_found"

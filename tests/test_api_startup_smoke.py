from fastapi.testclient import TestClient

from restaurant_pos.services.context import build_context
from tests.conftest import make_settings


REQUIRED_ROUTES = {
    "/api/menu/items",
    "/api/cart/checkout",
    "/api/orders/{order_id}/status",
    "/api/orders/{order_id}/split",
    "/api/inventory/items",
    "/api/inventory/purchase-orders",
    "/api/kds/tickets",
    "/api/payments/split",
    "/api/payments/{transaction_id}/refund",
    "/api/tables/{table_id}/reservation",
    "/api/reports/summary",
    "/api/reports/timeseries",
    "/api/events",
    "/internal/metrics",
}


def test_api_startup_and_router_registration(monkeypatch):
    from restaurant_pos import main

    monkeypatch.setattr(main, "build_context", lambda: build_context(settings=make_settings(), seed=True))

    with TestClient(main.app) as client:
        response = client.get("/")
        health_response = client.get("/health")
        docs_response = client.get("/docs")
        openapi_response = client.get("/openapi.json")
        menu_response = client.get("/api/menu/items")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert health_response.json() == {"status": "healthy"}
    assert docs_response.status_code == 200
    assert openapi_response.status_code == 200
    assert menu_response.status_code == 200
    assert menu_response.json()

    paths = {route.path for route in main.app.routes}
    assert REQUIRED_ROUTES.issubset(paths)

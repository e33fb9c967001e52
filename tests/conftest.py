from datetime import timedelta

import pytest

from restaurant_pos.core.config import Settings
from restaurant_pos.models.catalog import Category, MenuItem, Modifier
from restaurant_pos.services.catalog import InMemoryCatalog
from restaurant_pos.services.context import build_context
from tests.fixtures_data import FIXED_NOW, PRICING_CATALOG


class FakeClock:
    def __init__(self, now=FIXED_NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def make_catalog():
    return InMemoryCatalog(
        [Category(**raw) for raw in PRICING_CATALOG["categories"]],
        [MenuItem(**raw) for raw in PRICING_CATALOG["items"]],
        [Modifier(**raw) for raw in PRICING_CATALOG["modifiers"]],
    )


def make_settings(**overrides):
    base = Settings(
        tax_rate=0.08,
        service_charge_rate=0.10,
        max_discount_percent=50.0,
        max_fixed_discount=100.0,
        expiry_warning_days=3,
        purchase_order_approval_limit=1000.0,
        payment_gateway_timeout_seconds=5.0,
        split_payment_policy="continue",
        kitchen_min_prep_minutes=5,
        kitchen_auto_ready=True,
        large_order_item_count=5,
        seed_demo_data=False,
        event_feed_size=200,
        cors_origins=(),
    )
    return base.with_overrides(**overrides)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def catalog():
    return make_catalog()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def pos(settings, clock, catalog):
    context = build_context(settings=settings, clock=clock, seed=False, catalog=catalog)
    yield context
    context.kitchen.close()

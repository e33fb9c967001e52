from __future__ import annotations

import logging
from dataclasses import dataclass

from restaurant_pos.core.clock import Clock, utcnow
from restaurant_pos.core.config import Settings, get_settings
from restaurant_pos.services.cart import CartRegistry
from restaurant_pos.services.catalog import InMemoryCatalog
from restaurant_pos.services.event_bus import EventBus
from restaurant_pos.services.idempotency import IdempotencyRegistry
from restaurant_pos.services.inventory import InventoryLedger
from restaurant_pos.services.kitchen import KitchenDispatch
from restaurant_pos.services.orders import OrderStore
from restaurant_pos.services.payments import PaymentGateway, PaymentProcessor
from restaurant_pos.services.reports import Reporting
from restaurant_pos.services.seed import demo_catalog, seed_inventory, seed_tables
from restaurant_pos.services.tables import TableRegistry

logger = logging.getLogger(__name__)


@dataclass
class PosContext:
    settings: Settings
    events: EventBus
    catalog: InMemoryCatalog
    inventory: InventoryLedger
    tables: TableRegistry
    orders: OrderStore
    carts: CartRegistry
    kitchen: KitchenDispatch
    payments: PaymentProcessor
    reports: Reporting
    idempotency: IdempotencyRegistry
    clock: Clock = utcnow


def build_context(
    settings: Settings | None = None,
    gateway: PaymentGateway | None = None,
    clock: Clock | None = None,
    seed: bool | None = None,
    catalog: InMemoryCatalog | None = None,
) -> PosContext:
    settings = settings or get_settings()
    clock = clock or utcnow
    seed = settings.seed_demo_data if seed is None else seed

    events = EventBus(feed_size=settings.event_feed_size, clock=clock)
    if catalog is None:
        catalog = demo_catalog() if seed else InMemoryCatalog()
    inventory = InventoryLedger(settings, events, clock=clock)
    tables = TableRegistry()
    if seed:
        seed_inventory(inventory, clock())
        seed_tables(tables)
        inventory.evaluate_alerts()

    orders = OrderStore(settings, inventory, events, tables=tables, clock=clock)
    idempotency = IdempotencyRegistry()
    payments = PaymentProcessor(settings, orders, events, gateway=gateway, idempotency=idempotency, clock=clock)
    context = PosContext(
        settings=settings,
        events=events,
        catalog=catalog,
        inventory=inventory,
        tables=tables,
        orders=orders,
        carts=CartRegistry(catalog, settings),
        kitchen=KitchenDispatch(settings, orders, events, clock=clock),
        payments=payments,
        reports=Reporting(orders, payments, inventory, catalog),
        idempotency=idempotency,
        clock=clock,
    )
    logger.info("pos context ready seeded=%s", seed)
    return context

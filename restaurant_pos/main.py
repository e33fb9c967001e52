import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from restaurant_pos.core.config import ENV, get_settings
from restaurant_pos.core.logging_setup import configure_logging
from restaurant_pos.middleware.observability import ObservabilityMiddleware
from restaurant_pos.routers.cart import router as cart_router
from restaurant_pos.routers.events import router as events_router
from restaurant_pos.routers.internal_metrics import router as internal_metrics_router
from restaurant_pos.routers.inventory import router as inventory_router
from restaurant_pos.routers.kds import router as kds_router
from restaurant_pos.routers.menu import router as menu_router
from restaurant_pos.routers.orders import router as orders_router
from restaurant_pos.routers.payments import router as payments_router
from restaurant_pos.routers.reports import router as reports_router
from restaurant_pos.routers.tables import router as tables_router
from restaurant_pos.services.context import build_context

configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    context = build_context()
    app.state.pos = context
    logger.info("startup complete env=%s", ENV)
    try:
        yield
    finally:
        context.kitchen.close()
        app.state.pos = None


app = FastAPI(
    title="Restaurant POS API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)

app.include_router(menu_router)
app.include_router(cart_router)
app.include_router(orders_router)
app.include_router(inventory_router)
app.include_router(kds_router)
app.include_router(payments_router)
app.include_router(tables_router)
app.include_router(reports_router)
app.include_router(events_router)
app.include_router(internal_metrics_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}

import os
from dataclasses import dataclass, replace
from functools import lru_cache

from dotenv import load_dotenv

# Load .env from the project root
load_dotenv()

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default).strip()
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid {name}: {raw}") from exc


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default).strip()
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid {name}: {raw}") from exc


ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

# Pricing
TAX_RATE = _env_float("TAX_RATE", "0.08")
SERVICE_CHARGE_RATE = _env_float("SERVICE_CHARGE_RATE", "0.10")
MAX_DISCOUNT_PERCENT = _env_float("MAX_DISCOUNT_PERCENT", "50")
MAX_FIXED_DISCOUNT = _env_float("MAX_FIXED_DISCOUNT", "100")

# Inventory
EXPIRY_WARNING_DAYS = _env_int("EXPIRY_WARNING_DAYS", "3")
PURCHASE_ORDER_APPROVAL_LIMIT = _env_float("PURCHASE_ORDER_APPROVAL_LIMIT", "1000")

# Payments
PAYMENT_GATEWAY_TIMEOUT_SECONDS = _env_float("PAYMENT_GATEWAY_TIMEOUT_SECONDS", "10")
SPLIT_PAYMENT_POLICY = os.getenv("SPLIT_PAYMENT_POLICY", "continue").strip().lower()
if SPLIT_PAYMENT_POLICY not in {"continue", "stop_on_failure"}:
    SPLIT_PAYMENT_POLICY = "continue"

# Kitchen
KITCHEN_MIN_PREP_MINUTES = _env_int("KITCHEN_MIN_PREP_MINUTES", "5")
KITCHEN_AUTO_READY = _env_flag("KITCHEN_AUTO_READY", "1")
LARGE_ORDER_ITEM_COUNT = _env_int("LARGE_ORDER_ITEM_COUNT", "5")

SEED_DEMO_DATA = _env_flag("SEED_DEMO_DATA", "1" if IS_DEV else "0")
EVENT_FEED_SIZE = _env_int("EVENT_FEED_SIZE", "200")

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]


@dataclass(frozen=True)
class Settings:
    tax_rate: float = TAX_RATE
    service_charge_rate: float = SERVICE_CHARGE_RATE
    max_discount_percent: float = MAX_DISCOUNT_PERCENT
    max_fixed_discount: float = MAX_FIXED_DISCOUNT
    expiry_warning_days: int = EXPIRY_WARNING_DAYS
    purchase_order_approval_limit: float = PURCHASE_ORDER_APPROVAL_LIMIT
    payment_gateway_timeout_seconds: float = PAYMENT_GATEWAY_TIMEOUT_SECONDS
    split_payment_policy: str = SPLIT_PAYMENT_POLICY
    kitchen_min_prep_minutes: int = KITCHEN_MIN_PREP_MINUTES
    kitchen_auto_ready: bool = KITCHEN_AUTO_READY
    large_order_item_count: int = LARGE_ORDER_ITEM_COUNT
    seed_demo_data: bool = SEED_DEMO_DATA
    event_feed_size: int = EVENT_FEED_SIZE
    cors_origins: tuple[str, ...] = tuple(CORS_ORIGINS)

    def with_overrides(self, **changes) -> "Settings":
        return replace(self, **changes)


@lru_cache
def get_settings() -> Settings:
    return Settings()

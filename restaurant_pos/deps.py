from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from restaurant_pos.core.errors import PosError
from restaurant_pos.core.metrics import request_metrics
from restaurant_pos.services.cart import Cart
from restaurant_pos.services.context import PosContext

logger = logging.getLogger(__name__)


def get_context(request: Request) -> PosContext:
    context = getattr(request.app.state, "pos", None)
    if context is None:
        raise HTTPException(status_code=503, detail="POS context not initialised")
    return context


def get_terminal_id(x_terminal_id: Optional[str] = Header(default=None, alias="X-Terminal-ID")) -> Optional[str]:
    return x_terminal_id


def get_staff_id(x_staff_id: Optional[str] = Header(default=None, alias="X-Staff-ID")) -> Optional[str]:
    return x_staff_id


def get_idempotency_key(
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
) -> Optional[str]:
    if idempotency_key is None:
        return None
    return idempotency_key.strip() or None


def get_cart(
    terminal_id: Optional[str] = Depends(get_terminal_id),
    context: PosContext = Depends(get_context),
) -> Cart:
    return context.carts.get(terminal_id)


def http_error(exc: PosError) -> HTTPException:
    """Translate a rejected operation into the HTTP error the client sees."""
    request_metrics.observe_error(exc.kind)
    logger.warning(
        "operation rejected kind=%s message=%s",
        exc.kind,
        exc.message,
        extra={"error_kind": exc.kind},
    )
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict())

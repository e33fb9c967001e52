from __future__ import annotations

from fastapi import APIRouter

from restaurant_pos.core.metrics import request_metrics

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("")
def endpoint_metrics():
    return {"endpoints": request_metrics.snapshot(), "errors": request_metrics.error_kinds()}

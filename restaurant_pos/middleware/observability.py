from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from restaurant_pos.core.metrics import request_metrics
from restaurant_pos.core.request_context import reset_request_context, set_request_context

logger = logging.getLogger(__name__)

TERMINAL_HEADER = "X-Terminal-ID"
STAFF_HEADER = "X-Staff-ID"


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        terminal_id = request.headers.get(TERMINAL_HEADER)
        staff_id = request.headers.get(STAFF_HEADER)
        request.state.request_id = request_id
        context_token = set_request_context(request_id=request_id, terminal_id=terminal_id, staff_id=staff_id)

        status_code = 500
        method = request.method
        response = None

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            endpoint = _route_path(request)
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            request_metrics.observe(endpoint=endpoint, method=method, status_code=status_code, duration_ms=duration_ms)

            logger.info(
                "request completed",
                extra={
                    "request_id": request_id,
                    "terminal_id": terminal_id,
                    "staff_id": staff_id,
                    "endpoint": endpoint,
                    "method": method,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                },
            )

            if response is not None:
                response.headers["X-Request-ID"] = request_id

            reset_request_context(context_token)


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or request.url.path

from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone

from restaurant_pos.core.request_context import get_request_id, get_staff_id, get_terminal_id

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Card numbers (13-19 digits, optionally grouped), PINs and bearer tokens never reach the log stream.
_SENSITIVE_PATTERNS = [
    (re.compile(r"\b(?:\d[ -]?){9,15}(\d{4})\b"), r"****\1"),
    (re.compile(r"(pin\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE), r"\1***"),
    (re.compile(r"(token\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE), r"\1***"),
    (re.compile(r"(authorization\s*[:=]\s*bearer\s+)([^\s\"]+)", re.IGNORECASE), r"\1***"),
]


def mask_sensitive(value: str) -> str:
    masked = value
    for pattern, replacement in _SENSITIVE_PATTERNS:
        masked = pattern.sub(replacement, masked)
    return masked


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "request_id": getattr(record, "request_id", None) or get_request_id(),
            "terminal_id": getattr(record, "terminal_id", None) or get_terminal_id(),
            "staff_id": getattr(record, "staff_id", None) or get_staff_id(),
            "module": record.name,
            "message": mask_sensitive(self.formatMessage(record)),
            "duration_ms": getattr(record, "duration_ms", None),
        }
        for key in ("endpoint", "method", "status_code", "error_kind", "order_id"):
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exception"] = mask_sensitive(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(level: str | None = None) -> None:
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level or LOG_LEVEL)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter("%(message)s"))
    root_logger.addHandler(handler)

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(level or LOG_LEVEL)

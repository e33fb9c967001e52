from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from threading import Lock


@dataclass
class EndpointMetric:
    total_requests: int = 0
    total_duration_ms: float = 0.0
    error_count: int = 0
    max_duration_ms: float = 0.0


class InMemoryRequestMetrics:
    def __init__(self) -> None:
        self._endpoints: dict[tuple[str, str], EndpointMetric] = {}
        self._error_kinds: Counter[str] = Counter()
        self._lock = Lock()

    def observe(self, endpoint: str, method: str, status_code: int, duration_ms: float) -> None:
        with self._lock:
            metric = self._endpoints.setdefault((endpoint, method), EndpointMetric())
            metric.total_requests += 1
            metric.total_duration_ms += duration_ms
            metric.max_duration_ms = max(metric.max_duration_ms, duration_ms)
            if status_code >= 400:
                metric.error_count += 1

    def observe_error(self, kind: str) -> None:
        with self._lock:
            self._error_kinds[kind] += 1

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            result: dict[str, dict[str, float | int]] = {}
            for (endpoint, method), metric in sorted(self._endpoints.items()):
                avg = metric.total_duration_ms / metric.total_requests if metric.total_requests else 0.0
                result[f"{method} {endpoint}"] = {
                    "total_requests": metric.total_requests,
                    "avg_duration_ms": round(avg, 2),
                    "max_duration_ms": round(metric.max_duration_ms, 2),
                    "error_count": metric.error_count,
                }
            return result

    def error_kinds(self) -> dict[str, int]:
        with self._lock:
            return dict(self._error_kinds)

    def reset(self) -> None:
        with self._lock:
            self._endpoints.clear()
            self._error_kinds.clear()


request_metrics = InMemoryRequestMetrics()

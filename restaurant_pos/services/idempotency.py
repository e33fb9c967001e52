from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class IdempotencyRegistry:
    """Replays the first successful result for a repeated ``(scope, key)``.

    Only successes are remembered, so a request that raised can be retried
    with the same key.
    """

    def __init__(self) -> None:
        self._results: dict[tuple[str, str], Any] = {}
        self._lock = Lock()

    def lookup(self, scope: str, key: str | None) -> tuple[bool, Any]:
        if not key:
            return False, None
        with self._lock:
            if (scope, key) in self._results:
                return True, self._results[(scope, key)]
        return False, None

    def remember(self, scope: str, key: str | None, result: Any) -> None:
        if not key:
            return
        with self._lock:
            self._results.setdefault((scope, key), result)

    def run(self, scope: str, key: str | None, fn: Callable[[], T]) -> T:
        found, result = self.lookup(scope, key)
        if found:
            logger.info("idempotent replay scope=%s key=%s", scope, key)
            return result
        result = fn()
        self.remember(scope, key, result)
        return result

    async def run_async(self, scope: str, key: str | None, fn: Callable[[], Awaitable[T]]) -> T:
        found, result = self.lookup(scope, key)
        if found:
            logger.info("idempotent replay scope=%s key=%s", scope, key)
            return result
        result = await fn()
        self.remember(scope, key, result)
        return result

    def clear(self) -> None:
        with self._lock:
            self._results.clear()

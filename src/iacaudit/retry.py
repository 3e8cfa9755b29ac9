"""Bounded retry with exponential backoff for idempotent reads."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
BASE_BACKOFF_MS = 1000
MAX_BACKOFF_MS = 10000


class RetryPolicy:
    def __init__(
        self,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_ms: int = BASE_BACKOFF_MS,
        cap_ms: int = MAX_BACKOFF_MS,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.max_attempts = max(1, int(max_attempts))
        self.base_ms = max(0, int(base_ms))
        self.cap_ms = max(0, int(cap_ms))
        self._sleep = sleep or asyncio.sleep

    def delay_ms(self, attempt: int) -> int:
        """Backoff after the given (1-indexed) failed attempt."""
        return min(self.base_ms * 2 ** (attempt - 1), self.cap_ms)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str,
        max_attempts: int | None = None,
        *,
        retry_if: Callable[[Exception], bool] | None = None,
    ) -> T:
        """Call ``operation`` until it succeeds or attempts run out.

        ``retry_if`` lets the caller mark failures as final (a 404, say); such
        failures are raised immediately without sleeping.
        """
        attempts = max(1, int(max_attempts)) if max_attempts is not None else self.max_attempts
        attempt = 1
        while True:
            try:
                logger.debug("Executing %s (attempt %d/%d)", label, attempt, attempts)
                return await operation()
            except Exception as exc:
                if retry_if is not None and not retry_if(exc):
                    raise
                if attempt >= attempts:
                    logger.error("Operation %s failed after %d attempts", label, attempts)
                    raise
                delay = self.delay_ms(attempt)
                logger.warning(
                    "Operation %s failed (%s), retrying in %dms", label, exc, delay
                )
                await self._sleep(delay / 1000)
                attempt += 1

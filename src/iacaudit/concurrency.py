"""Bounded fan-out of async operations over a collection.

A fixed number of workers share a pull cursor: each worker repeatedly claims
the next unclaimed index and writes its result at that position, so results
line up with the input regardless of completion order.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass(slots=True)
class SettledBatch(Generic[R]):
    results: list[R | None] = field(default_factory=list)
    errors: list[Exception | None] = field(default_factory=list)
    success_count: int = 0
    error_count: int = 0


def _worker_count(limit: int, total: int) -> int:
    return min(max(1, int(limit)), total)


async def process_concurrently(
    items: Sequence[T],
    processor: Callable[[T, int], Awaitable[R]],
    limit: int,
) -> list[R]:
    """Run ``processor`` over ``items`` with at most ``limit`` in flight.

    A failure does not cancel the batch: every item is still processed, then
    the first exception raised propagates.
    """
    if not items:
        return []
    results: list[R | None] = [None] * len(items)
    cursor = 0
    first_error: Exception | None = None

    async def worker() -> None:
        nonlocal cursor, first_error
        while cursor < len(items):
            index = cursor
            cursor += 1
            try:
                results[index] = await processor(items[index], index)
            except Exception as exc:
                if first_error is None:
                    first_error = exc

    await asyncio.gather(*(worker() for _ in range(_worker_count(limit, len(items)))))
    if first_error is not None:
        raise first_error
    return results  # type: ignore[return-value]


async def process_concurrently_settled(
    items: Sequence[T],
    processor: Callable[[T, int], Awaitable[R]],
    limit: int,
) -> SettledBatch[R]:
    """Like :func:`process_concurrently` but never raises for item failures."""
    if not items:
        return SettledBatch()
    batch: SettledBatch[R] = SettledBatch(
        results=[None] * len(items),
        errors=[None] * len(items),
    )
    cursor = 0

    async def worker() -> None:
        nonlocal cursor
        while cursor < len(items):
            index = cursor
            cursor += 1
            try:
                batch.results[index] = await processor(items[index], index)
            except Exception as exc:
                batch.errors[index] = exc
                batch.error_count += 1
            else:
                batch.success_count += 1

    await asyncio.gather(*(worker() for _ in range(_worker_count(limit, len(items)))))
    return batch

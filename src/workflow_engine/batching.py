"""Helpers for running many small async jobs under a concurrency bound.

Used by the cache (warming) and the executor (backoff policy), and handy for
callers that need to fan out over a list without building a task graph.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from workflow_engine.core.errors import AllRetriesExhausted
from workflow_engine.scheduler.limiter import ConcurrencyLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential backoff for a zero-based attempt index, capped at `max_delay`."""
    return min(base_delay * (2**attempt), max_delay)


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


async def gather_bounded(
    factories: Iterable[Callable[[], Awaitable[R]]],
    concurrency: int,
) -> list[R]:
    """Run coroutine factories with at most `concurrency` in flight.

    Results keep the order of `factories`. The first exception propagates
    after all started jobs have finished.
    """
    limiter = ConcurrencyLimiter(concurrency)

    async def _run(factory: Callable[[], Awaitable[R]]) -> R:
        async with limiter:
            return await factory()

    return list(await asyncio.gather(*(_run(f) for f in factories)))


async def process_in_chunks(
    items: Sequence[T],
    processor: Callable[[list[T]], Awaitable[list[R]]],
    *,
    chunk_size: int = 100,
    concurrency: int = 3,
    on_progress: Callable[[int, int], None] | None = None,
) -> list[R]:
    """Split `items` into chunks and process them concurrently.

    Output preserves chunk order. `on_progress(processed, total)` is called
    after each chunk completes; errors raised by it are logged and ignored.
    """
    chunks = chunked(items, chunk_size)
    processed = 0

    def _factory(index: int, chunk: list[T]) -> Callable[[], Awaitable[list[R]]]:
        async def _job() -> list[R]:
            nonlocal processed
            out = await processor(chunk)
            processed += len(chunk)
            logger.debug(
                f"Processed chunk {index + 1}/{len(chunks)} ({processed}/{len(items)} items)"
            )
            if on_progress is not None:
                try:
                    on_progress(processed, len(items))
                except Exception:
                    logger.exception("Chunk progress callback failed")
            return out

        return _job

    per_chunk = await gather_bounded(
        [_factory(i, chunk) for i, chunk in enumerate(chunks)], concurrency
    )
    return [item for chunk_out in per_chunk for item in chunk_out]


async def call_with_retry(
    fn: Callable[[], Awaitable[R]],
    *,
    retries: int,
    timeout: float,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    name: str = "request",
) -> R:
    """Await `fn()` with a per-attempt timeout, retrying with backoff.

    Raises:
        AllRetriesExhausted: After `retries + 1` failed attempts.
    """
    last_error: BaseException | None = None
    for attempt in range(retries + 1):
        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                return await fn()
        except TimeoutError as e:
            if deadline.expired():
                last_error = TimeoutError(f"{name} timed out after {timeout:g}s")
            else:
                last_error = e
        except Exception as e:
            last_error = e

        if attempt < retries:
            await asyncio.sleep(backoff_delay(attempt, base_delay, max_delay))

    assert last_error is not None
    raise AllRetriesExhausted(name, retries + 1, last_error)


@dataclass(frozen=True, slots=True)
class BatchOutcome(Generic[R]):
    success: bool
    result: R | None = None
    error: str | None = None


async def batch_requests(
    requests: Sequence[Callable[[], Awaitable[R]]],
    *,
    max_concurrency: int = 5,
    retries: int = 3,
    timeout: float = 30.0,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
) -> list[BatchOutcome[R]]:
    """Run independent requests with retry; failures are isolated per request."""

    def _factory(index: int, request: Callable[[], Awaitable[R]]) -> Callable[[], Awaitable[BatchOutcome[R]]]:
        async def _job() -> BatchOutcome[R]:
            try:
                value = await call_with_retry(
                    request,
                    retries=retries,
                    timeout=timeout,
                    base_delay=base_delay,
                    max_delay=max_delay,
                    name=f"request[{index}]",
                )
            except AllRetriesExhausted as e:
                return BatchOutcome(success=False, error=str(e))
            return BatchOutcome(success=True, result=value)

        return _job

    return await gather_bounded(
        [_factory(i, r) for i, r in enumerate(requests)], max_concurrency
    )

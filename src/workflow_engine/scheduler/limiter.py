"""FIFO counting permit pool for bounding concurrent task execution."""

from __future__ import annotations

import asyncio
import math
import os
from collections import deque
from types import TracebackType

# Used when the platform cannot report a CPU count.
_FALLBACK_CPU_COUNT = 4


class ConcurrencyLimiter:
    """A counting semaphore that serves waiters strictly first-come first-served.

    A released permit is handed directly to the longest-waiting acquirer, so a
    caller arriving later can never overtake one already queued.
    """

    def __init__(self, permits: int) -> None:
        if permits < 1:
            raise ValueError(f"permits must be >= 1, got {permits}")
        self._permits = permits
        self._in_use = 0
        self._peak_in_use = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def permits(self) -> int:
        return self._permits

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def peak_in_use(self) -> int:
        """Highest number of permits held at the same time."""
        return self._peak_in_use

    @property
    def waiting(self) -> int:
        return sum(1 for fut in self._waiters if not fut.done())

    async def acquire(self) -> None:
        if self._in_use < self._permits and not self._waiters:
            self._take()
            return

        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            await fut
        except asyncio.CancelledError:
            if fut.done() and not fut.cancelled():
                # The permit was handed over just before cancellation landed.
                self.release()
            else:
                try:
                    self._waiters.remove(fut)
                except ValueError:
                    pass
            raise

    def release(self) -> None:
        if self._in_use <= 0:
            raise RuntimeError("release() called more times than acquire()")

        while self._waiters:
            fut = self._waiters.popleft()
            if not fut.done():
                # Ownership moves to the waiter; in_use stays the same.
                fut.set_result(None)
                return

        self._in_use -= 1

    async def __aenter__(self) -> ConcurrencyLimiter:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def _take(self) -> None:
        self._in_use += 1
        self._peak_in_use = max(self._peak_in_use, self._in_use)


def adaptive_hint(cpu_count: int | None = None) -> int:
    """Concurrency suggested by available hardware parallelism."""
    cpus = cpu_count if cpu_count is not None else (os.cpu_count() or _FALLBACK_CPU_COUNT)
    return max(2, math.floor(cpus * 0.8))


def effective_concurrency(
    max_concurrency: int,
    batch_size: int,
    *,
    adaptive: bool,
    cpu_count: int | None = None,
) -> int:
    limit = min(max_concurrency, batch_size)
    if adaptive:
        limit = min(limit, adaptive_hint(cpu_count))
    return max(1, limit)

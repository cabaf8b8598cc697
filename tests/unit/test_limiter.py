"""Unit tests for the FIFO concurrency limiter."""

from __future__ import annotations

import asyncio

import pytest

from workflow_engine.scheduler.limiter import (
    ConcurrencyLimiter,
    adaptive_hint,
    effective_concurrency,
)


def test_rejects_zero_permits() -> None:
    with pytest.raises(ValueError):
        ConcurrencyLimiter(0)


@pytest.mark.asyncio
async def test_never_admits_more_than_permits() -> None:
    limiter = ConcurrencyLimiter(2)
    running = 0
    peak = 0

    async def worker() -> None:
        nonlocal running, peak
        async with limiter:
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

    await asyncio.gather(*(worker() for _ in range(6)))

    assert peak == 2
    assert limiter.peak_in_use == 2
    assert limiter.in_use == 0


@pytest.mark.asyncio
async def test_waiters_are_served_in_arrival_order() -> None:
    limiter = ConcurrencyLimiter(1)
    order: list[int] = []

    await limiter.acquire()

    async def waiter(n: int) -> None:
        await limiter.acquire()
        order.append(n)
        limiter.release()

    tasks = [asyncio.create_task(waiter(n)) for n in range(4)]
    await asyncio.sleep(0)
    assert limiter.waiting == 4

    limiter.release()
    await asyncio.gather(*tasks)

    assert order == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_release_without_acquire_raises() -> None:
    limiter = ConcurrencyLimiter(1)
    with pytest.raises(RuntimeError):
        limiter.release()


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_leak_permit() -> None:
    limiter = ConcurrencyLimiter(1)
    await limiter.acquire()

    blocked = asyncio.create_task(limiter.acquire())
    await asyncio.sleep(0)
    blocked.cancel()
    with pytest.raises(asyncio.CancelledError):
        await blocked

    limiter.release()
    assert limiter.in_use == 0

    await asyncio.wait_for(limiter.acquire(), timeout=1)
    assert limiter.in_use == 1


def test_adaptive_hint_uses_cpu_count() -> None:
    assert adaptive_hint(1) == 2
    assert adaptive_hint(10) == 8


def test_effective_concurrency() -> None:
    assert effective_concurrency(5, 3, adaptive=False) == 3
    assert effective_concurrency(5, 20, adaptive=False) == 5
    assert effective_concurrency(5, 20, adaptive=True, cpu_count=4) == 3
    assert effective_concurrency(5, 0, adaptive=False) == 1

"""Tests for the FIFO concurrency throttle."""

import asyncio

import pytest

from evm_rescue.rpc.throttle import ConcurrencyThrottle


@pytest.mark.asyncio
async def test_never_exceeds_limit() -> None:
    throttle = ConcurrencyThrottle(limit=2)
    peak = 0

    async def work() -> None:
        nonlocal peak
        async with throttle.slot():
            peak = max(peak, throttle.active)
            await asyncio.sleep(0)
            await asyncio.sleep(0)

    await asyncio.gather(*(work() for _ in range(6)))
    assert peak == 2
    assert throttle.active == 0
    assert throttle.waiting == 0


@pytest.mark.asyncio
async def test_queued_callers_are_admitted_in_arrival_order() -> None:
    throttle = ConcurrencyThrottle(limit=1)
    order: list[int] = []
    await throttle.acquire()

    async def queued(index: int) -> None:
        async with throttle.slot():
            order.append(index)

    tasks = [asyncio.create_task(queued(index)) for index in range(4)]
    await asyncio.sleep(0)
    assert throttle.waiting == 4

    throttle.release()
    await asyncio.gather(*tasks)
    assert order == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_newcomer_cannot_overtake_waiter() -> None:
    throttle = ConcurrencyThrottle(limit=1)
    order: list[str] = []
    await throttle.acquire()

    async def take(label: str) -> None:
        async with throttle.slot():
            order.append(label)

    waiter = asyncio.create_task(take("waiter"))
    await asyncio.sleep(0)
    throttle.release()
    newcomer = asyncio.create_task(take("newcomer"))
    await asyncio.gather(waiter, newcomer)
    assert order == ["waiter", "newcomer"]


@pytest.mark.asyncio
async def test_cancelled_waiter_leaves_queue() -> None:
    throttle = ConcurrencyThrottle(limit=1)
    await throttle.acquire()

    task = asyncio.create_task(throttle.acquire())
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert throttle.waiting == 0
    throttle.release()
    assert throttle.active == 0


def test_limit_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ConcurrencyThrottle(limit=0)

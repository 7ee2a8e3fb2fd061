# tests/test_tick_loop.py

from __future__ import annotations

import asyncio

import pytest

from storefront_sync.core.errors import ProtocolError, TransportError
from storefront_sync.polling.ticker import RetryPolicy, TickLoop, TickOutcome

from .fakes import wait_until


@pytest.mark.asyncio
async def test_transient_failures_retry_then_attempt_resets_on_success() -> None:
    results: list[object] = [TransportError("down"), TransportError("down"), "ok"]
    failures: list[tuple[int, bool]] = []
    done = asyncio.Event()

    async def tick() -> TickOutcome:
        step = results.pop(0)
        if isinstance(step, Exception):
            raise step
        done.set()
        return TickOutcome.STOP

    def on_failure(exc: Exception, attempt: int, exhausted: bool) -> TickOutcome:
        failures.append((attempt, exhausted))
        return TickOutcome.CONTINUE

    loop = TickLoop(tick, interval=10.0, on_failure=on_failure, retry=RetryPolicy(3, 0.01))
    await asyncio.wait_for(loop.run(), 1.0)

    assert done.is_set()
    assert failures == [(1, False), (2, False)]
    assert loop.attempt == 0


@pytest.mark.asyncio
async def test_retry_budget_exhaustion_is_reported_once() -> None:
    failures: list[tuple[int, bool]] = []

    async def tick() -> TickOutcome:
        raise TransportError("down")

    def on_failure(exc: Exception, attempt: int, exhausted: bool) -> TickOutcome:
        failures.append((attempt, exhausted))
        return TickOutcome.STOP if exhausted else TickOutcome.CONTINUE

    loop = TickLoop(tick, interval=10.0, on_failure=on_failure, retry=RetryPolicy(2, 0.01))
    await asyncio.wait_for(loop.run(), 1.0)

    assert failures == [(1, False), (2, False), (3, True)]


@pytest.mark.asyncio
async def test_non_retryable_error_is_exhausted_immediately() -> None:
    failures: list[tuple[str, int, bool]] = []

    async def tick() -> TickOutcome:
        raise ProtocolError("bad payload")

    def on_failure(exc: Exception, attempt: int, exhausted: bool) -> TickOutcome:
        failures.append((type(exc).__name__, attempt, exhausted))
        return TickOutcome.STOP

    await asyncio.wait_for(TickLoop(tick, interval=10.0, on_failure=on_failure).run(), 1.0)

    assert failures == [("ProtocolError", 1, True)]


@pytest.mark.asyncio
async def test_poke_runs_next_tick_before_interval() -> None:
    ticks = 0

    async def tick() -> TickOutcome:
        nonlocal ticks
        ticks += 1
        return TickOutcome.CONTINUE

    loop = TickLoop(tick, interval=30.0, on_failure=lambda *_: TickOutcome.STOP)
    loop.start()
    await wait_until(lambda: ticks == 1)

    loop.poke(0.01)
    await wait_until(lambda: ticks == 2, timeout=1.0)
    loop.stop()
    assert not loop.running


@pytest.mark.asyncio
async def test_stop_with_abort_cancels_in_flight_tick() -> None:
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def tick() -> TickOutcome:
        started.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return TickOutcome.CONTINUE

    loop = TickLoop(tick, interval=0.01, on_failure=lambda *_: TickOutcome.STOP)
    loop.start()
    await asyncio.wait_for(started.wait(), 1.0)

    loop.stop()
    await asyncio.wait_for(cancelled.wait(), 1.0)
    assert not loop.running


@pytest.mark.asyncio
async def test_stop_without_abort_lets_tick_settle_and_schedules_nothing() -> None:
    gate: asyncio.Future[None] = asyncio.get_running_loop().create_future()
    ticks = 0
    settled = asyncio.Event()

    async def tick() -> TickOutcome:
        nonlocal ticks
        ticks += 1
        await gate
        settled.set()
        return TickOutcome.CONTINUE

    loop = TickLoop(tick, interval=0.01, on_failure=lambda *_: TickOutcome.STOP)
    loop.start()
    await wait_until(lambda: ticks == 1)

    loop.stop(abort=False)
    gate.set_result(None)
    await asyncio.wait_for(settled.wait(), 1.0)
    await asyncio.sleep(0.05)

    assert ticks == 1

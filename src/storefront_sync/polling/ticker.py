# src/storefront_sync/polling/ticker.py

from __future__ import annotations

"""
Tick loop: the polling primitive shared by job tracking and chat sync.

A small scheduling loop that:
- runs one tick at a time (a new tick starts only after the previous one settles),
- waits a fixed interval after each settled tick,
- retries transient failures after a separate, shorter retry delay (two-tier scheduling),
- hands every failure to the owner, which decides whether the loop continues,
- can be poked to run the next tick sooner (e.g. refetch shortly after a send).

The loop owns exactly one asyncio task. Stop it with stop(); it never stops itself
because of external lifecycle signals.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

from ..core.errors import is_retryable

logger = logging.getLogger(__name__)


class TickOutcome(StrEnum):
    CONTINUE = "continue"
    STOP = "stop"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_retries: int = 3
    retry_delay: float = 1.0

    def allows(self, attempt: int) -> bool:
        return attempt <= self.max_retries


TickFn = Callable[[], Awaitable[TickOutcome]]
# (error, consecutive attempt number, exhausted) -> outcome
FailureFn = Callable[[Exception, int, bool], TickOutcome]


class TickLoop:
    def __init__(
            self,
            tick: TickFn,
            *,
            interval: float,
            on_failure: FailureFn,
            retry: RetryPolicy | None = None,
            is_retryable_error: Callable[[BaseException], bool] = is_retryable,
            name: str = "tick",
    ) -> None:
        self._tick = tick
        self._interval = max(0.0, float(interval))
        self._on_failure = on_failure
        self._retry = retry or RetryPolicy()
        self._is_retryable = is_retryable_error
        self.name = name

        self._task: asyncio.Task[None] | None = None
        self._generation = 0
        self._in_tick = False
        self._attempt = 0
        self._poke_at: float | None = None
        self._wake: asyncio.Event | None = None

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def interval(self) -> float:
        return self._interval

    def start(self, *, delay: float = 0.0) -> None:
        """(Re)start the loop; the first tick runs after `delay` seconds."""
        if self.running:
            self.stop()
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self.run(delay=delay), name=f"tick:{self.name}")

    async def run(self, *, delay: float = 0.0) -> None:
        """Run the loop in the current task until a tick/failure says STOP or stop() is called."""
        self._generation += 1
        gen = self._generation
        self._wake = asyncio.Event()
        self._attempt = 0
        self._poke_at = None

        if delay > 0:
            await self._sleep(delay)

        while gen == self._generation:
            self._in_tick = True
            try:
                outcome = await self._tick()
            except Exception as exc:
                self._in_tick = False
                if gen != self._generation:
                    logger.debug("%s: failure after stop ignored: %s", self.name, exc)
                    return
                self._attempt += 1
                exhausted = not self._is_retryable(exc) or not self._retry.allows(self._attempt)
                outcome = self._on_failure(exc, self._attempt, exhausted)
                if exhausted:
                    self._attempt = 0
                    wait = self._interval
                else:
                    wait = self._retry.retry_delay
            else:
                self._in_tick = False
                if gen != self._generation:
                    return
                self._attempt = 0
                wait = self._interval
            finally:
                self._in_tick = False

            if outcome == TickOutcome.STOP:
                logger.debug("%s: stopped by tick outcome", self.name)
                return

            await self._sleep(wait)

    def poke(self, delay: float = 0.0) -> None:
        """Schedule the next tick no later than `delay` seconds from now."""
        if not self.running or self._wake is None:
            return
        at = asyncio.get_running_loop().time() + max(0.0, delay)
        if self._poke_at is None or at < self._poke_at:
            self._poke_at = at
        self._wake.set()

    def stop(self, *, abort: bool = True) -> None:
        """
        Stop scheduling.

        abort=True cancels the loop task (and the awaited call with it).
        abort=False lets an in-flight tick settle; the loop exits right after it.
        """
        self._generation += 1
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        if abort or not self._in_tick:
            task.cancel()
        else:
            logger.debug("%s: stop requested, letting in-flight tick settle", self.name)

    async def _sleep(self, seconds: float) -> None:
        loop = asyncio.get_running_loop()
        wake = self._wake
        deadline = loop.time() + max(0.0, seconds)
        while True:
            target = deadline if self._poke_at is None else min(deadline, self._poke_at)
            remaining = target - loop.time()
            if remaining <= 0 or wake is None:
                break
            wake.clear()
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(wake.wait(), remaining)
        self._poke_at = None

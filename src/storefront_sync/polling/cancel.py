# src/storefront_sync/polling/cancel.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from ..core.errors import TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancelToken:
    """
    Explicit cancellation token threaded through every network call of an engine instance.

    - run(...) executes one call as a tracked task bounded by a per-call timeout.
    - spawn(...) starts a fire-and-forget call owned by the token (strong ref kept).
    - cancel(abort=True) aborts everything in flight; cancel(abort=False) lets in-flight
      calls settle. Either way callers must check `cancelled` before applying a result.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._cancelled = False
        self._inflight: set[asyncio.Future[Any]] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, *, abort: bool = True) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if not abort:
            logger.debug("token %s cancelled (%d call(s) left to settle)", self.name, len(self._inflight))
            return
        pending = [t for t in self._inflight if not t.done()]
        for task in pending:
            task.cancel()
        logger.debug("token %s cancelled (aborted %d call(s))", self.name, len(pending))

    async def run(self, call: Awaitable[T], *, timeout: float | None) -> T:
        """
        Await `call` with a per-call timeout.

        Raises TransportError on timeout, asyncio.CancelledError if the token is
        (or becomes) aborted.
        """
        if self._cancelled:
            _close(call)
            raise asyncio.CancelledError(f"token {self.name} already cancelled")

        task = asyncio.ensure_future(call)
        self._inflight.add(task)
        try:
            return await asyncio.wait_for(task, timeout)
        except asyncio.TimeoutError as exc:
            raise TransportError(f"request timed out after {timeout:.1f}s") from exc
        finally:
            self._inflight.discard(task)

    def spawn(self, call: Awaitable[Any], *, name: str | None = None) -> asyncio.Future[Any] | None:
        if self._cancelled:
            _close(call)
            logger.debug("token %s cancelled; not spawning %s", self.name, name or "call")
            return None

        task = asyncio.ensure_future(call)
        self._inflight.add(task)

        def _done(t: asyncio.Future[Any]) -> None:
            self._inflight.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error("background call %s failed", name or "?", exc_info=exc)

        task.add_done_callback(_done)
        return task

    @property
    def inflight(self) -> int:
        return sum(1 for t in self._inflight if not t.done())


def _close(call: Awaitable[Any]) -> None:
    # Avoid "coroutine was never awaited" warnings for calls we refuse to start.
    close = getattr(call, "close", None)
    if callable(close):
        close()

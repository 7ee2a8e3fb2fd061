# src/storefront_sync/connectors/engine_runner.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class EngineRunner:
    """
    Event loop on a background thread.

    The console REPL blocks on input(), so the engines live on their own loop and
    the REPL reaches them through call()/run(). Engine methods are not thread-safe:
    never touch an engine from the REPL thread directly.
    """

    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def run(self, coro: Coroutine[Any, Any, T], *, timeout: float | None = 30.0) -> T:
        """Run a coroutine on the engine loop and wait for its result (exceptions propagate)."""
        fut = asyncio.run_coroutine_threadsafe(coro, self.loop)
        try:
            return fut.result(timeout=timeout)
        except TimeoutError:
            fut.cancel()
            raise

    def call(self, fn: Callable[..., T], *args: Any, timeout: float | None = 10.0, **kwargs: Any) -> T:
        """Run a plain function on the engine loop (so it may create tasks) and return its result."""

        async def _invoke() -> T:
            return fn(*args, **kwargs)

        return self.run(_invoke(), timeout=timeout)

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Engine loop already closed.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


async def _serve(stop_event: asyncio.Event) -> None:
    await stop_event.wait()

    current = asyncio.current_task()
    pending = [t for t in asyncio.all_tasks() if t is not current and not t.done()]
    for t in pending:
        t.cancel()
    if pending:
        logger.debug("Cancelling %d engine task(s) on shutdown.", len(pending))
        await asyncio.gather(*pending, return_exceptions=True)


def start_engine_runner(*, name: str = "engines") -> EngineRunner:
    """Start the engine loop in a daemon thread and wait until it is ready."""
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_serve(stop_event))
        finally:
            with contextlib.suppress(RuntimeError):
                loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()
            logger.info("Engine loop stopped.")

    t = threading.Thread(target=runner, name=name, daemon=True)
    t.start()

    if not ready.wait(timeout=5.0):
        raise RuntimeError("engine thread did not start")

    loop = holder["loop"]
    stop_event = holder["stop_event"]
    assert isinstance(loop, asyncio.AbstractEventLoop) and isinstance(stop_event, asyncio.Event)

    logger.info("Engine background thread started.")
    return EngineRunner(thread=t, loop=loop, stop_event=stop_event)

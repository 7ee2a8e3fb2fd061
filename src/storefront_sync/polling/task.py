# src/storefront_sync/polling/task.py

from __future__ import annotations

"""
Generic "submit once, poll repeatedly, resolve once" job engine.

State machine:

    idle -> submitting -> polling -> succeeded | failed | timed_out
    any non-terminal state -> cancelled

Terminal states are sticky: a result that settles after a terminal transition
(including cancel()) never mutates state and never reaches subscribers.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Generic, TypeVar

from ..core.errors import (
    ApplicationError,
    DeadlineExceededError,
    FailureKind,
    InvalidStateError,
    ProtocolError,
    StorefrontSyncError,
    TransportError,
)
from .cancel import CancelToken
from .observers import Subscribers
from .ticker import RetryPolicy, TickLoop, TickOutcome

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class TaskState(StrEnum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {TaskState.SUCCEEDED, TaskState.FAILED, TaskState.TIMED_OUT, TaskState.CANCELLED}
)

_ALLOWED: dict[TaskState, frozenset[TaskState]] = {
    TaskState.IDLE: frozenset({TaskState.SUBMITTING, TaskState.CANCELLED}),
    TaskState.SUBMITTING: frozenset({TaskState.POLLING, TaskState.FAILED, TaskState.CANCELLED}),
    TaskState.POLLING: frozenset(
        {TaskState.SUCCEEDED, TaskState.FAILED, TaskState.TIMED_OUT, TaskState.CANCELLED}
    ),
}


@dataclass(frozen=True, slots=True)
class TaskFailure:
    kind: FailureKind
    reason: str

    def as_error(self) -> StorefrontSyncError:
        if self.kind is FailureKind.TIMEOUT:
            return DeadlineExceededError(self.reason)
        if self.kind is FailureKind.REJECTED:
            return ApplicationError(self.reason)
        if self.kind is FailureKind.MALFORMED:
            return ProtocolError(self.reason)
        return TransportError(self.reason)


@dataclass(frozen=True, slots=True)
class PollResult(Generic[T]):
    """What one status poll observed: still pending, or done with a value."""

    done: bool
    value: T | None = None
    status: str = ""

    @classmethod
    def pending(cls, status: str = "processing") -> PollResult[Any]:
        return cls(done=False, status=status)

    @classmethod
    def succeeded(cls, value: T, status: str = "completed") -> PollResult[T]:
        return cls(done=True, value=value, status=status)


@dataclass(frozen=True, slots=True)
class PollingConfig:
    interval: float = 0.5
    submit_timeout: float = 30.0
    call_timeout: float = 5.0
    overall_timeout: float = 60.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass(frozen=True, slots=True)
class PollingSnapshot(Generic[T]):
    state: TaskState
    task_id: str | None
    attempt: int
    max_retries: int
    started_at: float | None
    elapsed_seconds: float
    result: T | None = None
    failure: TaskFailure | None = None
    status: str = ""


SubmitFn = Callable[[R], Awaitable[str]]
PollFn = Callable[[str], Awaitable[PollResult[T]]]


class PollingTask(Generic[R, T]):
    """
    One tracked job.

    submit_fn(request) -> job id      (raises TransportError / ProtocolError / ApplicationError)
    poll_fn(job_id)    -> PollResult  (same error contract)
    """

    def __init__(
            self,
            submit_fn: SubmitFn[R],
            poll_fn: PollFn[T],
            config: PollingConfig | None = None,
            *,
            name: str = "job",
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._submit_fn = submit_fn
        self._poll_fn = poll_fn
        self._config = config or PollingConfig()
        self._clock = clock
        self.name = name

        self._state = TaskState.IDLE
        self._task_id: str | None = None
        self._attempt = 0
        self._started_at: float | None = None
        self._finished_at: float | None = None
        self._result: T | None = None
        self._failure: TaskFailure | None = None
        self._status = ""

        self._token: CancelToken | None = None
        self._runner: asyncio.Task[None] | None = None
        self._ticks: TickLoop | None = None
        self._done = asyncio.Event()
        self._subscribers: Subscribers[PollingSnapshot[T]] = Subscribers(f"task:{name}")

    # ---- read side ----

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def task_id(self) -> str | None:
        return self._task_id

    @property
    def config(self) -> PollingConfig:
        return self._config

    def elapsed_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._finished_at if self._finished_at is not None else self._clock()
        return max(0.0, end - self._started_at)

    def snapshot(self) -> PollingSnapshot[T]:
        return PollingSnapshot(
            state=self._state,
            task_id=self._task_id,
            attempt=self._attempt,
            max_retries=self._config.retry.max_retries,
            started_at=self._started_at,
            elapsed_seconds=self.elapsed_seconds(),
            result=self._result,
            failure=self._failure,
            status=self._status,
        )

    def subscribe(self, callback: Callable[[PollingSnapshot[T]], None]) -> Callable[[], None]:
        return self._subscribers.add(callback)

    async def wait(self) -> PollingSnapshot[T]:
        """Wait for a terminal state and return its snapshot."""
        await self._done.wait()
        return self.snapshot()

    # ---- commands ----

    def submit(self, request: R) -> None:
        if self._state is not TaskState.IDLE:
            raise InvalidStateError(f"{self.name}: cannot submit while {self._state.value}")

        loop = asyncio.get_running_loop()
        token = CancelToken(self.name)
        self._token = token
        self._transition(TaskState.SUBMITTING)
        self._runner = loop.create_task(self._drive(request, token), name=f"task:{self.name}")

    def cancel(self) -> bool:
        """Cancel a non-terminal task. Returns False if it had already finished."""
        if self._state.is_terminal:
            return False
        logger.info("%s: cancel requested in state=%s", self.name, self._state.value)
        return self._transition(TaskState.CANCELLED)

    # ---- runner ----

    async def _drive(self, request: R, token: CancelToken) -> None:
        try:
            job_id = await token.run(self._submit_fn(request), timeout=self._config.submit_timeout)
        except Exception as exc:
            if token.cancelled:
                return
            self._fail(self._classify_submission(exc))
            return

        if token.cancelled:
            logger.debug("%s: submission settled after cancel; ignored", self.name)
            return

        if not job_id:
            self._fail(TaskFailure(FailureKind.MALFORMED, "malformed response: submission returned no job id"))
            return

        self._task_id = str(job_id)
        self._started_at = self._clock()
        logger.info("%s: submitted job_id=%s", self.name, self._task_id)
        self._transition(TaskState.POLLING)

        self._ticks = TickLoop(
            lambda: self._tick(token),
            interval=self._config.interval,
            retry=self._config.retry,
            on_failure=lambda exc, attempt, exhausted: self._on_tick_failure(token, exc, attempt, exhausted),
            name=f"{self.name}:{self._task_id}",
        )
        await self._ticks.run(delay=self._config.interval)

    def _remaining(self) -> float:
        if self._started_at is None:
            return self._config.overall_timeout
        return self._config.overall_timeout - (self._clock() - self._started_at)

    async def _tick(self, token: CancelToken) -> TickOutcome:
        if token.cancelled or self._state.is_terminal:
            return TickOutcome.STOP

        remaining = self._remaining()
        if remaining <= 0:
            self._time_out()
            return TickOutcome.STOP

        task_id = self._task_id or ""
        try:
            result = await token.run(self._poll_fn(task_id), timeout=min(self._config.call_timeout, remaining))
        except TransportError:
            if not token.cancelled and self._remaining() <= 0:
                self._time_out()
                return TickOutcome.STOP
            raise

        if token.cancelled or self._state.is_terminal:
            logger.debug("%s: poll settled after terminal state; ignored", self.name)
            return TickOutcome.STOP

        if result.done:
            self._status = result.status
            self._attempt = 0
            self._transition(TaskState.SUCCEEDED, result=result.value)
            return TickOutcome.STOP

        changed = self._attempt != 0 or self._status != result.status
        self._attempt = 0
        self._status = result.status
        if changed:
            self._emit()
        logger.debug("%s: status=%s elapsed=%.1fs", self.name, result.status, self.elapsed_seconds())
        return TickOutcome.CONTINUE

    def _on_tick_failure(self, token: CancelToken, exc: Exception, attempt: int, exhausted: bool) -> TickOutcome:
        if token.cancelled or self._state.is_terminal:
            return TickOutcome.STOP

        if isinstance(exc, TransportError):
            self._attempt = attempt

        if not exhausted:
            logger.info(
                "%s: status check failed (attempt %d/%d): %s",
                self.name,
                attempt,
                self._config.retry.max_retries,
                exc,
            )
            self._emit()
            return TickOutcome.CONTINUE

        self._fail(self._classify_poll(exc))
        return TickOutcome.STOP

    # ---- transitions ----

    def _classify_submission(self, exc: Exception) -> TaskFailure:
        if isinstance(exc, ApplicationError):
            return TaskFailure(FailureKind.REJECTED, str(exc) or "Request rejected")
        if isinstance(exc, ProtocolError):
            return TaskFailure(FailureKind.MALFORMED, f"malformed response: {exc}")
        if isinstance(exc, TransportError):
            return TaskFailure(FailureKind.SUBMISSION, f"Failed to start: {exc}")
        logger.exception("%s: unexpected submission error", self.name, exc_info=exc)
        return TaskFailure(FailureKind.SUBMISSION, f"Failed to start: {exc.__class__.__name__}: {exc}")

    def _classify_poll(self, exc: Exception) -> TaskFailure:
        if isinstance(exc, ApplicationError):
            return TaskFailure(FailureKind.REJECTED, str(exc) or "Job failed")
        if isinstance(exc, ProtocolError):
            return TaskFailure(FailureKind.MALFORMED, f"malformed response: {exc}")
        if isinstance(exc, TransportError):
            return TaskFailure(FailureKind.TRANSPORT, f"Failed to check status: {exc}")
        logger.exception("%s: unexpected status error", self.name, exc_info=exc)
        return TaskFailure(FailureKind.TRANSPORT, f"Failed to check status: {exc.__class__.__name__}: {exc}")

    def _fail(self, failure: TaskFailure) -> None:
        logger.warning("%s: failed (%s): %s", self.name, failure.kind.value, failure.reason)
        self._transition(TaskState.FAILED, failure=failure)

    def _time_out(self) -> None:
        reason = f"Timed out after {self._config.overall_timeout:.0f}s without a result"
        logger.warning("%s: %s", self.name, reason)
        self._transition(TaskState.TIMED_OUT, failure=TaskFailure(FailureKind.TIMEOUT, reason))

    def _transition(
            self,
            new_state: TaskState,
            *,
            result: T | None = None,
            failure: TaskFailure | None = None,
    ) -> bool:
        old = self._state
        if new_state not in _ALLOWED.get(old, frozenset()):
            logger.debug("%s: transition %s -> %s ignored", self.name, old.value, new_state.value)
            return False

        self._state = new_state
        if result is not None:
            self._result = result
        if failure is not None:
            self._failure = failure
        logger.debug("%s: %s -> %s", self.name, old.value, new_state.value)

        if new_state.is_terminal:
            if self._started_at is not None:
                self._finished_at = self._clock()
            self._release()
            self._done.set()

        self._emit()
        return True

    def _release(self) -> None:
        if self._ticks is not None:
            self._ticks.stop(abort=False)
        if self._token is not None:
            self._token.cancel()

        runner = self._runner
        if runner is None or runner.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if runner is not current:
            runner.cancel()

    def _emit(self) -> None:
        self._subscribers.notify(self.snapshot())

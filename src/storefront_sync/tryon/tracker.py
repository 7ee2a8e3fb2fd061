# src/storefront_sync/tryon/tracker.py

from __future__ import annotations

"""
Virtual try-on job tracker.

Wraps a PollingTask[TryOnRequest, str] (the result is the output image URL) and adds:
- fail-fast input validation (never reaches the network),
- a UI-facing snapshot with live elapsed time,
- reset() to offer "try again" after a terminal state,
- result download.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ..core.errors import FailureKind, InvalidStateError, ValidationError
from ..core.ports import TryOnBackend
from ..polling.observers import Subscribers
from ..polling.task import PollingConfig, PollingSnapshot, PollingTask, PollResult, TaskState
from .protocol import TryOnRequest, parse_status, parse_submission

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class JobSnapshot:
    state: TaskState
    elapsed_seconds: float
    attempt: int
    max_retries: int
    job_id: str | None = None
    result: str | None = None
    error: str | None = None
    error_kind: FailureKind | None = None

    @classmethod
    def from_polling(cls, snap: PollingSnapshot[str]) -> JobSnapshot:
        return cls(
            state=snap.state,
            elapsed_seconds=snap.elapsed_seconds,
            attempt=snap.attempt,
            max_retries=snap.max_retries,
            job_id=snap.task_id,
            result=snap.result,
            error=snap.failure.reason if snap.failure else None,
            error_kind=snap.failure.kind if snap.failure else None,
        )


def progress_text(snapshot: JobSnapshot) -> str:
    if snapshot.state == TaskState.SUBMITTING:
        return "Starting generation..."
    if snapshot.state == TaskState.POLLING:
        text = f"Processing your request... ({int(snapshot.elapsed_seconds)}s)"
        if snapshot.attempt > 0:
            text += f" Attempt {snapshot.attempt}/{snapshot.max_retries}"
        return text
    return ""


class JobTracker:
    def __init__(
            self,
            backend: TryOnBackend,
            config: PollingConfig | None = None,
            *,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._backend = backend
        self._config = config or PollingConfig()
        self._clock = clock
        self._subscribers: Subscribers[JobSnapshot] = Subscribers("tryon")
        self._task = self._new_task()

    def _new_task(self) -> PollingTask[TryOnRequest, str]:
        task: PollingTask[TryOnRequest, str] = PollingTask(
            self._submit,
            self._poll,
            self._config,
            name="tryon",
            clock=self._clock,
        )
        task.subscribe(self._relay)
        return task

    async def _submit(self, request: TryOnRequest) -> str:
        payload = await self._backend.submit_job(request.to_payload())
        return parse_submission(payload)

    async def _poll(self, job_id: str) -> PollResult[str]:
        return parse_status(await self._backend.job_status(job_id))

    def _relay(self, snap: PollingSnapshot[str]) -> None:
        self._subscribers.notify(JobSnapshot.from_polling(snap))

    # ---- public API ----

    @property
    def state(self) -> TaskState:
        return self._task.state

    def subscribe(self, callback: Callable[[JobSnapshot], None]) -> Callable[[], None]:
        return self._subscribers.add(callback)

    def current_snapshot(self) -> JobSnapshot:
        return JobSnapshot.from_polling(self._task.snapshot())

    def start(self, request: TryOnRequest) -> JobSnapshot:
        """
        Validate and submit.

        Raises InvalidStateError if a job is already tracked (reset() first) and
        ValidationError for incomplete input; neither touches the network.
        """
        if self._task.state is not TaskState.IDLE:
            raise InvalidStateError(
                f"A try-on job is already {self._task.state.value}; reset before starting a new one."
            )
        request.validate()
        logger.info("Starting try-on (category=%s)", request.category)
        self._task.submit(request)
        return self.current_snapshot()

    def cancel(self) -> bool:
        return self._task.cancel()

    def reset(self) -> JobSnapshot:
        state = self._task.state
        if state is TaskState.IDLE:
            return self.current_snapshot()
        if not state.is_terminal:
            raise InvalidStateError(f"Cannot reset while {state.value}; cancel first.")
        self._task = self._new_task()
        snap = self.current_snapshot()
        self._subscribers.notify(snap)
        return snap

    async def wait(self) -> JobSnapshot:
        return JobSnapshot.from_polling(await self._task.wait())

    async def result(self) -> str:
        """Wait for the job and return the output URL, or raise its failure."""
        snap = await self._task.wait()
        if snap.state is TaskState.SUCCEEDED and snap.result:
            return snap.result
        if snap.failure is not None:
            raise snap.failure.as_error()
        raise InvalidStateError(f"try-on job {snap.state.value}")

    async def download_result(self, dest_dir: str | Path) -> Path:
        snap = self.current_snapshot()
        if snap.state is not TaskState.SUCCEEDED or not snap.result:
            raise InvalidStateError("No image to download")
        if snap.result.startswith("data:"):
            raise ValidationError("result is an inline image; nothing to download")
        dest = Path(dest_dir).expanduser() / f"VirtualTryOn_{int(time.time() * 1000)}.jpg"
        dest.parent.mkdir(parents=True, exist_ok=True)
        path = await self._backend.download(snap.result, dest)
        logger.info("Try-on result saved to %s", path)
        return path

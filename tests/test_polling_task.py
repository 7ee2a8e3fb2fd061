# tests/test_polling_task.py

from __future__ import annotations

import asyncio

import pytest

from storefront_sync.core.errors import (
    ApplicationError,
    FailureKind,
    InvalidStateError,
    ProtocolError,
    TransportError,
)
from storefront_sync.polling.task import (
    PollingConfig,
    PollingSnapshot,
    PollingTask,
    PollResult,
    TaskState,
)
from storefront_sync.polling.ticker import RetryPolicy

from .fakes import next_step, play, wait_until

FAST = PollingConfig(
    interval=0.01,
    submit_timeout=1.0,
    call_timeout=0.5,
    overall_timeout=2.0,
    retry=RetryPolicy(max_retries=3, retry_delay=0.01),
)


class Script:
    """submit/poll callables driven by scripted steps."""

    def __init__(self, submit: list[object] | None = None, poll: list[object] | None = None) -> None:
        self.submit_steps = submit if submit is not None else ["job-1"]
        self.poll_steps = poll if poll is not None else [PollResult.pending()]
        self.submit_calls = 0
        self.poll_calls = 0

    async def submit(self, request: str) -> str:
        self.submit_calls += 1
        return await play(next_step(self.submit_steps))

    async def poll(self, job_id: str) -> PollResult[str]:
        self.poll_calls += 1
        return await play(next_step(self.poll_steps))


def make_task(script: Script, config: PollingConfig = FAST, **kw) -> tuple[PollingTask[str, str], list[PollingSnapshot[str]]]:
    task: PollingTask[str, str] = PollingTask(script.submit, script.poll, config, name="test", **kw)
    seen: list[PollingSnapshot[str]] = []
    task.subscribe(seen.append)
    return task, seen


@pytest.mark.asyncio
async def test_happy_path_reaches_succeeded_once() -> None:
    script = Script(poll=[PollResult.pending("in_queue"), PollResult.pending("processing"), PollResult.succeeded("url")])
    task, seen = make_task(script)

    task.submit("req")
    snap = await asyncio.wait_for(task.wait(), 2.0)

    assert snap.state is TaskState.SUCCEEDED
    assert snap.result == "url"
    assert snap.task_id == "job-1"
    assert script.submit_calls == 1
    assert [s.state for s in seen][:2] == [TaskState.SUBMITTING, TaskState.POLLING]
    assert [s.state for s in seen if s.state.is_terminal] == [TaskState.SUCCEEDED]
    assert "processing" in [s.status for s in seen]


@pytest.mark.asyncio
async def test_submit_twice_is_rejected() -> None:
    task, _ = make_task(Script())
    task.submit("req")
    with pytest.raises(InvalidStateError):
        task.submit("again")
    task.cancel()


@pytest.mark.asyncio
async def test_submission_transport_failure_fails_without_polling() -> None:
    script = Script(submit=[TransportError("connection refused")])
    task, _ = make_task(script)

    task.submit("req")
    snap = await asyncio.wait_for(task.wait(), 1.0)

    assert snap.state is TaskState.FAILED
    assert snap.failure is not None
    assert snap.failure.kind is FailureKind.SUBMISSION
    assert snap.failure.reason.startswith("Failed to start")
    assert script.poll_calls == 0


@pytest.mark.asyncio
async def test_empty_job_id_is_malformed() -> None:
    task, _ = make_task(Script(submit=[""]))
    task.submit("req")
    snap = await asyncio.wait_for(task.wait(), 1.0)
    assert snap.failure is not None and snap.failure.kind is FailureKind.MALFORMED


@pytest.mark.asyncio
async def test_rejected_submission_keeps_server_message() -> None:
    task, _ = make_task(Script(submit=[ApplicationError("Image too small")]))
    task.submit("req")
    snap = await asyncio.wait_for(task.wait(), 1.0)
    assert snap.failure is not None
    assert snap.failure.kind is FailureKind.REJECTED
    assert snap.failure.reason == "Image too small"


@pytest.mark.asyncio
async def test_transient_poll_failures_are_retried_and_visible() -> None:
    script = Script(poll=[TransportError("blip"), TransportError("blip"), PollResult.succeeded("url")])
    task, seen = make_task(script)

    task.submit("req")
    snap = await asyncio.wait_for(task.wait(), 2.0)

    assert snap.state is TaskState.SUCCEEDED
    assert snap.attempt == 0
    assert [s.attempt for s in seen if s.attempt] == [1, 2]
    assert all(s.max_retries == 3 for s in seen)


@pytest.mark.asyncio
async def test_poll_retries_exhausted_fails_with_transport_kind() -> None:
    script = Script(poll=[TransportError("down")])
    task, _ = make_task(script)

    task.submit("req")
    snap = await asyncio.wait_for(task.wait(), 2.0)

    assert snap.state is TaskState.FAILED
    assert snap.failure is not None
    assert snap.failure.kind is FailureKind.TRANSPORT
    assert snap.failure.reason.startswith("Failed to check status")
    # first attempt + 3 retries
    assert script.poll_calls == 4


@pytest.mark.asyncio
async def test_job_failure_reported_by_server_is_not_retried() -> None:
    script = Script(poll=[ApplicationError("Out of credits")])
    task, _ = make_task(script)

    task.submit("req")
    snap = await asyncio.wait_for(task.wait(), 1.0)

    assert snap.failure is not None
    assert snap.failure.kind is FailureKind.REJECTED
    assert snap.failure.reason == "Out of credits"
    assert script.poll_calls == 1


@pytest.mark.asyncio
async def test_malformed_status_is_not_retried() -> None:
    script = Script(poll=[ProtocolError("completed status without output")])
    task, _ = make_task(script)

    task.submit("req")
    snap = await asyncio.wait_for(task.wait(), 1.0)

    assert snap.failure is not None
    assert snap.failure.kind is FailureKind.MALFORMED
    assert script.poll_calls == 1


@pytest.mark.asyncio
async def test_overall_timeout_while_pending() -> None:
    config = PollingConfig(interval=0.01, call_timeout=0.5, overall_timeout=0.1, retry=RetryPolicy(3, 0.01))
    task, seen = make_task(Script(), config)

    task.submit("req")
    snap = await asyncio.wait_for(task.wait(), 2.0)

    assert snap.state is TaskState.TIMED_OUT
    assert snap.failure is not None and snap.failure.kind is FailureKind.TIMEOUT
    assert [s.state for s in seen if s.state.is_terminal] == [TaskState.TIMED_OUT]


@pytest.mark.asyncio
async def test_hanging_status_call_cannot_outlive_deadline() -> None:
    hang: asyncio.Future[PollResult[str]] = asyncio.get_running_loop().create_future()
    config = PollingConfig(interval=0.01, call_timeout=30.0, overall_timeout=0.15, retry=RetryPolicy(3, 0.01))
    task, _ = make_task(Script(poll=[hang]), config)

    task.submit("req")
    snap = await asyncio.wait_for(task.wait(), 1.0)

    assert snap.state is TaskState.TIMED_OUT


@pytest.mark.asyncio
async def test_cancel_while_polling_ignores_late_result() -> None:
    late: asyncio.Future[PollResult[str]] = asyncio.get_running_loop().create_future()
    script = Script(poll=[late])
    task, seen = make_task(script)

    task.submit("req")
    await wait_until(lambda: script.poll_calls == 1)

    assert task.cancel() is True
    emitted = len(seen)
    late.set_result(PollResult.succeeded("too-late"))
    await asyncio.sleep(0.05)

    snap = task.snapshot()
    assert snap.state is TaskState.CANCELLED
    assert snap.result is None
    assert len(seen) == emitted
    assert script.poll_calls == 1


@pytest.mark.asyncio
async def test_cancel_during_submission_never_polls() -> None:
    pending_id: asyncio.Future[str] = asyncio.get_running_loop().create_future()
    script = Script(submit=[pending_id])
    task, _ = make_task(script)

    task.submit("req")
    await wait_until(lambda: script.submit_calls == 1)
    task.cancel()
    pending_id.set_result("job-late")
    await asyncio.sleep(0.05)

    assert task.state is TaskState.CANCELLED
    assert task.task_id is None
    assert script.poll_calls == 0


@pytest.mark.asyncio
async def test_cancel_after_terminal_is_a_no_op() -> None:
    task, seen = make_task(Script(poll=[PollResult.succeeded("url")]))
    task.submit("req")
    await asyncio.wait_for(task.wait(), 1.0)

    emitted = len(seen)
    assert task.cancel() is False
    assert task.state is TaskState.SUCCEEDED
    assert len(seen) == emitted


@pytest.mark.asyncio
async def test_elapsed_time_freezes_at_terminal_state() -> None:
    now = [100.0]

    async def poll(job_id: str) -> PollResult[str]:
        now[0] += 1.5
        if now[0] >= 103.0:
            return PollResult.succeeded("url")
        return PollResult.pending()

    async def submit(request: str) -> str:
        return "job-1"

    task: PollingTask[str, str] = PollingTask(submit, poll, FAST, clock=lambda: now[0])
    task.submit("req")
    await asyncio.wait_for(task.wait(), 1.0)

    assert task.elapsed_seconds() == pytest.approx(3.0)
    now[0] = 500.0
    assert task.snapshot().elapsed_seconds == pytest.approx(3.0)


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break_the_task() -> None:
    task, seen = make_task(Script(poll=[PollResult.succeeded("url")]))

    def boom(_snap: PollingSnapshot[str]) -> None:
        raise RuntimeError("ui bug")

    task.subscribe(boom)
    task.submit("req")
    snap = await asyncio.wait_for(task.wait(), 1.0)

    assert snap.state is TaskState.SUCCEEDED
    assert seen[-1].state is TaskState.SUCCEEDED

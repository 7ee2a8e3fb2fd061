# src/storefront_sync/chat/conversation_sync.py

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from ..core.ports import ChatBackend
from ..polling.cancel import CancelToken
from ..polling.observers import Subscribers
from ..polling.ticker import RetryPolicy, TickLoop, TickOutcome
from .models import ConversationSummary, now_utc

logger = logging.getLogger(__name__)


class SyncState(StrEnum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ConversationListSnapshot:
    state: SyncState
    conversations: tuple[ConversationSummary, ...]
    last_error: str | None = None
    last_synced_at: datetime | None = None


class ConversationListSync:
    """Periodic refetch of the viewer's conversation index. Never terminal; restart on focus."""

    def __init__(
            self,
            backend: ChatBackend,
            user_id: str,
            *,
            interval: float = 5.0,
            call_timeout: float = 10.0,
            retry: RetryPolicy | None = None,
            clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._backend = backend
        self._user_id = user_id
        self._interval = interval
        self._call_timeout = call_timeout
        self._retry = retry or RetryPolicy()
        self._clock = clock

        self._state = SyncState.IDLE
        self._conversations: tuple[ConversationSummary, ...] = ()
        self._last_error: str | None = None
        self._last_synced_at: datetime | None = None

        self._token: CancelToken | None = None
        self._ticks: TickLoop | None = None
        self._subscribers: Subscribers[ConversationListSnapshot] = Subscribers("conversations")

    @property
    def state(self) -> SyncState:
        return self._state

    def list(self) -> tuple[ConversationSummary, ...]:
        return self._conversations

    def last_error(self) -> str | None:
        return self._last_error

    def snapshot(self) -> ConversationListSnapshot:
        return ConversationListSnapshot(
            state=self._state,
            conversations=self._conversations,
            last_error=self._last_error,
            last_synced_at=self._last_synced_at,
        )

    def subscribe(self, callback: Callable[[ConversationListSnapshot], None]) -> Callable[[], None]:
        return self._subscribers.add(callback)

    def start(self) -> None:
        """Begin (or restart) syncing with an immediate fetch."""
        self._halt()
        token = CancelToken("conversations")
        self._token = token
        self._ticks = TickLoop(
            lambda: self._tick(token),
            interval=self._interval,
            retry=self._retry,
            on_failure=lambda exc, attempt, exhausted: self._on_failure(token, exc, attempt, exhausted),
            name="conversations",
        )
        self._ticks.start()
        if self._state is SyncState.IDLE:
            self._state = SyncState.SYNCING
            self._emit()

    def stop(self) -> None:
        if self._token is None:
            return
        self._halt()
        self._state = SyncState.IDLE
        self._emit()

    def _halt(self) -> None:
        if self._token is not None:
            self._token.cancel()
        if self._ticks is not None:
            self._ticks.stop()
        self._token = None
        self._ticks = None

    async def _tick(self, token: CancelToken) -> TickOutcome:
        records = await token.run(self._backend.fetch_conversations(self._user_id), timeout=self._call_timeout)
        if token.cancelled:
            return TickOutcome.STOP

        conversations = tuple(ConversationSummary.from_record(r, viewer_id=self._user_id) for r in records)
        changed = conversations != self._conversations or self._state is not SyncState.SYNCING
        self._conversations = conversations
        self._state = SyncState.SYNCING
        self._last_error = None
        self._last_synced_at = self._clock()
        if changed:
            self._emit()
        return TickOutcome.CONTINUE

    def _on_failure(self, token: CancelToken, exc: Exception, attempt: int, exhausted: bool) -> TickOutcome:
        if token.cancelled:
            return TickOutcome.STOP
        if not exhausted:
            logger.info("Conversation list fetch failed (attempt %d): %s", attempt, exc)
            return TickOutcome.CONTINUE

        logger.warning("Conversation list sync error: %s", exc)
        self._state = SyncState.ERROR
        self._last_error = str(exc) or exc.__class__.__name__
        self._emit()
        return TickOutcome.CONTINUE

    def _emit(self) -> None:
        self._subscribers.notify(self.snapshot())

# src/storefront_sync/chat/message_sync.py

from __future__ import annotations

"""
Conversation message sync.

- periodic refetch of one conversation (immediate fetch on attach),
- optimistic local append on send, marked sent/failed in place,
- reconciliation of every successful fetch against local state (see reconcile.py),
- fire-and-forget read receipts.

Sync is long-lived: a failed tick is logged and the next interval tries again.
Persistent failures only raise a passive `degraded` flag in the snapshot.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime

from ..core.errors import InvalidStateError, ProtocolError, StorefrontSyncError, ValidationError
from ..core.ports import ChatBackend
from ..polling.cancel import CancelToken
from ..polling.observers import Subscribers
from ..polling.ticker import RetryPolicy, TickLoop, TickOutcome
from .models import DeliveryState, Message, now_utc
from .reconcile import reconcile

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MessageSyncConfig:
    interval: float = 7.0
    refetch_after_send: float = 1.0
    call_timeout: float = 10.0
    reconcile_window: float = 30.0
    degraded_after: int = 3
    retry: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass(frozen=True, slots=True)
class MessageSyncSnapshot:
    conversation_id: str | None
    messages: tuple[Message, ...]
    syncing: bool
    consecutive_failures: int = 0
    last_error: str | None = None
    degraded: bool = False


class MessageSync:
    def __init__(
            self,
            backend: ChatBackend,
            user_id: str,
            config: MessageSyncConfig | None = None,
            *,
            clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._backend = backend
        self._user_id = user_id
        self._config = config or MessageSyncConfig()
        self._clock = clock

        self._conversation_id: str | None = None
        self._messages: tuple[Message, ...] = ()
        self._failures = 0
        self._last_error: str | None = None

        self._token: CancelToken | None = None
        self._ticks: TickLoop | None = None
        self._subscribers: Subscribers[MessageSyncSnapshot] = Subscribers("messages")

    # ---- read side ----

    @property
    def conversation_id(self) -> str | None:
        return self._conversation_id

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._messages

    @property
    def attached(self) -> bool:
        return self._token is not None

    def snapshot(self) -> MessageSyncSnapshot:
        return MessageSyncSnapshot(
            conversation_id=self._conversation_id,
            messages=self._messages,
            syncing=self._ticks is not None and self._ticks.running,
            consecutive_failures=self._failures,
            last_error=self._last_error,
            degraded=self._failures >= self._config.degraded_after,
        )

    def subscribe(self, callback: Callable[[MessageSyncSnapshot], None]) -> Callable[[], None]:
        return self._subscribers.add(callback)

    # ---- lifecycle ----

    def attach_and_start(self, conversation_id: str, *, mark_read: bool = True) -> None:
        """Start (or restart, e.g. on screen focus) syncing one conversation."""
        conversation_id = (conversation_id or "").strip()
        if not conversation_id:
            raise ValidationError("conversation id is required")

        self.detach()
        if conversation_id != self._conversation_id:
            self._messages = ()
        else:
            self._fail_orphaned_sends()
        self._conversation_id = conversation_id
        self._failures = 0
        self._last_error = None

        token = CancelToken(f"messages:{conversation_id}")
        self._token = token
        self._ticks = TickLoop(
            lambda: self._tick(token),
            interval=self._config.interval,
            retry=self._config.retry,
            on_failure=lambda exc, attempt, exhausted: self._on_failure(token, exc, attempt, exhausted),
            name=f"messages:{conversation_id}",
        )
        self._ticks.start()
        logger.info("Message sync attached conversation=%s", conversation_id)

        if mark_read:
            self.mark_read()
        self._emit()

    def detach(self) -> None:
        """
        Stop syncing. An in-flight fetch may still complete, but its result is dropped.
        Messages stay cached so re-attaching the same conversation renders immediately.
        """
        if self._token is None:
            return
        self._token.cancel(abort=False)
        if self._ticks is not None:
            self._ticks.stop(abort=False)
        self._token = None
        self._ticks = None
        logger.info("Message sync detached conversation=%s", self._conversation_id)

    def _fail_orphaned_sends(self) -> None:
        # Sends still pending belong to a detached token; their outcome is dropped.
        orphaned = [m.local_id for m in self._messages if m.local_only and m.delivery_state is DeliveryState.PENDING]
        if not orphaned:
            return
        self._messages = tuple(
            m.with_delivery(DeliveryState.FAILED) if m.local_only and m.local_id in orphaned else m
            for m in self._messages
        )
        logger.info("Marked %d unconfirmed send(s) as failed conversation=%s", len(orphaned), self._conversation_id)

    # ---- ticks ----

    async def _tick(self, token: CancelToken) -> TickOutcome:
        conversation_id = self._conversation_id or ""
        records = await token.run(
            self._backend.fetch_messages(conversation_id),
            timeout=self._config.call_timeout,
        )
        if token.cancelled:
            logger.debug("Dropping messages fetched after detach conversation=%s", conversation_id)
            return TickOutcome.STOP

        server = [Message.from_record(r, conversation_id=conversation_id) for r in records]
        self._apply(server)
        return TickOutcome.CONTINUE

    def _apply(self, server: list[Message]) -> None:
        changed = self._failures != 0 or self._last_error is not None
        self._failures = 0
        self._last_error = None

        merged = reconcile(self._messages, server, window_seconds=self._config.reconcile_window)
        if merged is not None and merged != self._messages:
            self._messages = merged
            changed = True
        if changed:
            self._emit()

    def _on_failure(self, token: CancelToken, exc: Exception, attempt: int, exhausted: bool) -> TickOutcome:
        if token.cancelled:
            return TickOutcome.STOP

        if not exhausted:
            logger.info(
                "Message fetch failed conversation=%s (attempt %d/%d): %s",
                self._conversation_id,
                attempt,
                self._config.retry.max_retries,
                exc,
            )
            return TickOutcome.CONTINUE

        self._failures += 1
        self._last_error = str(exc) or exc.__class__.__name__
        if isinstance(exc, ProtocolError):
            logger.warning("Skipping malformed messages response conversation=%s: %s", self._conversation_id, exc)
        elif isinstance(exc, StorefrontSyncError):
            logger.warning(
                "Message fetch failed conversation=%s (%d tick(s) in a row): %s",
                self._conversation_id,
                self._failures,
                exc,
            )
        else:
            logger.exception("Unexpected error while syncing conversation=%s", self._conversation_id, exc_info=exc)
        self._emit()
        return TickOutcome.CONTINUE

    # ---- commands ----

    def send_message(self, content: str) -> Message:
        """
        Append an optimistic message and send it.

        Raises ValidationError (blank content, nothing attached) before any I/O.
        """
        if not content or not content.strip():
            raise ValidationError("message is empty")
        if self._token is None or self._conversation_id is None:
            raise ValidationError("no conversation is open")
        if not self._user_id:
            raise ValidationError("sender id is not set")

        msg = Message.local(
            conversation_id=self._conversation_id,
            sender_id=self._user_id,
            content=content,
            timestamp=self._clock(),
        )
        self._messages = self._messages + (msg,)
        self._emit()
        self._deliver_later(msg)
        return msg

    def retry_message(self, local_id: str) -> Message:
        """Re-send a failed message; it moves to the end with a fresh timestamp."""
        msg = self._failed_entry(local_id)
        if self._token is None:
            raise ValidationError("no conversation is open")
        retried = replace(msg, timestamp=self._clock(), delivery_state=DeliveryState.PENDING)
        self._messages = tuple(m for m in self._messages if m.local_id != local_id) + (retried,)
        self._emit()
        self._deliver_later(retried)
        return retried

    def discard_message(self, local_id: str) -> None:
        self._failed_entry(local_id)
        self._messages = tuple(m for m in self._messages if m.local_id != local_id)
        self._emit()

    def mark_read(self) -> None:
        """Best-effort read receipt; failures are only logged."""
        token = self._token
        conversation_id = self._conversation_id
        if token is None or conversation_id is None:
            logger.debug("mark_read skipped: not attached")
            return
        token.spawn(self._send_read_receipt(token, conversation_id), name=f"mark_read:{conversation_id}")

    async def _send_read_receipt(self, token: CancelToken, conversation_id: str) -> None:
        try:
            await token.run(
                self._backend.mark_read(conversation_id=conversation_id, user_id=self._user_id),
                timeout=self._config.call_timeout,
            )
        except StorefrontSyncError as exc:
            logger.warning("Marking messages read failed conversation=%s: %s", conversation_id, exc)

    def _failed_entry(self, local_id: str) -> Message:
        for m in self._messages:
            if m.local_only and m.local_id == local_id:
                if m.delivery_state is not DeliveryState.FAILED:
                    raise InvalidStateError(f"message {local_id} is {m.delivery_state.value}, not failed")
                return m
        raise InvalidStateError(f"no local message {local_id}")

    def _deliver_later(self, msg: Message) -> None:
        token = self._token
        if token is None:
            return
        token.spawn(self._deliver(token, msg), name=f"send:{msg.local_id}")

    async def _deliver(self, token: CancelToken, msg: Message) -> None:
        try:
            await token.run(
                self._backend.send_message(
                    conversation_id=msg.conversation_id,
                    sender_id=msg.sender_id,
                    content=msg.content,
                ),
                timeout=self._config.call_timeout,
            )
        except Exception as exc:
            if isinstance(exc, StorefrontSyncError):
                logger.warning(
                    "Sending message failed conversation=%s local_id=%s: %s",
                    msg.conversation_id,
                    msg.local_id,
                    exc,
                )
            else:
                logger.exception("Unexpected error sending local_id=%s", msg.local_id)
            if not token.cancelled:
                self._set_delivery(msg.local_id, DeliveryState.FAILED)
            return

        if token.cancelled:
            return
        self._set_delivery(msg.local_id, DeliveryState.SENT)
        if self._ticks is not None:
            self._ticks.poke(self._config.refetch_after_send)

    def _set_delivery(self, local_id: str | None, state: DeliveryState) -> None:
        for i, m in enumerate(self._messages):
            if m.local_only and m.local_id == local_id:
                if m.delivery_state is state:
                    return
                self._messages = self._messages[:i] + (m.with_delivery(state),) + self._messages[i + 1:]
                self._emit()
                return
        # Already absorbed by a reconciliation pass.
        logger.debug("Local message %s no longer present; delivery=%s not applied", local_id, state.value)

    def _emit(self) -> None:
        self._subscribers.notify(self.snapshot())

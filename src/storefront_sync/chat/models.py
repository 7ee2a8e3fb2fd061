# src/storefront_sync/chat/models.py

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from ..core.errors import ProtocolError


class DeliveryState(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(raw: Any) -> datetime:
    """
    Server timestamps are ISO-8601 strings (JS toISOString(), trailing "Z") or epoch
    milliseconds. Naive values are taken as UTC.
    """
    if isinstance(raw, bool):
        raise ProtocolError(f"invalid timestamp {raw!r}")
    if isinstance(raw, (int, float)):
        return datetime.fromtimestamp(raw / 1000.0, tz=timezone.utc)
    if not isinstance(raw, str) or not raw.strip():
        raise ProtocolError(f"invalid timestamp {raw!r}")

    s = raw.strip()
    if s.endswith(("Z", "z")):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError as exc:
        raise ProtocolError(f"invalid timestamp {raw!r}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _ref_id(raw: Any) -> str | None:
    """A user reference is either an id string or an object with `_id`/`id`."""
    if isinstance(raw, dict):
        raw = raw.get("_id", raw.get("id"))
    if raw is None:
        return None
    s = str(raw).strip()
    return s or None


@dataclass(frozen=True, slots=True)
class Message:
    id: str | None
    conversation_id: str
    sender_id: str
    content: str
    timestamp: datetime
    local_id: str | None = None
    local_only: bool = False
    delivery_state: DeliveryState = DeliveryState.SENT

    @classmethod
    def local(
            cls,
            *,
            conversation_id: str,
            sender_id: str,
            content: str,
            timestamp: datetime | None = None,
    ) -> Message:
        """Optimistic entry for a message we are about to send."""
        return cls(
            id=None,
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            timestamp=timestamp or now_utc(),
            local_id=uuid.uuid4().hex[:12],
            local_only=True,
            delivery_state=DeliveryState.PENDING,
        )

    @classmethod
    def from_record(cls, raw: Any, *, conversation_id: str) -> Message:
        if not isinstance(raw, dict):
            raise ProtocolError("message record is not an object")

        sender_id = _ref_id(raw.get("sender", raw.get("senderId")))
        if sender_id is None:
            raise ProtocolError("message record has no sender")

        content = raw.get("content", raw.get("message"))
        if not isinstance(content, str):
            raise ProtocolError("message record has no content")

        if "timestamp" in raw:
            ts_raw = raw["timestamp"]
        else:
            ts_raw = raw.get("createdAt")

        return cls(
            id=_ref_id(raw.get("_id", raw.get("id"))),
            conversation_id=_ref_id(raw.get("conversationId")) or conversation_id,
            sender_id=sender_id,
            content=content,
            timestamp=parse_timestamp(ts_raw),
        )

    def with_delivery(self, state: DeliveryState) -> Message:
        return replace(self, delivery_state=state)

    @property
    def key(self) -> str:
        """Stable identity for rendering (server id, else local id)."""
        return self.id or f"local:{self.local_id}"


@dataclass(frozen=True, slots=True)
class Participant:
    id: str
    name: str = ""


@dataclass(frozen=True, slots=True)
class ConversationSummary:
    id: str
    participants: frozenset[Participant]
    last_message: Message | None
    unread_count: int = 0

    @classmethod
    def from_record(cls, raw: Any, *, viewer_id: str) -> ConversationSummary:
        if not isinstance(raw, dict):
            raise ProtocolError("conversation record is not an object")

        conv_id = _ref_id(raw.get("_id", raw.get("id")))
        if conv_id is None:
            raise ProtocolError("conversation record has no id")

        participants: set[Participant] = set()
        for p in raw.get("participants") or []:
            pid = _ref_id(p)
            if pid is None:
                continue
            name = p.get("name", "") if isinstance(p, dict) else ""
            participants.add(Participant(id=pid, name=str(name or "")))

        records = raw.get("messages") or []
        if not isinstance(records, list):
            raise ProtocolError("conversation messages is not a list")

        last_message = None
        if records:
            last_message = Message.from_record(records[-1], conversation_id=conv_id)

        unread = raw.get("unreadCount")
        if isinstance(unread, int) and not isinstance(unread, bool):
            unread_count = max(0, unread)
        else:
            unread_count = sum(
                1
                for r in records
                if isinstance(r, dict) and r.get("read") is False and _ref_id(r.get("sender")) != viewer_id
            )

        return cls(
            id=conv_id,
            participants=frozenset(participants),
            last_message=last_message,
            unread_count=unread_count,
        )

    def other_participant(self, viewer_id: str) -> Participant | None:
        others = sorted((p for p in self.participants if p.id != viewer_id), key=lambda p: p.id)
        return others[0] if others else None

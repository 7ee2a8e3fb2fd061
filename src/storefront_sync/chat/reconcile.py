# src/storefront_sync/chat/reconcile.py

from __future__ import annotations

"""
Merge an authoritative server snapshot into the locally held (possibly speculative) list.

Rules:
- the local list is oldest-first; a server snapshot given newest-first is reversed;
- if the newest server timestamp equals the newest local timestamp the pass is a no-op
  (returns None, so callers keep the very same tuple and nothing re-renders);
- otherwise the server snapshot replaces the list, in server order, and every local-only
  entry that no new server message supersedes is kept, inserted by timestamp.

A server message supersedes a local-only entry when sender and content match and the
timestamps are within `window_seconds`. Each server message supersedes at most one entry,
and messages already confirmed locally before this pass are never used as a match.
There is no client correlation id, so this stays a heuristic.
"""

from collections.abc import Sequence

from .models import Message


def normalize_server_order(messages: Sequence[Message]) -> list[Message]:
    if len(messages) >= 2 and messages[0].timestamp > messages[-1].timestamp:
        return list(reversed(messages))
    return list(messages)


def _supersedes(server_msg: Message, local_msg: Message, window_seconds: float) -> bool:
    if server_msg.sender_id != local_msg.sender_id or server_msg.content != local_msg.content:
        return False
    delta = abs((server_msg.timestamp - local_msg.timestamp).total_seconds())
    return delta <= window_seconds


def unsuperseded(
        local_only: Sequence[Message],
        server: Sequence[Message],
        *,
        known_ids: frozenset[str] = frozenset(),
        window_seconds: float = 30.0,
) -> list[Message]:
    candidates = [i for i, m in enumerate(server) if m.id is None or m.id not in known_ids]
    used: set[int] = set()
    survivors: list[Message] = []

    for local_msg in local_only:
        best: int | None = None
        best_delta = 0.0
        for idx in candidates:
            if idx in used or not _supersedes(server[idx], local_msg, window_seconds):
                continue
            delta = abs((server[idx].timestamp - local_msg.timestamp).total_seconds())
            if best is None or delta < best_delta:
                best, best_delta = idx, delta
        if best is None:
            survivors.append(local_msg)
        else:
            used.add(best)

    return survivors


def merge_by_timestamp(server: Sequence[Message], extra: Sequence[Message]) -> list[Message]:
    """Insert `extra` into `server` by timestamp without reordering server messages."""
    result = list(server)
    for msg in sorted(extra, key=lambda m: m.timestamp):
        pos = len(result)
        while pos > 0 and result[pos - 1].timestamp > msg.timestamp:
            pos -= 1
        result.insert(pos, msg)
    return result


def reconcile(
        local: tuple[Message, ...],
        server: Sequence[Message],
        *,
        window_seconds: float = 30.0,
) -> tuple[Message, ...] | None:
    """Return the new local list, or None when the snapshot changes nothing."""
    ordered = normalize_server_order(server)

    if not local and not ordered:
        return None
    if local and ordered and local[-1].timestamp == ordered[-1].timestamp:
        return None

    known_ids = frozenset(m.id for m in local if not m.local_only and m.id)
    pending = [m for m in local if m.local_only]
    survivors = unsuperseded(pending, ordered, known_ids=known_ids, window_seconds=window_seconds)
    return tuple(merge_by_timestamp(ordered, survivors))

# src/storefront_sync/polling/observers.py

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

S = TypeVar("S")


class Subscribers(Generic[S]):
    """Snapshot fan-out. Callbacks run synchronously, in subscription order."""

    def __init__(self, owner: str) -> None:
        self._owner = owner
        self._callbacks: list[Callable[[S], None]] = []

    def add(self, callback: Callable[[S], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def notify(self, snapshot: S) -> None:
        for cb in list(self._callbacks):
            try:
                cb(snapshot)
            except Exception:
                logger.exception("%s: subscriber %r failed", self._owner, cb)

    def __len__(self) -> int:
        return len(self._callbacks)

# src/storefront_sync/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the engines.

The engines depend on Protocols instead of concrete HTTP clients.
This keeps the backend swappable and makes testing easier (see tests/fakes.py).
"""

from pathlib import Path
from typing import Any, Protocol

JsonDict = dict[str, Any]


class TryOnBackend(Protocol):
    """Remote image-generation ("virtual try-on") service."""

    async def submit_job(self, payload: JsonDict) -> JsonDict: ...

    async def job_status(self, job_id: str) -> JsonDict: ...

    async def download(self, url: str, dest: Path) -> Path: ...


class ChatBackend(Protocol):
    """
    Storefront chat endpoints.

    send_message does not return the created message: the engine relies on the
    next fetch to obtain the authoritative copy.
    """

    async def fetch_messages(self, conversation_id: str) -> list[JsonDict]: ...

    async def send_message(self, *, conversation_id: str, sender_id: str, content: str) -> None: ...

    async def mark_read(self, *, conversation_id: str, user_id: str) -> None: ...

    async def fetch_conversations(self, user_id: str) -> list[JsonDict]: ...

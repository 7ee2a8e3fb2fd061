# src/storefront_sync/backend/chat_client.py

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from ..core.errors import ProtocolError
from .http import build_url, make_timeout, request_json


def _records(data: Any, what: str) -> list[dict[str, Any]]:
    if not isinstance(data, list):
        raise ProtocolError(f"{what} response is not a list")
    if not all(isinstance(r, dict) for r in data):
        raise ProtocolError(f"{what} response contains non-object records")
    return data


class ChatApiClient:
    """HTTP adapter for the storefront chat endpoints (see core.ports.ChatBackend)."""

    def __init__(
            self,
            *,
            base_url: str,
            client: httpx.AsyncClient | None = None,
            connect_timeout: float = 5.0,
            read_timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=make_timeout(connect_timeout, read_timeout))

    async def fetch_messages(self, conversation_id: str) -> list[dict[str, Any]]:
        data = await request_json(
            self._client,
            "GET",
            build_url(self._base_url, f"/chat/messages/{quote(conversation_id, safe='')}"),
        )
        return _records(data, "messages")

    async def send_message(self, *, conversation_id: str, sender_id: str, content: str) -> None:
        await request_json(
            self._client,
            "POST",
            build_url(self._base_url, "/chat/send-message"),
            json={"userId": sender_id, "conversationId": conversation_id, "message": content},
        )

    async def mark_read(self, *, conversation_id: str, user_id: str) -> None:
        await request_json(
            self._client,
            "POST",
            build_url(self._base_url, "/chat/mark-messages-read"),
            json={"userId": user_id, "conversationId": conversation_id},
        )

    async def fetch_conversations(self, user_id: str) -> list[dict[str, Any]]:
        data = await request_json(
            self._client,
            "GET",
            build_url(self._base_url, f"/chat/conversations/{quote(user_id, safe='')}"),
        )
        return _records(data, "conversations")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

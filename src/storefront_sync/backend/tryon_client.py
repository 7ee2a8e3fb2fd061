# src/storefront_sync/backend/tryon_client.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx

from ..core.errors import ProtocolError, TransportError
from .http import build_url, make_timeout, request_json

logger = logging.getLogger(__name__)


class TryOnApiClient:
    """
    HTTP adapter for the try-on generation API.

    POST {base}/run            -> {"id": ...} | {"error": ...}
    GET  {base}/status/{id}    -> {"status": ..., "output": [...], "error": ...}

    Retries are the engine's job; this client makes exactly one attempt per call.
    """

    def __init__(
            self,
            *,
            base_url: str,
            api_key: str | None,
            client: httpx.AsyncClient | None = None,
            connect_timeout: float = 5.0,
            read_timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url
        self._api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=make_timeout(connect_timeout, read_timeout))

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            return {}
        return {"Authorization": f"Bearer {self._api_key}"}

    async def submit_job(self, payload: dict[str, Any]) -> dict[str, Any]:
        data = await request_json(
            self._client,
            "POST",
            build_url(self._base_url, "/run"),
            json=payload,
            headers=self._headers(),
        )
        if not isinstance(data, dict):
            raise ProtocolError("submission response is not an object")
        return data

    async def job_status(self, job_id: str) -> dict[str, Any]:
        data = await request_json(
            self._client,
            "GET",
            build_url(self._base_url, f"/status/{quote(job_id, safe='')}"),
            headers=self._headers(),
        )
        if not isinstance(data, dict):
            raise ProtocolError("status response is not an object")
        return data

    async def download(self, url: str, dest: Path) -> Path:
        try:
            async with self._client.stream("GET", url) as response:
                if not response.is_success:
                    raise TransportError(
                        f"download failed: HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                tmp = dest.with_suffix(dest.suffix + ".part")
                with tmp.open("wb") as fh:
                    async for chunk in response.aiter_bytes():
                        fh.write(chunk)
                tmp.replace(dest)
        except httpx.HTTPError as exc:
            raise TransportError(f"download failed: {exc.__class__.__name__}") from exc
        return dest

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

# src/storefront_sync/backend/http.py

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.errors import TransportError

logger = logging.getLogger(__name__)


def make_timeout(connect_s: float, read_s: float) -> httpx.Timeout:
    return httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s)


def build_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


async def request_json(
        client: httpx.AsyncClient,
        method: str,
        url: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
) -> Any:
    """
    One HTTP round trip returning decoded JSON (None for an empty body).

    Every failure is a TransportError: network errors and httpx timeouts, non-2xx
    statuses (status_code set) and bodies that are not JSON.
    """
    try:
        response = await client.request(method, url, json=json, headers=headers)
    except httpx.TimeoutException as exc:
        raise TransportError(f"{method} {url} timed out") from exc
    except httpx.HTTPError as exc:
        raise TransportError(f"{method} {url} failed: {exc.__class__.__name__}") from exc

    if not response.is_success:
        logger.debug("%s %s -> HTTP %s", method, url, response.status_code)
        raise TransportError(f"HTTP error! status: {response.status_code}", status_code=response.status_code)

    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        logger.debug("%s %s -> undecodable body: %r", method, url, response.text[:200])
        raise TransportError("Invalid JSON response from server") from exc

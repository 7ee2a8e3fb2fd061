# src/storefront_sync/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the HTTP backends into the try-on tracker and the chat sync engines,
- closes everything again on shutdown.
"""

from __future__ import annotations

import logging

from ..backend.chat_client import ChatApiClient
from ..backend.tryon_client import TryOnApiClient
from ..chat.conversation_sync import ConversationListSync
from ..chat.message_sync import MessageSync, MessageSyncConfig
from ..config import get_settings
from ..core.ports import ChatBackend, TryOnBackend
from ..core.state import AppState
from ..polling.task import PollingConfig
from ..polling.ticker import RetryPolicy
from ..tryon.tracker import JobTracker

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.downloads_dir.mkdir(parents=True, exist_ok=True)


def polling_config_from(settings) -> PollingConfig:
    return PollingConfig(
        interval=settings.tryon_check_interval,
        submit_timeout=settings.tryon_submit_timeout,
        call_timeout=settings.tryon_status_timeout,
        overall_timeout=settings.tryon_overall_timeout,
        retry=RetryPolicy(max_retries=settings.tryon_max_retries, retry_delay=settings.tryon_retry_delay),
    )


def message_sync_config_from(settings) -> MessageSyncConfig:
    return MessageSyncConfig(
        interval=settings.chat_poll_interval,
        refetch_after_send=settings.chat_refetch_after_send,
        call_timeout=settings.chat_call_timeout,
        reconcile_window=settings.chat_reconcile_window,
    )


def create_initial_state(
        *,
        settings=None,
        tryon_backend: TryOnBackend | None = None,
        chat_backend: ChatBackend | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Backends are injectable for tests; by default real httpx clients are built.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    backends: list[object] = []
    if tryon_backend is None:
        if not settings.tryon_api_key:
            logger.warning("STOREFRONT_TRYON_API_KEY is not set; try-on requests will be rejected.")
        tryon_backend = TryOnApiClient(
            base_url=settings.tryon_base_url,
            api_key=settings.tryon_api_key,
            read_timeout=max(settings.tryon_submit_timeout, settings.tryon_status_timeout),
        )
        backends.append(tryon_backend)
    if chat_backend is None:
        chat_backend = ChatApiClient(base_url=settings.api_url, read_timeout=settings.chat_call_timeout)
        backends.append(chat_backend)

    retry = RetryPolicy(max_retries=settings.tryon_max_retries, retry_delay=settings.tryon_retry_delay)
    return AppState(
        settings=settings,
        tracker=JobTracker(tryon_backend, polling_config_from(settings)),
        conversations=ConversationListSync(
            chat_backend,
            settings.user_id,
            interval=settings.conversations_poll_interval,
            call_timeout=settings.chat_call_timeout,
            retry=retry,
        ),
        messages=MessageSync(chat_backend, settings.user_id, message_sync_config_from(settings)),
        backends=backends,
    )


async def close_state(state: AppState) -> None:
    """Detach and cancel every engine, then close the HTTP clients. Runs on the engine loop."""
    state.messages.detach()
    state.conversations.stop()
    state.tracker.cancel()

    for backend in state.backends:
        aclose = getattr(backend, "aclose", None)
        if aclose is None:
            continue
        try:
            await aclose()
        except Exception:
            logger.debug("Closing backend %r failed.", backend, exc_info=True)

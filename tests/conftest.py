# tests/conftest.py

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from types import SimpleNamespace

import pytest

from storefront_sync.cli.bootstrap import close_state, create_initial_state
from storefront_sync.connectors.engine_runner import start_engine_runner
from storefront_sync.core.state import AppState

from .fakes import FakeChatBackend, FakeTryOnBackend, message_record, at


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic. Intervals are short so the
    engines tick many times per test.
    """
    return SimpleNamespace(
        app_name="storefront-test",
        log_level="DEBUG",
        console_enabled=False,
        data_dir=tmp_path / "data",
        downloads_dir=tmp_path / "downloads",
        api_url="http://storefront.test/api",
        user_id="me",
        tryon_base_url="http://tryon.test/v1",
        tryon_api_key="test-key",
        tryon_check_interval=0.01,
        tryon_submit_timeout=1.0,
        tryon_status_timeout=0.5,
        tryon_overall_timeout=2.0,
        tryon_max_retries=3,
        tryon_retry_delay=0.01,
        chat_poll_interval=0.05,
        chat_refetch_after_send=0.01,
        chat_call_timeout=0.5,
        chat_reconcile_window=30.0,
        conversations_poll_interval=0.05,
    )


@pytest.fixture()
def tryon_backend() -> FakeTryOnBackend:
    return FakeTryOnBackend(
        status_steps=[
            {"status": "starting"},
            {"status": "processing"},
            {"status": "completed", "output": ["https://cdn.test/result.jpg"]},
        ]
    )


@pytest.fixture()
def chat_backend() -> FakeChatBackend:
    return FakeChatBackend(
        server_messages={
            "c1": [
                message_record("m1", "shop", "Hi! How can we help?", at(0)),
                message_record("m2", "me", "Is the jacket in stock?", at(10)),
            ]
        },
        server_conversations=[
            {
                "_id": "c1",
                "participants": [{"_id": "me", "name": "Me"}, {"_id": "shop", "name": "Atelier"}],
                "messages": [
                    message_record("m1", "shop", "Hi! How can we help?", at(0), read=False),
                    message_record("m2", "me", "Is the jacket in stock?", at(10), read=False),
                ],
            }
        ],
    )


@pytest.fixture()
def state(
        settings: SimpleNamespace,
        tryon_backend: FakeTryOnBackend,
        chat_backend: FakeChatBackend,
) -> Iterator[AppState]:
    """
    AppState wired with deterministic fakes and a real engine loop thread,
    the way the console uses it.
    """
    app_state = create_initial_state(settings=settings, tryon_backend=tryon_backend, chat_backend=chat_backend)
    runner = start_engine_runner(name="engines-test")
    app_state.runner = runner
    try:
        yield app_state
    finally:
        runner.run(close_state(app_state), timeout=5.0)
        runner.stop()
        runner.join(timeout=5.0)

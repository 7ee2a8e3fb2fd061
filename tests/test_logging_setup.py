# tests/test_logging_setup.py

from __future__ import annotations

import logging

import pytest

from storefront_sync.logging_setup import _ConsoleNoiseFilter


def record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


@pytest.mark.parametrize(
    ("name", "level", "shown"),
    [
        ("storefront_sync.tryon.tracker", logging.INFO, True),
        ("storefront_sync.cli.commands", logging.DEBUG, True),
        ("storefront_sync.chat.message_sync", logging.INFO, False),
        ("storefront_sync.chat.message_sync", logging.WARNING, True),
        ("storefront_sync.polling.ticker", logging.INFO, False),
        ("storefront_sync.connectors.engine_runner", logging.INFO, False),
        ("httpx", logging.WARNING, False),
        ("httpcore.connection", logging.ERROR, True),
        ("py.warnings", logging.WARNING, False),
        ("asyncio", logging.ERROR, True),
    ],
)
def test_console_filter_quiets_background_pollers(name: str, level: int, shown: bool) -> None:
    assert _ConsoleNoiseFilter().filter(record(name, level)) is shown

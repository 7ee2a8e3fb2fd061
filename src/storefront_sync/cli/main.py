# src/storefront_sync/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, starts the engine loop thread, then runs
the console REPL in the main thread.
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import close_state, create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..connectors.engine_runner import start_engine_runner
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _shutdown(state) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    runner = state.runner
    if runner is None:
        return
    try:
        runner.run(close_state(state), timeout=10.0)
    except Exception:
        logger.exception("Failed to close engines cleanly.")
    runner.stop()
    runner.join(timeout=10.0)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/storefront")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger.info("Starting %s...", getattr(settings, "app_name", "storefront-sync"))

    state = create_initial_state(settings=settings)
    state.runner = start_engine_runner()

    if settings.user_id:
        state.runner.call(state.conversations.start)
    else:
        logger.warning("STOREFRONT_USER_ID is not set; chat features are disabled.")

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError):
        # Not available on every platform.
        pass

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Syncing in the background. Press Ctrl+C to stop.")
            try:
                stop_main.wait()
            except KeyboardInterrupt:
                pass
    finally:
        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()

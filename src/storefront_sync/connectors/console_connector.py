# src/storefront_sync/connectors/console_connector.py

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from ..chat.conversation_sync import ConversationListSnapshot
from ..chat.message_sync import MessageSyncSnapshot
from ..cli.commands import on_engine
from ..cli.commands import registry as command_registry
from ..cli.render import render_conversations, render_job, render_messages
from ..core.errors import StorefrontSyncError, friendly_error_message
from ..core.state import AppState
from ..tryon.tracker import JobSnapshot

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _subscribe_printers(state: AppState) -> list[Callable[[], None]]:
    """Print engine snapshots as they arrive. Callbacks run on the engine thread."""
    viewer = str(getattr(state.settings, "user_id", "") or "")
    last: dict[str, str] = {}

    def show(key: str, text: str) -> None:
        # Elapsed-time ticks alone are not worth a new line.
        if last.get(key) == text:
            return
        last[key] = text
        _print_ts(text)

    def on_job(snap: JobSnapshot) -> None:
        show("job", render_job(snap))

    def on_messages(snap: MessageSyncSnapshot) -> None:
        if snap.conversation_id is not None:
            show("messages", render_messages(snap, viewer))

    def on_conversations(snap: ConversationListSnapshot) -> None:
        show("conversations", render_conversations(snap, viewer))

    return [
        on_engine(state, state.tracker.subscribe, on_job),
        on_engine(state, state.messages.subscribe, on_messages),
        on_engine(state, state.conversations.subscribe, on_conversations),
    ]


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (user=%s).", getattr(state.settings, "user_id", ""))
    _print_ts("[CONSOLE] Use /help for commands, /open <id> to chat, /exit to quit.\n")

    unsubscribers = _subscribe_printers(state)

    def emit(text: str) -> None:
        _print_ts(text)

    try:
        while True:
            try:
                user_input = input(">>> ").strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            try:
                cmd_response = command_registry.handle(state, user_input, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                cmd_response = "Internal error while handling a command."

            if cmd_response is not None:
                _print_ts(cmd_response)
                continue

            # Plain text goes to the open conversation.
            try:
                on_engine(state, state.messages.send_message, user_input)
            except StorefrontSyncError as e:
                _print_ts(f"[CHAT] {friendly_error_message(e)}")
            except Exception:
                logger.exception("Sending from console failed.")
                _print_ts("Internal error while sending a message.")
    finally:
        for unsubscribe in unsubscribers:
            try:
                on_engine(state, unsubscribe)
            except Exception:
                logger.debug("Unsubscribe failed.", exc_info=True)

    logger.info("Console connector finished.")

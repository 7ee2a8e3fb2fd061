# src/storefront_sync/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import Any, TypeVar, cast

from ..chat.conversation_sync import SyncState
from ..core.errors import StorefrontSyncError, friendly_error_message
from ..core.state import AppState
from ..tryon.protocol import CATEGORIES, TryOnRequest
from .render import render_conversations, render_job, render_messages

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRYON_FLAGS = ("cover_feet", "adjust_hands", "restore_background", "restore_clothes", "flat_lay", "long_top")


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /tryon, /open ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except StorefrontSyncError as exc:
            logger.debug("/%s rejected: %s", name, exc)
            return friendly_error_message(exc)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def on_engine(state: AppState, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Invoke an engine method on the engine loop thread."""
    if state.runner is None:
        raise RuntimeError("engine loop is not running")
    return state.runner.call(fn, *args, **kwargs)


def _viewer(state: AppState) -> str:
    return str(getattr(state.settings, "user_id", "") or "")


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    job = on_engine(state, state.tracker.current_snapshot)
    chat = on_engine(state, state.messages.snapshot)
    convs = on_engine(state, state.conversations.snapshot)
    return (
        "Status:\n"
        f"  User: {_viewer(state) or '(not set)'}\n"
        f"  API: {getattr(state.settings, 'api_url', '')}\n"
        f"  Try-on job: {job.state.value}\n"
        f"  Conversation list: {convs.state.value} ({len(convs.conversations)} known)\n"
        f"  Open conversation: {chat.conversation_id or '-'}"
        + (" (degraded)" if chat.degraded else "")
    )


def parse_tryon_args(args: list[str]) -> TryOnRequest:
    """
    /tryon <model> <garment> [category] [flag ...]

    Flags are the boolean try-on options by name (e.g. long_top).
    """
    if len(args) < 2:
        return TryOnRequest(model_image=args[0] if args else None, garment_image=None)

    category = "tops"
    flags: dict[str, bool] = {}
    for extra in args[2:]:
        key = extra.lower().lstrip("+")
        if key in TRYON_FLAGS:
            flags[key] = True
        else:
            category = key
    return TryOnRequest(model_image=args[0], garment_image=args[1], category=category, **flags)


def cmd_tryon(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /tryon <model> <garment> [category] [flags]
    Category is one of tops | bottoms | one-pieces. Images are paths or URLs.
    """
    request = parse_tryon_args(args)
    snap = on_engine(state, state.tracker.start, request)
    if emit:
        emit(render_job(snap))
    return "Try-on started. Progress updates follow; /cancel to stop."


def cmd_job(state: AppState, args: list[str]) -> str:
    return render_job(on_engine(state, state.tracker.current_snapshot))


def cmd_cancel(state: AppState, args: list[str]) -> str:
    if on_engine(state, state.tracker.cancel):
        return "Try-on cancelled."
    return "No try-on in progress."


def cmd_reset(state: AppState, args: list[str]) -> str:
    on_engine(state, state.tracker.reset)
    return "Try-on reset. Ready for a new job."


def cmd_save(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/save [dir] -> download the finished try-on image."""
    if state.runner is None:
        raise RuntimeError("engine loop is not running")
    dest_dir = args[0] if args else getattr(state.settings, "downloads_dir", ".")
    if emit:
        emit("[TRYON] Downloading result...")
    path = state.runner.run(state.tracker.download_result(dest_dir), timeout=120.0)
    return f"Image saved to {path}"


def cmd_chats(state: AppState, args: list[str]) -> str:
    """
    /chats       -> show conversations (starts list sync if needed)
    /chats off   -> stop list sync
    """
    if args and args[0].lower() in ("off", "stop"):
        on_engine(state, state.conversations.stop)
        return "Conversation list sync stopped."
    if not _viewer(state):
        return "Set STOREFRONT_USER_ID to list conversations."
    if on_engine(state, lambda: state.conversations.state) is SyncState.IDLE:
        on_engine(state, state.conversations.start)
    return render_conversations(on_engine(state, state.conversations.snapshot), _viewer(state))


def cmd_open(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /open <conversation_id>"
    on_engine(state, state.messages.attach_and_start, args[0])
    return render_messages(on_engine(state, state.messages.snapshot), _viewer(state))


def cmd_close(state: AppState, args: list[str]) -> str:
    if not on_engine(state, lambda: state.messages.attached):
        return "No conversation open."
    on_engine(state, state.messages.detach)
    return "Conversation closed."


def cmd_read(state: AppState, args: list[str]) -> str:
    on_engine(state, state.messages.mark_read)
    return "Marked as read."


def cmd_retry(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /retry <local_id>"
    on_engine(state, state.messages.retry_message, args[0])
    return "Retrying..."


def cmd_discard(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /discard <local_id>"
    on_engine(state, state.messages.discard_message, args[0])
    return "Message discarded."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show user, backend and engine states.")
registry.register(
    "tryon",
    cmd_tryon,
    help_text=f"Start a virtual try-on: /tryon <model> <garment> [{'|'.join(CATEGORIES)}] [flags].",
)
registry.register("job", cmd_job, help_text="Show the current try-on job.")
registry.register("cancel", cmd_cancel, help_text="Cancel the running try-on.")
registry.register("reset", cmd_reset, help_text="Clear a finished try-on so a new one can start.")
registry.register("save", cmd_save, help_text="Download the try-on result: /save [dir].")
registry.register("chats", cmd_chats, help_text="List conversations: /chats | /chats off.")
registry.register("open", cmd_open, help_text="Open a conversation and start syncing: /open <id>.")
registry.register("close", cmd_close, help_text="Stop syncing the open conversation.")
registry.register("read", cmd_read, help_text="Mark the open conversation as read.")
registry.register("retry", cmd_retry, help_text="Re-send a failed message: /retry <local_id>.")
registry.register("discard", cmd_discard, help_text="Drop a failed message: /discard <local_id>.")

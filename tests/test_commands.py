# tests/test_commands.py

from __future__ import annotations

import time

from storefront_sync.chat.conversation_sync import SyncState
from storefront_sync.cli.commands import CommandRegistry, on_engine, parse_tryon_args
from storefront_sync.cli.commands import registry as command_registry
from storefront_sync.polling.task import TaskState


def _eventually(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        assert time.monotonic() < deadline, "condition not reached in time"
        time.sleep(0.01)


def test_command_registry_routes_2_and_3_params() -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}
    notes: list[str] = []

    def h2(state, args):
        called["h2"] += 1
        return "h2:" + ",".join(args)

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a", aliases=["aa"])
    reg.register("b", h3, "b")

    assert reg.handle(None, "/a x y") == "h2:x,y"
    assert reg.handle(None, "/AA") == "h2:"
    assert reg.handle(None, "/b", emit=notes.append) == "h3"
    assert called == {"h2": 2, "h3": 1}
    assert notes == ["note"]


def test_command_registry_unknown_and_non_command() -> None:
    reg = CommandRegistry()
    assert reg.handle(None, "hello") is None
    assert "Unknown command" in (reg.handle(None, "/nope") or "")
    assert "Empty command" in (reg.handle(None, "/") or "")


def test_parse_tryon_args() -> None:
    req = parse_tryon_args(["me.jpg", "https://img.test/skirt.png", "bottoms", "flat_lay", "+long_top"])
    assert req.model_image == "me.jpg"
    assert req.garment_image == "https://img.test/skirt.png"
    assert req.category == "bottoms"
    assert req.flat_lay is True and req.long_top is True and req.cover_feet is False

    assert parse_tryon_args(["only-one.jpg"]).garment_image is None


def test_tryon_validation_error_is_reported_not_raised(state) -> None:
    reply = command_registry.handle(state, "/tryon https://img.test/me.jpg")
    assert reply is not None and reply.startswith("Missing or invalid input")
    assert on_engine(state, lambda: state.tracker.state) is TaskState.IDLE


def test_tryon_runs_to_completion_and_reset(state, tryon_backend) -> None:
    notes: list[str] = []
    reply = command_registry.handle(
        state, "/tryon https://img.test/me.jpg https://img.test/coat.jpg tops", emit=notes.append
    )
    assert reply is not None and reply.startswith("Try-on started")
    assert notes == ["[TRYON] Starting generation..."]

    _eventually(lambda: on_engine(state, lambda: state.tracker.state) is TaskState.SUCCEEDED)
    assert "https://cdn.test/result.jpg" in (command_registry.handle(state, "/job") or "")
    assert "already" in (command_registry.handle(state, "/tryon https://img.test/a.jpg https://img.test/b.jpg") or "")

    assert command_registry.handle(state, "/cancel") == "No try-on in progress."
    assert command_registry.handle(state, "/reset") == "Try-on reset. Ready for a new job."
    assert tryon_backend.submitted[0]["category"] == "tops"


def test_save_downloads_result(state, tmp_path) -> None:
    command_registry.handle(state, "/tryon https://img.test/me.jpg https://img.test/coat.jpg")
    _eventually(lambda: on_engine(state, lambda: state.tracker.state) is TaskState.SUCCEEDED)

    reply = command_registry.handle(state, f"/save {tmp_path / 'saved'}") or ""

    assert reply.startswith("Image saved to")
    assert len(list((tmp_path / "saved").glob("VirtualTryOn_*.jpg"))) == 1


def test_chat_commands_end_to_end(state, chat_backend) -> None:
    listing = command_registry.handle(state, "/chats") or ""
    assert listing.startswith("[CHATS]")
    assert on_engine(state, lambda: state.conversations.state) is SyncState.SYNCING

    command_registry.handle(state, "/open c1")
    _eventually(lambda: len(on_engine(state, lambda: state.messages.messages)) == 2)

    on_engine(state, state.messages.send_message, "Do you ship abroad?")
    _eventually(lambda: chat_backend.sent and not any(
        m.local_only for m in on_engine(state, lambda: state.messages.messages)
    ))

    status = command_registry.handle(state, "/status") or ""
    assert "Open conversation: c1" in status

    assert command_registry.handle(state, "/retry nope") == "no local message nope"
    assert command_registry.handle(state, "/close") == "Conversation closed."
    assert command_registry.handle(state, "/close") == "No conversation open."
    assert command_registry.handle(state, "/chats off") == "Conversation list sync stopped."

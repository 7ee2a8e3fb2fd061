# src/storefront_sync/cli/render.py

from __future__ import annotations

from ..chat.conversation_sync import ConversationListSnapshot
from ..chat.message_sync import MessageSyncSnapshot
from ..chat.models import ConversationSummary, DeliveryState, Message
from ..polling.task import TaskState
from ..tryon.tracker import JobSnapshot, progress_text


def render_job(snap: JobSnapshot) -> str:
    if snap.state is TaskState.IDLE:
        return "[TRYON] No job. Use /tryon <model> <garment> [category]."
    if not snap.state.is_terminal:
        return f"[TRYON] {progress_text(snap)}"
    if snap.state is TaskState.SUCCEEDED:
        return f"[TRYON] Done in {snap.elapsed_seconds:.1f}s: {snap.result}"
    if snap.state is TaskState.CANCELLED:
        return "[TRYON] Cancelled."
    kind = f" ({snap.error_kind.value})" if snap.error_kind else ""
    return f"[TRYON] {snap.state.value}{kind}: {snap.error}"


def _local_time(msg: Message) -> str:
    return msg.timestamp.astimezone().strftime("%H:%M")


def render_message(msg: Message, viewer_id: str) -> str:
    who = "You" if msg.sender_id == viewer_id else msg.sender_id
    line = f"  {_local_time(msg)} {who}: {msg.content}"
    if msg.local_only:
        if msg.delivery_state is DeliveryState.PENDING:
            line += "  (sending...)"
        elif msg.delivery_state is DeliveryState.FAILED:
            line += f"  (failed, /retry {msg.local_id} or /discard {msg.local_id})"
    return line


def render_messages(snap: MessageSyncSnapshot, viewer_id: str) -> str:
    if snap.conversation_id is None:
        return "[CHAT] No conversation open. Use /open <id>."
    lines = [f"[CHAT] Conversation {snap.conversation_id}:"]
    if not snap.messages:
        lines.append("  (no messages)")
    lines.extend(render_message(m, viewer_id) for m in snap.messages)
    if snap.degraded:
        lines.append(f"  ! sync is having trouble: {snap.last_error}")
    return "\n".join(lines)


def render_conversation(conv: ConversationSummary, viewer_id: str) -> str:
    other = conv.other_participant(viewer_id)
    name = (other.name or other.id) if other else "(unknown)"
    last = conv.last_message.content if conv.last_message else "No messages yet"
    unread = f" [{conv.unread_count} unread]" if conv.unread_count else ""
    return f"  {conv.id}  {name}{unread}: {last}"


def render_conversations(snap: ConversationListSnapshot, viewer_id: str) -> str:
    lines = [f"[CHATS] {snap.state.value}"]
    if snap.last_error:
        lines[0] += f" (last error: {snap.last_error})"
    if not snap.conversations:
        lines.append("  No conversations yet")
    lines.extend(render_conversation(c, viewer_id) for c in snap.conversations)
    return "\n".join(lines)

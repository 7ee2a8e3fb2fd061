# src/storefront_sync/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..chat.conversation_sync import ConversationListSync
from ..chat.message_sync import MessageSync
from ..tryon.tracker import JobTracker

if TYPE_CHECKING:
    from ..connectors.engine_runner import EngineRunner


@dataclass
class AppState:
    """Everything a front-end needs: settings, the three engines and the loop they live on."""

    settings: Any

    tracker: JobTracker
    conversations: ConversationListSync
    messages: MessageSync

    # Backends are kept so shutdown can close their HTTP clients.
    backends: list[Any] = field(default_factory=list)
    runner: EngineRunner | None = None

"""Entity adapters translating domain objects to sync envelopes."""

from __future__ import annotations

from .base import SyncAdapter, VersionCounter
from .conversation import (
    ConversationAdapter,
    ConversationContext,
    ConversationMetadata,
    ConversationState,
    Message,
)
from .task_board import (
    BoardMetadata,
    Column,
    Task,
    TaskBoardAdapter,
    TaskBoardState,
    TaskUpdate,
)
from .workspace import (
    CursorPosition,
    GitState,
    Layout,
    OpenFile,
    TerminalSession,
    TerminalState,
    WorkspaceAdapter,
    WorkspaceState,
)

__all__ = [
    # Base
    "SyncAdapter",
    "VersionCounter",
    # Conversation
    "ConversationAdapter",
    "ConversationContext",
    "ConversationMetadata",
    "ConversationState",
    "Message",
    # Task board
    "BoardMetadata",
    "Column",
    "Task",
    "TaskBoardAdapter",
    "TaskBoardState",
    "TaskUpdate",
    # Workspace
    "CursorPosition",
    "GitState",
    "Layout",
    "OpenFile",
    "TerminalSession",
    "TerminalState",
    "WorkspaceAdapter",
    "WorkspaceState",
]

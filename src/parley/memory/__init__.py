"""Conversation persistence for parley.

Stores conversation threads and their append-only history.
"""

from .base import ConversationStore
from .factory import create_conversation_store
from .models import (
    Conversation,
    EntryType,
    HistoryEntry,
    Role,
    ToolCallRequest,
    Usage,
)

__all__ = [
    "Conversation",
    "ConversationStore",
    "EntryType",
    "HistoryEntry",
    "Role",
    "ToolCallRequest",
    "Usage",
    "create_conversation_store",
]

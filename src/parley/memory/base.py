"""Abstract base class for conversation stores.

This module defines the persistence contract used by the answer engine.
The abstraction hides:
- Storage format (SQLite rows, in-process dicts)
- Identifier allocation
- Connection management

All operations are atomic per entry or per field; the engine never needs
a multi-entry transaction.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from .models import Conversation, HistoryEntry


class ConversationStore(ABC):
    """Abstract conversation store.

    Provides a unified interface for storing conversations and their
    history entries across different storage backends.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the store."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the store gracefully."""

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Load a conversation, or None if it does not exist."""

    @abstractmethod
    async def save_conversation(self, conversation: Conversation) -> None:
        """Insert or replace a conversation record."""

    @abstractmethod
    async def update_conversation(self, conversation_id: str, fields: dict[str, Any]) -> None:
        """Update selected conversation fields."""

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation and all of its history."""

    @abstractmethod
    async def load_history(self, conversation_id: str) -> list[HistoryEntry]:
        """Load every stored entry, live or not, oldest first."""

    @abstractmethod
    async def append_entry(self, conversation_id: str, entry: HistoryEntry) -> int:
        """Persist a new entry and return its identifier.

        The identifier is also written back to ``entry.id``.
        """

    @abstractmethod
    async def mark_not_live(self, entry_ids: Iterable[int]) -> None:
        """Retire entries from the model context without deleting them."""

    @abstractmethod
    async def delete_entries(self, entry_ids: Iterable[int]) -> None:
        """Physically remove entries."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""

    async def load_live_history(self, conversation_id: str) -> list[HistoryEntry]:
        """Load the entries still counted toward the model context."""
        return [e for e in await self.load_history(conversation_id) if e.live]

    async def __aenter__(self) -> "ConversationStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

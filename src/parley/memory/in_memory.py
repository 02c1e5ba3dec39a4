"""In-memory conversation store.

Simple dict-based storage for tests and single-process use.
Data is lost when the application exits.
"""

from collections.abc import Iterable
from itertools import count
from typing import Any

from ..errors import ConversationNotFoundError
from .base import ConversationStore
from .models import Conversation, HistoryEntry, utcnow


class InMemoryConversationStore(ConversationStore):
    """In-memory conversation store (process-only).

    Entry identifiers are allocated from one monotonic counter, so they
    also encode insertion order.
    """

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._entries: dict[int, HistoryEntry] = {}
        self._ids = count(1)

    async def connect(self) -> None:
        """Initialize memory (no-op for in-memory)."""
        pass

    async def disconnect(self) -> None:
        """Close memory (no-op for in-memory)."""
        pass

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        conversation = self._conversations.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def save_conversation(self, conversation: Conversation) -> None:
        self._conversations[conversation.id] = conversation.model_copy(deep=True)

    async def update_conversation(self, conversation_id: str, fields: dict[str, Any]) -> None:
        current = self._conversations.get(conversation_id)
        if current is None:
            raise ConversationNotFoundError(conversation_id)
        unknown = set(fields) - set(Conversation.model_fields)
        if unknown:
            raise ValueError(f"Unknown conversation fields: {sorted(unknown)}")
        self._conversations[conversation_id] = current.model_copy(
            update={**fields, "updated_at": utcnow()}
        )

    async def delete_conversation(self, conversation_id: str) -> None:
        self._conversations.pop(conversation_id, None)
        for entry_id in [i for i, e in self._entries.items() if e.conversation_id == conversation_id]:
            del self._entries[entry_id]

    async def load_history(self, conversation_id: str) -> list[HistoryEntry]:
        entries = [
            e.model_copy() for e in self._entries.values()
            if e.conversation_id == conversation_id
        ]
        return sorted(entries, key=lambda e: e.sort_key)

    async def append_entry(self, conversation_id: str, entry: HistoryEntry) -> int:
        entry_id = next(self._ids)
        entry.id = entry_id
        entry.conversation_id = conversation_id
        self._entries[entry_id] = entry.model_copy()
        return entry_id

    async def mark_not_live(self, entry_ids: Iterable[int]) -> None:
        for entry_id in entry_ids:
            if entry_id in self._entries:
                self._entries[entry_id].live = False

    async def delete_entries(self, entry_ids: Iterable[int]) -> None:
        for entry_id in entry_ids:
            self._entries.pop(entry_id, None)

    @property
    def backend_type(self) -> str:
        return "memory"

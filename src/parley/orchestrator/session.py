"""Serialized access to conversation records.

Every read and write of conversation-level fields (in-flight message
reference, token counters, settings) goes through one session object per
conversation. The record lock is held only while fields are read or
swapped, never across a store write or a provider or tool call.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import structlog

from ..errors import ConversationNotFoundError
from ..memory.base import ConversationStore
from ..memory.models import Conversation

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ConversationSession:
    """In-process owner of one conversation record.

    Hidden design decisions:
    - The cached record is the single source of truth while loaded
    - Only changed fields are written back to the store
    - Turns on the same conversation run one after another
    """

    def __init__(self, conversation: Conversation, store: ConversationStore):
        self._conversation = conversation
        self._store = store
        self._lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()
        self._turn_lock = asyncio.Lock()
        self._last_used = time.monotonic()

    @property
    def conversation_id(self) -> str:
        return self._conversation.id

    @property
    def busy(self) -> bool:
        """Whether a turn is running or waiting on this conversation."""
        return self._turn_lock.locked()

    @property
    def idle_for(self) -> float:
        return time.monotonic() - self._last_used

    async def read(self, fn: Callable[[Conversation], T]) -> T:
        """Apply a read-only function to the record under the lock."""
        async with self._lock:
            self._last_used = time.monotonic()
            return fn(self._conversation)

    async def snapshot(self) -> Conversation:
        return await self.read(lambda c: c.model_copy(deep=True))

    async def mutate(self, fn: Callable[[Conversation], Any]) -> Conversation:
        """Apply a change to a copy of the record, persist it, then publish it.

        Writers queue on the write lock in call order. Readers only wait
        for the record lock, which is never held during the store write.
        If the write fails the cached record is left as it was.

        Returns:
            A copy of the record after the change
        """
        async with self._write_lock:
            async with self._lock:
                self._last_used = time.monotonic()
                before = self._conversation.model_dump()
                updated = self._conversation.model_copy(deep=True)
            fn(updated)
            after = updated.model_dump()
            changed = {key: value for key, value in after.items() if before[key] != value}
            if changed:
                await self._store.update_conversation(updated.id, changed)
            async with self._lock:
                self._conversation = updated
            return updated.model_copy(deep=True)

    @asynccontextmanager
    async def turn(self) -> AsyncIterator[None]:
        """Hold the conversation for one turn; concurrent turns queue here."""
        if self._turn_lock.locked():
            logger.info("turn_queued", conversation_id=self.conversation_id)
        async with self._turn_lock:
            self._last_used = time.monotonic()
            try:
                yield
            finally:
                self._last_used = time.monotonic()


class SessionRegistry:
    """Hands out one session per conversation, with explicit eviction."""

    def __init__(self, store: ConversationStore):
        self._store = store
        self._sessions: dict[str, ConversationSession] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._sessions

    async def get(self, conversation_id: str) -> ConversationSession:
        """Return the session for a conversation, loading it on first use.

        Raises:
            ConversationNotFoundError: If the store has no such conversation
        """
        async with self._lock:
            session = self._sessions.get(conversation_id)
            if session is None:
                conversation = await self._store.get_conversation(conversation_id)
                if conversation is None:
                    raise ConversationNotFoundError(conversation_id)
                session = ConversationSession(conversation, self._store)
                self._sessions[conversation_id] = session
            return session

    def evict(self, conversation_id: str) -> bool:
        """Forget a session; the next ``get`` reloads it from the store."""
        return self._sessions.pop(conversation_id, None) is not None

    def evict_idle(self, max_age: float) -> int:
        """Forget sessions unused for ``max_age`` seconds and not in a turn.

        Returns:
            Number of sessions evicted
        """
        stale = [
            conversation_id
            for conversation_id, session in self._sessions.items()
            if not session.busy and session.idle_for >= max_age
        ]
        for conversation_id in stale:
            del self._sessions[conversation_id]
        if stale:
            logger.info("sessions_evicted", count=len(stale))
        return len(stale)

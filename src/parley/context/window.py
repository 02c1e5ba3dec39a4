"""Selection, pruning and summarization of conversation history."""

from datetime import datetime, timedelta

import structlog

from ..errors import SummarizationFailedError
from ..memory.base import ConversationStore
from ..memory.models import Conversation, EntryType, HistoryEntry, Role, Usage, utcnow
from .summarizer import Summarizer

logger = structlog.get_logger(__name__)

DEFAULT_CONTEXT_LIMIT = 100
DEFAULT_KEEP_RECENT = 3


class ContextWindowManager:
    """Decides which history entries are sent to the model.

    Hidden design decisions:
    - Retention cutoff (``retention_days`` of 0 disables it)
    - Where the summarized block ends, so a tool call is never separated
      from its results
    - Where the summary entry sits in the timeline

    Entries are ordered by creation time with the persisted id as the
    tiebreak; entries not yet persisted are never deleted.
    """

    def __init__(
        self,
        store: ConversationStore,
        summarizer: Summarizer,
        keep_recent: int = DEFAULT_KEEP_RECENT,
        max_live: int | None = None
    ):
        """Initialize the manager.

        Args:
            store: Conversation store used for deletes and the summary entry
            summarizer: Produces the summary text
            keep_recent: Newest live entries always kept verbatim
            max_live: Optional global cap on live entries, applied on top
                of each conversation's own context limit
        """
        if keep_recent < 1:
            raise ValueError("keep_recent must be at least 1")
        self._store = store
        self._summarizer = summarizer
        self._keep_recent = keep_recent
        self._max_live = max_live

    @staticmethod
    def _cutoff(conversation: Conversation, now: datetime | None) -> datetime | None:
        if conversation.retention_days <= 0:
            return None
        return (now or utcnow()) - timedelta(days=conversation.retention_days)

    def _in_window(self, entry: HistoryEntry, cutoff: datetime | None) -> bool:
        return cutoff is None or entry.created_at >= cutoff

    def select(
        self,
        conversation: Conversation,
        entries: list[HistoryEntry],
        now: datetime | None = None
    ) -> list[HistoryEntry]:
        """Live entries inside the retention window, oldest first."""
        cutoff = self._cutoff(conversation, now)
        live = [e for e in entries if e.live and self._in_window(e, cutoff)]
        return sorted(live, key=lambda e: e.sort_key)

    async def prune(
        self,
        conversation: Conversation,
        entries: list[HistoryEntry],
        now: datetime | None = None
    ) -> list[HistoryEntry]:
        """Delete persisted entries that are retired or too old.

        Returns:
            The entries that remain, oldest first
        """
        cutoff = self._cutoff(conversation, now)
        doomed = [
            e for e in entries
            if e.persisted and (not e.live or not self._in_window(e, cutoff))
        ]
        if doomed:
            await self._store.delete_entries(e.id for e in doomed)
            logger.info("history_pruned", conversation_id=conversation.id, deleted=len(doomed))

        doomed_ids = {id(e) for e in doomed}
        return sorted((e for e in entries if id(e) not in doomed_ids), key=lambda e: e.sort_key)

    def effective_limit(self, conversation: Conversation) -> int:
        limit = conversation.context_limit or DEFAULT_CONTEXT_LIMIT
        if self._max_live is not None:
            limit = min(limit, self._max_live)
        return limit

    def needs_summary(
        self,
        conversation: Conversation,
        entries: list[HistoryEntry],
        now: datetime | None = None
    ) -> bool:
        return len(self.select(conversation, entries, now)) > self.effective_limit(conversation)

    async def summarize(
        self,
        conversation: Conversation,
        entries: list[HistoryEntry],
        now: datetime | None = None
    ) -> tuple[list[HistoryEntry], Usage | None]:
        """Replace the older live entries with one summary entry.

        Failure is logged and leaves the history untouched; the overflow
        is retried on a later turn.

        Returns:
            Tuple of (remaining entries oldest first, summary usage or None)
        """
        live = self.select(conversation, entries, now)
        keep = min(self._keep_recent, max(self.effective_limit(conversation) - 1, 1))
        cut = len(live) - keep
        # Tool results stay with the call that produced them
        while cut > 0 and live[cut].role == Role.TOOL:
            cut -= 1
        if cut <= 0:
            return entries, None

        older, recent = live[:cut], live[cut:]
        try:
            text, usage = await self._summarizer.summarize(
                conversation,
                [e for e in older if e.role != Role.TOOL]
            )
        except SummarizationFailedError as e:
            logger.warning(
                "summarization_failed",
                conversation_id=conversation.id,
                error=str(e),
            )
            return entries, None

        retired_ids = [e.id for e in older if e.persisted]
        await self._store.mark_not_live(retired_ids)
        await self._store.delete_entries(retired_ids)

        summary = HistoryEntry(
            conversation_id=conversation.id,
            role=Role.ASSISTANT,
            content=text,
            entry_type=EntryType.SUMMARY,
            created_at=recent[0].created_at - timedelta(microseconds=1),
            input_tokens=usage.input_tokens if usage else None,
            output_tokens=usage.output_tokens if usage else None,
        )
        await self._store.append_entry(conversation.id, summary)

        retired = {id(e) for e in older}
        remaining = [e for e in entries if id(e) not in retired]
        remaining.append(summary)
        logger.info(
            "history_compacted",
            conversation_id=conversation.id,
            retired=len(older),
            kept=len(recent),
        )
        return sorted(remaining, key=lambda e: e.sort_key), usage

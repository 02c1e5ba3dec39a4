"""Answer orchestration: one user message in, one answer out.

A turn moves through these states:
    building -> streaming -> (tool_executing -> streaming)* -> finalizing -> done
with ``failed`` reachable from any of them.

The user's message and every tool result are persisted as soon as they
exist, so a later failure never loses them. Only the assistant text of
the failing provider call is discarded.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import uuid4

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..config import Settings
from ..context.window import ContextWindowManager
from ..errors import (
    IterationLimitExceededError,
    ParleyError,
    ProviderUnavailableError,
    ToolNotFoundError,
)
from ..llm.base import ProviderAdapter
from ..llm.catalog import ModelCatalog
from ..llm.models import ProviderModel, SendOptions
from ..memory.base import ConversationStore
from ..memory.models import Conversation, HistoryEntry, Role, ToolCallRequest, Usage
from ..prompts import get_master_prompt
from ..streaming.aggregator import StreamAggregator, StreamResult
from ..streaming.display import DisplayChannel
from ..tools.registry import ToolRegistry
from .callbacks import NullCallbacks, TransportCallbacks
from .session import ConversationSession, SessionRegistry

logger = structlog.get_logger(__name__)


class TurnState(str, Enum):
    BUILDING = "building"
    STREAMING = "streaming"
    TOOL_EXECUTING = "tool_executing"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class TurnResult(BaseModel):
    """Outcome of one turn, mirroring what the transport was told."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    state: TurnState
    text: str = ""
    error: ParleyError | None = None
    iterations: int = Field(default=0, description="Provider calls made during the turn")
    usage: Usage = Field(default_factory=Usage)


class _Turn:
    """Mutable bookkeeping for one running turn."""

    def __init__(self, conversation: Conversation, entries: list[HistoryEntry]):
        self.conversation = conversation
        self.entries = entries
        self.state = TurnState.BUILDING
        self.iterations = 0
        self.usage = Usage()
        self.usage_recorded = False


class AnswerOrchestrator:
    """Drives provider calls, tool execution and history upkeep for a turn.

    Hidden design decisions:
    - Which adapter serves a conversation (one catalog lookup per turn)
    - The tool-call loop and its iteration cap
    - What is persisted when, and what is shown on failure

    ``answer`` never raises for turn failures; they reach the transport
    through ``on_error`` and come back in the ``TurnResult``.
    """

    def __init__(
        self,
        store: ConversationStore,
        catalog: ModelCatalog,
        tools: ToolRegistry,
        window: ContextWindowManager,
        settings: Settings | None = None,
        sessions: SessionRegistry | None = None
    ):
        self._store = store
        self._catalog = catalog
        self._tools = tools
        self._window = window
        self._settings = settings or Settings()
        self._sessions = sessions or SessionRegistry(store)
        self._tasks: set[asyncio.Task[TurnResult]] = set()

    @property
    def sessions(self) -> SessionRegistry:
        return self._sessions

    @property
    def max_iterations(self) -> int:
        return self._settings.max_iterations

    async def create_conversation(self, **fields: Any) -> Conversation:
        """Create and persist a conversation with configured defaults."""
        values: dict[str, Any] = {
            "model_name": self._settings.default_model,
            "context_limit": self._settings.context_limit,
            "retention_days": self._settings.retention_days,
            "master_prompt": get_master_prompt(),
        }
        values.update(fields)
        conversation = Conversation(**values)
        await self._store.save_conversation(conversation)
        logger.info("conversation_created", conversation_id=conversation.id, model=conversation.model_name)
        return conversation

    def start(
        self,
        conversation_id: str,
        text: str,
        callbacks: TransportCallbacks | None = None,
        attachment_path: str | None = None
    ) -> "asyncio.Task[TurnResult]":
        """Run a turn in the background and return its task."""
        task = asyncio.create_task(self.answer(conversation_id, text, callbacks, attachment_path))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def answer(
        self,
        conversation_id: str,
        text: str,
        callbacks: TransportCallbacks | None = None,
        attachment_path: str | None = None
    ) -> TurnResult:
        """Run one turn to completion.

        Args:
            conversation_id: Conversation receiving the message
            text: The user's message
            callbacks: Transport receiving display updates
            attachment_path: Optional file sent along with the message

        Returns:
            TurnResult with the final state, text and token usage
        """
        callbacks = callbacks or NullCallbacks()
        structlog.contextvars.bind_contextvars(conversation_id=conversation_id)
        try:
            try:
                session = await self._sessions.get(conversation_id)
            except ParleyError as e:
                logger.warning("turn_rejected", error_code=e.code, error=str(e))
                await callbacks.on_error(e)
                return TurnResult(state=TurnState.FAILED, error=e)

            async with session.turn():
                async with DisplayChannel(callbacks, on_message_ref=self._in_flight_setter(session)) as display:
                    result = await self._run_turn(session, text, attachment_path, display)
                # Display updates are drained, nothing can re-set the reference now
                try:
                    await session.mutate(lambda c: setattr(c, "in_flight_message_id", None))
                except Exception:
                    logger.exception("in_flight_reset_failed")
                return result
        finally:
            structlog.contextvars.unbind_contextvars("conversation_id")

    @staticmethod
    def _in_flight_setter(session: ConversationSession) -> Callable[[str], Awaitable[None]]:
        async def remember(message_ref: str) -> None:
            await session.mutate(lambda c: setattr(c, "in_flight_message_id", message_ref))
        return remember

    async def _run_turn(
        self,
        session: ConversationSession,
        text: str,
        attachment_path: str | None,
        display: DisplayChannel
    ) -> TurnResult:
        conversation = await session.snapshot()
        turn = _Turn(conversation, [])
        turn_id = uuid4().hex[:12]
        logger.info("turn_started", turn_id=turn_id, model=conversation.model_name)

        try:
            turn.entries = await self._store.load_history(conversation.id)
            user_entry = HistoryEntry(
                conversation_id=conversation.id,
                role=Role.USER,
                content=text,
                attachment_path=attachment_path,
                attachment_name=Path(attachment_path).name if attachment_path else None,
            )
            await self._append(turn, user_entry)

            model = self._catalog.get(conversation.model_name)
            adapter = self._resolve_adapter(model)
            options = self._send_options(conversation, model)

            for _ in range(self.max_iterations):
                turn.state = TurnState.STREAMING
                started = time.perf_counter()
                result = await self._stream(turn, adapter, options, display)
                elapsed_ms = int((time.perf_counter() - started) * 1000)

                if result.failed:
                    return await self._fail(session, turn, display, result.error, partial=result.text)

                if not result.tool_calls:
                    return await self._finalize(session, turn, display, model, result, elapsed_ms)

                turn.state = TurnState.TOOL_EXECUTING
                await self._append(turn, self._assistant_entry(turn, model, result, elapsed_ms))
                await self._run_tools(turn, result.tool_calls, display)

            return await self._fail(session, turn, display, IterationLimitExceededError(self.max_iterations))

        except ParleyError as e:
            return await self._fail(session, turn, display, e)
        except Exception as e:
            logger.exception("turn_crashed", state=turn.state.value)
            return await self._fail(
                session, turn, display,
                ParleyError(f"Unexpected error: {type(e).__name__}: {e}")
            )

    def _resolve_adapter(self, model: ProviderModel) -> ProviderAdapter:
        try:
            return self._catalog.adapter_for(model)
        except (TypeError, ValueError) as e:
            raise ProviderUnavailableError(f"Provider '{model.provider}' is not configured: {e}") from e

    def _send_options(self, conversation: Conversation, model: ProviderModel) -> SendOptions:
        return SendOptions(
            model=model.model_id,
            temperature=conversation.temperature,
            max_output_tokens=self._settings.max_output_tokens,
            system_prompt=conversation.system_prompt(),
            tools=self._tools.schemas(conversation.enabled_tools),
            user=conversation.user_id,
            search_tool=model.search_tool,
            reasoning=model.reasoning,
            stream=conversation.stream,
        )

    async def _stream(
        self,
        turn: _Turn,
        adapter: ProviderAdapter,
        options: SendOptions,
        display: DisplayChannel
    ) -> StreamResult:
        turn.iterations += 1
        history = self._window.select(turn.conversation, turn.entries)
        logger.info(
            "provider_call",
            model=options.model,
            iteration=turn.iterations,
            history=len(history),
        )

        aggregator = StreamAggregator(self._settings.progress_every, on_progress=display.progress)
        result = await aggregator.consume(adapter.send(history, options))
        if result.usage is not None:
            turn.usage = turn.usage + result.usage
        return result

    async def _run_tools(
        self,
        turn: _Turn,
        calls: list[ToolCallRequest],
        display: DisplayChannel
    ) -> None:
        for call in calls:
            try:
                summary = self._tools.resolve(call.name).summarize_arguments(call.arguments)
            except ToolNotFoundError:
                summary = call.arguments
            await display.tool_started(call.name, summary)

            tool_result = await self._tools.dispatch(call)
            logger.info(
                "tool_call_finished",
                tool=call.name,
                iteration=turn.iterations,
                error=tool_result.error,
            )
            await self._append(turn, HistoryEntry(
                conversation_id=turn.conversation.id,
                role=Role.TOOL,
                tool_call_id=call.id,
                content=tool_result.content,
            ))

    def _assistant_entry(
        self,
        turn: _Turn,
        model: ProviderModel,
        result: StreamResult,
        elapsed_ms: int
    ) -> HistoryEntry:
        return HistoryEntry(
            conversation_id=turn.conversation.id,
            role=Role.ASSISTANT,
            content=result.text or None,
            tool_calls=result.tool_calls,
            model_used=model.name,
            input_tokens=result.usage.input_tokens if result.usage else None,
            output_tokens=result.usage.output_tokens if result.usage else None,
            response_time_ms=elapsed_ms,
            finish_reason=result.finish_reason,
        )

    async def _append(self, turn: _Turn, entry: HistoryEntry) -> None:
        await self._store.append_entry(turn.conversation.id, entry)
        turn.entries.append(entry)

    async def _finalize(
        self,
        session: ConversationSession,
        turn: _Turn,
        display: DisplayChannel,
        model: ProviderModel,
        result: StreamResult,
        elapsed_ms: int
    ) -> TurnResult:
        turn.state = TurnState.FINALIZING
        await self._append(turn, self._assistant_entry(turn, model, result, elapsed_ms))
        # The answer is persisted, a counter write failure must not fail the turn
        await self._record_usage(session, turn)
        await display.final(result.text)

        await self._maintain_history(session, turn)

        turn.state = TurnState.DONE
        logger.info(
            "turn_completed",
            iterations=turn.iterations,
            input_tokens=turn.usage.input_tokens,
            output_tokens=turn.usage.output_tokens,
        )
        return TurnResult(
            state=TurnState.DONE,
            text=result.text,
            iterations=turn.iterations,
            usage=turn.usage,
        )

    @staticmethod
    async def _record_usage(session: ConversationSession, turn: _Turn) -> None:
        """Add the turn's usage to the counters at most once; failures are logged."""
        if turn.usage_recorded or not turn.usage.total_tokens:
            return
        try:
            await session.mutate(lambda c: c.add_usage(turn.usage))
        except Exception:
            logger.exception("usage_update_failed", tokens=turn.usage.total_tokens)
            return
        turn.usage_recorded = True

    async def _maintain_history(self, session: ConversationSession, turn: _Turn) -> None:
        """Prune and, when the live set overflows, summarize.

        Runs after the answer is delivered; failures are logged only.
        """
        try:
            turn.entries = await self._window.prune(turn.conversation, turn.entries)
            if self._window.needs_summary(turn.conversation, turn.entries):
                turn.entries, usage = await self._window.summarize(turn.conversation, turn.entries)
                if usage is not None:
                    await session.mutate(lambda c: c.add_usage(usage))
        except Exception:
            logger.exception("history_maintenance_failed")

    async def _fail(
        self,
        session: ConversationSession,
        turn: _Turn,
        display: DisplayChannel,
        error: ParleyError,
        partial: str = ""
    ) -> TurnResult:
        previous = turn.state
        turn.state = TurnState.FAILED
        logger.warning(
            "turn_failed",
            state=previous.value,
            iterations=turn.iterations,
            error_code=error.code,
            error=str(error),
        )

        await self._record_usage(session, turn)
        # Partial text is shown but never persisted
        if partial and self._settings.show_partial_on_error:
            await display.progress(partial)
        await display.error(error)

        return TurnResult(
            state=TurnState.FAILED,
            text=partial,
            error=error,
            iterations=turn.iterations,
            usage=turn.usage,
        )

"""Pytest configuration and shared fixtures."""
import asyncio
import os
from datetime import timedelta
from typing import Any

import pytest

from parley.config import Settings
from parley.context import ContextWindowManager, ModelSummarizer
from parley.errors import ParleyError
from parley.llm import ModelCatalog, ProviderAdapter, SendOptions
from parley.memory import HistoryEntry, Role
from parley.memory.in_memory import InMemoryConversationStore
from parley.memory.models import utcnow
from parley.orchestrator import AnswerOrchestrator, NullCallbacks
from parley.tools import BaseTool, ToolRegistry

# Placed in a script to make the call stall until the adapter deadline
HANG = object()


class ScriptedAdapter(ProviderAdapter):
    """Adapter replaying one scripted event list per call.

    Script items are yielded in order; exceptions are raised and ``HANG``
    blocks forever. ``default`` is replayed once the queue is empty.
    """

    def __init__(
        self,
        scripts: list[list[Any]] | None = None,
        default: list[Any] | None = None,
        timeout: float = 5.0
    ):
        super().__init__(timeout=timeout)
        self._scripts = list(scripts or [])
        self._default = default
        self.calls: list[tuple[list[HistoryEntry], SendOptions]] = []
        self.closed = False

    def queue(self, *events: Any) -> None:
        self._scripts.append(list(events))

    async def _events(self, history, options):
        self.calls.append(([entry.model_copy() for entry in history], options))
        if self._scripts:
            script = self._scripts.pop(0)
        elif self._default is not None:
            script = self._default
        else:
            raise AssertionError("No scripted response left")

        for item in script:
            if item is HANG:
                await asyncio.sleep(3600)
            elif isinstance(item, BaseException):
                raise item
            else:
                yield item

    async def close(self) -> None:
        self.closed = True


class LookupTool(BaseTool):
    """Answers every query with the same fact."""

    def __init__(self, answer: str = "42"):
        self.answer = answer
        self.received: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return "lookup"

    @property
    def description(self) -> str:
        return "Look up a fact"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"query": {"type": "string"}},
            "required": ["query"]
        }

    async def execute(self, params: dict[str, Any]) -> str:
        self.received.append(params)
        return self.answer


class ExplodingTool(BaseTool):
    @property
    def name(self) -> str:
        return "explode"

    @property
    def description(self) -> str:
        return "Always fails"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, params: dict[str, Any]) -> str:
        raise RuntimeError("boom")


class SlowTool(BaseTool):
    @property
    def name(self) -> str:
        return "slow"

    @property
    def description(self) -> str:
        return "Never finishes in time"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, params: dict[str, Any]) -> str:
        await asyncio.sleep(3600)
        return "too late"


class RecordingCallbacks(NullCallbacks):
    """Transport that records every update it receives."""

    def __init__(self, message_ref: str | None = "msg-1"):
        self.events: list[tuple[Any, ...]] = []
        self._message_ref = message_ref

    async def on_progress(self, text: str) -> str | None:
        self.events.append(("progress", text))
        return self._message_ref

    async def on_tool_started(self, name: str, args_summary: str) -> None:
        self.events.append(("tool", name, args_summary))

    async def on_final(self, text: str) -> None:
        self.events.append(("final", text))

    async def on_error(self, error: ParleyError) -> None:
        self.events.append(("error", error))

    def of_kind(self, kind: str) -> list[tuple[Any, ...]]:
        return [event for event in self.events if event[0] == kind]


@pytest.fixture(scope="session")
def api_keys():
    """Return API keys from environment."""
    return {
        "openai": os.getenv("OPENAI_API_KEY"),
        "anthropic": os.getenv("ANTHROPIC_API_KEY"),
        "gemini": os.getenv("GEMINI_API_KEY"),
    }


@pytest.fixture
def settings():
    """Settings with short deadlines and frequent progress updates."""
    return Settings(
        default_model="gpt-4o-mini",
        summary_model="gpt-4o-mini",
        provider_timeout=5.0,
        tool_timeout=0.5,
        progress_every=2,
    )


@pytest.fixture
def store():
    return InMemoryConversationStore()


@pytest.fixture
def adapter():
    return ScriptedAdapter()


@pytest.fixture
def catalog(settings, adapter):
    """Catalog whose OpenAI chat protocol is served by the scripted adapter."""
    catalog = ModelCatalog(settings)
    catalog.register_adapter("openai", adapter)
    return catalog


@pytest.fixture
def lookup_tool():
    return LookupTool()


@pytest.fixture
def registry(settings, lookup_tool):
    return ToolRegistry([lookup_tool, ExplodingTool(), SlowTool()], timeout=settings.tool_timeout)


@pytest.fixture
def window(settings, store, catalog):
    summarizer = ModelSummarizer(catalog, settings.summary_model, timeout=settings.summary_timeout)
    return ContextWindowManager(store, summarizer, keep_recent=settings.keep_recent)


@pytest.fixture
def orchestrator(store, catalog, registry, window, settings):
    return AnswerOrchestrator(store, catalog, registry, window, settings)


@pytest.fixture
async def conversation(orchestrator):
    """A stored conversation using the scripted model."""
    return await orchestrator.create_conversation(model_name="gpt-4o-mini")


@pytest.fixture
def callbacks():
    return RecordingCallbacks()


@pytest.fixture
def make_entry():
    """Build history entries spaced one minute apart, oldest first."""
    base = utcnow() - timedelta(hours=1)

    def _make(conversation_id: str, index: int, role: Role = Role.USER, **fields: Any) -> HistoryEntry:
        fields.setdefault("content", f"entry {index}")
        return HistoryEntry(
            conversation_id=conversation_id,
            role=role,
            created_at=base + timedelta(minutes=index),
            **fields
        )

    return _make

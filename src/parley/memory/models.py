"""Data models for conversations and their history.

These models define the structure of a conversation thread and its
entries, independent of the storage backend used.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(UTC)


class Role(str, Enum):
    """Author of a history entry."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class EntryType(str, Enum):
    """Kind of history entry."""

    NORMAL = "normal"
    SUMMARY = "summary"
    SYSTEM = "system"


class ToolCallRequest(BaseModel):
    """A tool invocation requested by the model.

    The arguments are kept as the raw JSON text the provider produced;
    interpreting them is the tool's job.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Provider-assigned tool call identifier")
    name: str = Field(description="Name of the tool to invoke")
    arguments: str = Field(default="{}", description="Raw JSON argument payload")


class HistoryEntry(BaseModel):
    """One turn in a conversation.

    ``id`` stays ``None`` until the entry has been written to a store.
    """

    id: int | None = Field(default=None, description="Persisted identifier")
    conversation_id: str
    role: Role
    content: str | None = None
    tool_call_id: str | None = Field(
        default=None,
        description="Identifier of the tool call this entry answers (tool role only)"
    )
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
    attachment_path: str | None = None
    attachment_name: str | None = None
    live: bool = Field(default=True, description="Whether the entry is sent to the model")
    entry_type: EntryType = EntryType.NORMAL
    created_at: datetime = Field(default_factory=utcnow)

    input_tokens: int | None = None
    output_tokens: int | None = None
    model_used: str | None = None
    response_time_ms: int | None = None
    finish_reason: str | None = None

    @model_validator(mode="after")
    def _tool_entries_reference_a_call(self) -> "HistoryEntry":
        if self.role == Role.TOOL and not self.tool_call_id:
            raise ValueError("tool entries require a tool_call_id")
        return self

    @property
    def persisted(self) -> bool:
        return self.id is not None

    @property
    def sort_key(self) -> tuple[datetime, float]:
        """Ordering key: creation time, then persisted id.

        Unsaved entries sort after saved ones sharing a timestamp.
        """
        return (self.created_at, self.id if self.id is not None else float("inf"))


class Usage(BaseModel):
    """Token usage reported by a provider for one call."""

    model_config = ConfigDict(frozen=True)

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


class Conversation(BaseModel):
    """A persistent thread between one user and the assistant.

    Holds the per-thread model configuration and the cumulative token
    counters. History entries are stored separately.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str = Field(default="local")
    title: str | None = None
    model_name: str = Field(default="gpt-4o-mini")
    temperature: float = Field(default=0.8, ge=0.0, le=2.0)
    master_prompt: str = Field(default="You are a helpful assistant.")
    role_name: str | None = Field(default=None, description="Named role overriding the master prompt")
    role_prompt: str | None = None
    lang: str = Field(default="en", description="Language used for summaries")
    retention_days: int = Field(default=30, ge=0, description="Conversation age window in days")
    context_limit: int = Field(default=100, ge=1, description="Maximum live entries before summarizing")
    stream: bool = True
    enabled_tools: list[str] | None = Field(
        default=None,
        description="Tool names offered to the model (None offers every registered tool)"
    )

    total_tokens: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    in_flight_message_id: str | None = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def system_prompt(self) -> str:
        """Resolve the prompt sent as system instructions."""
        if self.role_prompt:
            return self.role_prompt
        return self.master_prompt

    def add_usage(self, usage: Usage) -> None:
        self.total_input_tokens += usage.input_tokens
        self.total_output_tokens += usage.output_tokens
        self.total_tokens += usage.total_tokens
        self.updated_at = utcnow()

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ParleyError
from ..memory.models import ToolCallRequest, Usage

ProviderFamily = Literal["openai", "anthropic", "gemini", "aws", "local"]


class ProviderModel(BaseModel):
    """Static description of a model a conversation can select."""

    model_config = ConfigDict(frozen=True)

    model_id: str = Field(description="Identifier sent to the provider API")
    name: str = Field(description="Human name used for lookup and display")
    provider: ProviderFamily = Field(description="Provider family serving this model")
    search_tool: str | None = Field(
        default=None,
        description="Provider built-in search tool type, e.g. 'web_search_preview'"
    )
    reasoning: bool = Field(default=False, description="Reasoning model (temperature unsupported)")
    responses_api: bool = Field(
        default=False,
        description="Use the server-sent-event Responses protocol instead of chat completions"
    )


class ToolSchema(BaseModel):
    """JSON-schema declaration of a tool offered to the model."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


class SendOptions(BaseModel):
    """Per-call options for a provider adapter."""

    model: str
    temperature: float = 0.8
    max_output_tokens: int = 4000
    system_prompt: str | None = None
    tools: list[ToolSchema] = Field(default_factory=list)
    user: str | None = None
    search_tool: str | None = None
    reasoning: bool = False
    stream: bool = True


class TextDelta(BaseModel):
    """A fragment of generated text."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text_delta"] = "text_delta"
    text: str


class ToolCallRequested(BaseModel):
    """A complete tool call request from the model."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tool_call"] = "tool_call"
    id: str
    name: str
    arguments: str = "{}"

    def to_request(self) -> ToolCallRequest:
        return ToolCallRequest(id=self.id, name=self.name, arguments=self.arguments)


class UsageReported(BaseModel):
    """Token usage for the call, usually at the end of the stream."""

    model_config = ConfigDict(frozen=True)

    type: Literal["usage"] = "usage"
    usage: Usage


class Done(BaseModel):
    """Clean end of the stream."""

    model_config = ConfigDict(frozen=True)

    type: Literal["done"] = "done"
    finish_reason: str | None = None


class Failed(BaseModel):
    """Terminal failure. No events follow."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type: Literal["failed"] = "failed"
    error: ParleyError


StreamEvent = TextDelta | ToolCallRequested | UsageReported | Done | Failed

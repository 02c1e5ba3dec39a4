from .base import DEFAULT_PROVIDER_TIMEOUT, ProviderAdapter, ToolCallBuffer
from .catalog import ModelCatalog
from .factory import create_provider_adapter
from .models import (
    Done,
    Failed,
    ProviderModel,
    SendOptions,
    StreamEvent,
    TextDelta,
    ToolCallRequested,
    ToolSchema,
    UsageReported,
)
from .providers import (
    AnthropicAdapter,
    BedrockAdapter,
    GeminiAdapter,
    LocalAdapter,
    OpenAIChatAdapter,
    OpenAIResponsesAdapter,
)

__all__ = [
    "DEFAULT_PROVIDER_TIMEOUT",
    "ProviderAdapter",
    "ToolCallBuffer",
    "ModelCatalog",
    "create_provider_adapter",
    "Done",
    "Failed",
    "ProviderModel",
    "SendOptions",
    "StreamEvent",
    "TextDelta",
    "ToolCallRequested",
    "ToolSchema",
    "UsageReported",
    "AnthropicAdapter",
    "BedrockAdapter",
    "GeminiAdapter",
    "LocalAdapter",
    "OpenAIChatAdapter",
    "OpenAIResponsesAdapter",
]

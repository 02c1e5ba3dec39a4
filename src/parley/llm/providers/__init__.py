from .anthropic import AnthropicAdapter
from .compatible import BedrockAdapter, LocalAdapter
from .gemini import GeminiAdapter
from .openai import OpenAIChatAdapter, OpenAIResponsesAdapter

__all__ = [
    "AnthropicAdapter",
    "BedrockAdapter",
    "GeminiAdapter",
    "LocalAdapter",
    "OpenAIChatAdapter",
    "OpenAIResponsesAdapter",
]

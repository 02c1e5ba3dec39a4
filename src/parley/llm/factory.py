from typing import Any

from .base import ProviderAdapter
from .providers import (
    AnthropicAdapter,
    BedrockAdapter,
    GeminiAdapter,
    LocalAdapter,
    OpenAIChatAdapter,
    OpenAIResponsesAdapter,
)

SUPPORTED_PROVIDERS = ("openai", "openai_responses", "anthropic", "gemini", "aws", "local")


def create_provider_adapter(provider: str, **config: Any) -> ProviderAdapter:
    """Create a provider adapter instance.

    This factory function hides the instantiation logic for different providers.

    Args:
        provider: Provider type ('openai', 'openai_responses', 'anthropic',
            'gemini', 'aws', 'local')
        **config: Provider-specific configuration
            For OpenAI (chat completions or responses):
                - api_key: str (required)
                - base_url: str | None
                - organization: str | None
            For Anthropic (Claude):
                - api_key: str (required)
                - base_url: str | None
            For Gemini:
                - api_key: str (required)
            For AWS Bedrock:
                - api_key: str (required)
                - region: str (default: 'us-east-1')
            For local servers:
                - base_url: str (default: 'http://localhost:11434/v1')
            All providers accept timeout: float (default: 300)

    Returns:
        Initialized provider adapter instance

    Raises:
        ValueError: If provider type is not supported
        TypeError: If required configuration is missing

    Examples:
        >>> adapter = create_provider_adapter("anthropic", api_key="sk-ant-...")

        >>> adapter = create_provider_adapter("local", base_url="http://localhost:1234/v1")
    """
    provider_lower = provider.lower()

    if provider_lower == "openai":
        if not config.get("api_key"):
            raise TypeError("OpenAI provider requires 'api_key' in config")
        return OpenAIChatAdapter(**config)

    if provider_lower == "openai_responses":
        if not config.get("api_key"):
            raise TypeError("OpenAI provider requires 'api_key' in config")
        return OpenAIResponsesAdapter(**config)

    if provider_lower in ("anthropic", "claude"):
        if not config.get("api_key"):
            raise TypeError("Anthropic provider requires 'api_key' in config")
        return AnthropicAdapter(**config)

    if provider_lower == "gemini":
        if not config.get("api_key"):
            raise TypeError("Gemini provider requires 'api_key' in config")
        return GeminiAdapter(**config)

    if provider_lower in ("aws", "bedrock"):
        if not config.get("api_key"):
            raise TypeError("AWS provider requires 'api_key' in config")
        return BedrockAdapter(**config)

    if provider_lower == "local":
        return LocalAdapter(**config)

    raise ValueError(
        f"Unsupported provider: {provider}. "
        f"Supported providers: {', '.join(repr(p) for p in SUPPORTED_PROVIDERS)}"
    )

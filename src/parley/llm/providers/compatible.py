"""OpenAI-compatible provider families.

Local inference servers and AWS Bedrock both expose the chat completions
protocol, so they reuse the OpenAI adapter with different endpoints.
"""

from typing import Any

from ..base import DEFAULT_PROVIDER_TIMEOUT
from .openai import OpenAIChatAdapter

DEFAULT_LOCAL_URL = "http://localhost:11434/v1"
DEFAULT_AWS_REGION = "us-east-1"


class LocalAdapter(OpenAIChatAdapter):
    """Local inference server adapter (Ollama, LM Studio, vLLM).

    Hidden design decisions:
    - OpenAI-compatible endpoint on localhost by default
    - Placeholder API key, since local servers ignore authentication
    """

    def __init__(
        self,
        base_url: str = DEFAULT_LOCAL_URL,
        api_key: str = "local",
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
        **client_kwargs: Any
    ):
        """Initialize local adapter.

        Args:
            base_url: Server base URL (default: http://localhost:11434/v1)
            api_key: Ignored by most local servers
            timeout: Deadline in seconds for one call
            **client_kwargs: Additional kwargs for AsyncOpenAI client
        """
        super().__init__(api_key=api_key, base_url=base_url, timeout=timeout, **client_kwargs)


class BedrockAdapter(OpenAIChatAdapter):
    """AWS Bedrock adapter using the OpenAI-compatible runtime endpoint.

    Hidden design decisions:
    - Endpoint derived from the AWS region
    - Bedrock API key passed as a bearer token
    """

    def __init__(
        self,
        api_key: str,
        region: str = DEFAULT_AWS_REGION,
        base_url: str | None = None,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
        **client_kwargs: Any
    ):
        """Initialize Bedrock adapter.

        Args:
            api_key: Bedrock API key
            region: AWS region hosting the models (default: us-east-1)
            base_url: Override for the derived endpoint
            timeout: Deadline in seconds for one call
            **client_kwargs: Additional kwargs for AsyncOpenAI client
        """
        self._region = region
        super().__init__(
            api_key=api_key,
            base_url=base_url or bedrock_endpoint(region),
            timeout=timeout,
            **client_kwargs
        )

    @property
    def region(self) -> str:
        return self._region


def bedrock_endpoint(region: str) -> str:
    return f"https://bedrock-runtime.{region}.amazonaws.com/openai/v1"

"""Error taxonomy shared by adapters, tools and the orchestrator.

Every error carries a stable ``code`` so the transport layer can choose
a message without parsing text.
"""


class ParleyError(Exception):
    """Base class for all errors raised by parley."""

    code = "error"


class ProviderError(ParleyError):
    """A language-model provider could not produce an answer."""

    code = "provider_error"


class ProviderUnavailableError(ProviderError):
    """Network, authentication or server failure talking to a provider."""

    code = "provider_unavailable"


class ProviderTimeoutError(ProviderError):
    """The provider did not finish before the turn deadline."""

    code = "provider_timeout"

    def __init__(self, timeout: float, message: str | None = None):
        self.timeout = timeout
        super().__init__(message or f"Provider timed out after {timeout:g}s")


class ToolError(ParleyError):
    """Base class for tool resolution and execution failures."""

    code = "tool_error"


class ToolNotFoundError(ToolError):
    code = "tool_not_found"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tool '{name}' not found")


class MalformedToolCallError(ToolError):
    """Tool-call arguments that are not a complete JSON object."""

    code = "malformed_tool_call"


class ToolExecutionError(ToolError):
    code = "tool_execution_failed"


class SummarizationFailedError(ParleyError):
    """History summarization failed. Never fatal to a turn."""

    code = "summarization_failed"


class IterationLimitExceededError(ParleyError):
    """The tool-call loop did not converge on a final answer."""

    code = "iteration_limit_exceeded"

    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations
        super().__init__(
            f"Stopped after {max_iterations} tool-call rounds without a final answer"
        )


class ConversationNotFoundError(ParleyError):
    code = "conversation_not_found"

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation '{conversation_id}' not found")

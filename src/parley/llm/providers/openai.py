"""OpenAI provider adapters.

Two protocols are spoken through the official OpenAI SDK:
- Chat Completions, streamed chunk by chunk or as one buffered response
- Responses API, streamed as server-sent events
Reference: https://github.com/openai/openai-python
"""

from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

import openai
import structlog
from openai import AsyncOpenAI

from ...errors import ParleyError, ProviderTimeoutError, ProviderUnavailableError
from ...memory.models import HistoryEntry, Role, Usage
from ..attachments import data_url, load_attachment
from ..base import DEFAULT_PROVIDER_TIMEOUT, ProviderAdapter, ToolCallBuffer
from ..models import Done, SendOptions, StreamEvent, TextDelta, ToolSchema, UsageReported

logger = structlog.get_logger(__name__)


def _translate_openai_error(exc: BaseException, timeout: float) -> ParleyError | None:
    """Map OpenAI SDK exceptions; None when the exception is not the SDK's."""
    if isinstance(exc, openai.APITimeoutError):
        return ProviderTimeoutError(timeout, f"Provider request timed out: {exc}")
    if isinstance(exc, openai.APIStatusError):
        return ProviderUnavailableError(f"Provider returned HTTP {exc.status_code}: {exc.message}")
    if isinstance(exc, openai.APIConnectionError):
        return ProviderUnavailableError(f"Could not reach provider: {exc}")
    return None


def _user_content(entry: HistoryEntry, text_type: str, image_type: str) -> str | list[dict[str, Any]]:
    """Build user content, adding an inline image when one is attached."""
    attachment = load_attachment(entry)
    if attachment is None or not attachment[0].startswith("image/"):
        return entry.content or ""
    media_type, data = attachment
    image_part: dict[str, Any]
    if image_type == "image_url":
        image_part = {"type": "image_url", "image_url": {"url": data_url(media_type, data)}}
    else:
        image_part = {"type": image_type, "image_url": data_url(media_type, data)}
    return [{"type": text_type, "text": entry.content or ""}, image_part]


def _history_to_chat_messages(
    history: list[HistoryEntry],
    system_prompt: str | None
) -> list[dict[str, Any]]:
    """Convert history entries to Chat Completions messages."""
    messages: list[dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})

    for entry in history:
        if entry.role == Role.TOOL:
            messages.append({
                "role": "tool",
                "tool_call_id": entry.tool_call_id,
                "content": entry.content or ""
            })
        elif entry.role == Role.ASSISTANT and entry.tool_calls:
            messages.append({
                "role": "assistant",
                "content": entry.content or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": call.arguments}
                    }
                    for call in entry.tool_calls
                ]
            })
        elif entry.role == Role.USER:
            messages.append({"role": "user", "content": _user_content(entry, "text", "image_url")})
        else:
            messages.append({"role": entry.role.value, "content": entry.content or ""})

    return messages


def _chat_tools(tools: list[ToolSchema]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters
            }
        }
        for tool in tools
    ]


def _history_to_responses_input(history: list[HistoryEntry]) -> list[dict[str, Any]]:
    """Convert history entries to Responses API input items.

    System entries are dropped since instructions carry the system prompt.
    Tool calls and their results become function_call and
    function_call_output items linked by call id.
    """
    items: list[dict[str, Any]] = []

    for entry in history:
        if entry.role == Role.SYSTEM:
            continue
        if entry.role == Role.TOOL:
            items.append({
                "type": "function_call_output",
                "call_id": entry.tool_call_id,
                "output": entry.content or ""
            })
            continue
        if entry.role == Role.USER:
            items.append({
                "role": "user",
                "content": _user_content(entry, "input_text", "input_image")
            })
            continue

        if entry.content:
            items.append({"role": "assistant", "content": entry.content})
        for call in entry.tool_calls:
            items.append({
                "type": "function_call",
                "call_id": call.id,
                "name": call.name,
                "arguments": call.arguments
            })

    return items


class OpenAIChatAdapter(ProviderAdapter):
    """OpenAI Chat Completions adapter.

    Hidden design decisions:
    - OpenAI API client initialization
    - Message format conversion (tool calls, tool results, images)
    - Reassembly of tool-call arguments streamed per index
    - Buffered single-shot mode when streaming is disabled
    """

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        organization: str | None = None,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
        **client_kwargs: Any
    ):
        """Initialize the adapter.

        Args:
            api_key: API key
            base_url: Optional custom API base URL (OpenAI-compatible servers)
            organization: Optional organization ID
            timeout: Deadline in seconds for one call
            **client_kwargs: Additional kwargs for AsyncOpenAI client
        """
        super().__init__(timeout=timeout)
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            organization=organization,
            timeout=timeout,
            **client_kwargs
        )

    def _translate_error(self, exc: BaseException) -> ParleyError:
        return _translate_openai_error(exc, self._timeout) or super()._translate_error(exc)

    def _request_params(self, history: list[HistoryEntry], options: SendOptions) -> dict[str, Any]:
        request_params: dict[str, Any] = {
            "model": options.model,
            "messages": _history_to_chat_messages(history, options.system_prompt),
        }
        # Reasoning models reject max_tokens and temperature
        if options.reasoning:
            request_params["max_completion_tokens"] = options.max_output_tokens
        else:
            request_params["max_tokens"] = options.max_output_tokens
            request_params["temperature"] = options.temperature
        if options.tools:
            request_params["tools"] = _chat_tools(options.tools)
            request_params["tool_choice"] = "auto"
        if options.user:
            request_params["user"] = options.user
        return request_params

    async def _events(
        self,
        history: list[HistoryEntry],
        options: SendOptions
    ) -> AsyncIterator[StreamEvent]:
        request_params = self._request_params(history, options)

        if not options.stream:
            async for event in self._single_shot(request_params):
                yield event
            return

        stream = await self._client.chat.completions.create(
            **request_params,
            stream=True,
            stream_options={"include_usage": True},
        )

        buffer = ToolCallBuffer()
        usage: Usage | None = None
        finish_reason: str | None = None

        async for chunk in stream:
            if chunk.usage is not None:
                usage = Usage(
                    input_tokens=chunk.usage.prompt_tokens or 0,
                    output_tokens=chunk.usage.completion_tokens or 0,
                )
            if not chunk.choices:
                continue

            choice = chunk.choices[0]
            delta = choice.delta
            if delta is not None:
                if delta.content:
                    yield TextDelta(text=delta.content)
                for call in delta.tool_calls or []:
                    function = call.function
                    buffer.update(
                        call.index,
                        call_id=call.id,
                        name=function.name if function else None,
                        fragment=function.arguments if function else None,
                    )
            if choice.finish_reason:
                finish_reason = choice.finish_reason

        for call in buffer.drain():
            yield call
        if usage is not None:
            yield UsageReported(usage=usage)
        yield Done(finish_reason=finish_reason)

    async def _single_shot(self, request_params: dict[str, Any]) -> AsyncIterator[StreamEvent]:
        """Non-streaming completion normalized into the same events."""
        completion = await self._client.chat.completions.create(**request_params)

        if not completion.choices:
            raise ProviderUnavailableError("No response from API.")

        choice = completion.choices[0]
        if choice.message.content:
            yield TextDelta(text=choice.message.content)

        buffer = ToolCallBuffer()
        for index, call in enumerate(choice.message.tool_calls or []):
            buffer.update(
                index,
                call_id=call.id,
                name=call.function.name,
                arguments=call.function.arguments,
            )
        for call in buffer.drain():
            yield call

        if completion.usage:
            yield UsageReported(usage=Usage(
                input_tokens=completion.usage.prompt_tokens or 0,
                output_tokens=completion.usage.completion_tokens or 0,
            ))
        yield Done(finish_reason=choice.finish_reason)

    async def close(self) -> None:
        """Close the OpenAI client.

        Note: Uses the OpenAI SDK's async context manager for proper cleanup.
        See: https://github.com/openai/openai-python#async-usage
        """
        await self._client.close()


class OpenAIResponsesAdapter(ProviderAdapter):
    """OpenAI Responses API adapter (server-sent events).

    Hidden design decisions:
    - Instructions built from the system prompt plus the current time
    - History conversion into input items
    - Function call arguments buffered per output item
    - Built-in search tool injection
    """

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        organization: str | None = None,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
        **client_kwargs: Any
    ):
        super().__init__(timeout=timeout)
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            organization=organization,
            timeout=timeout,
            **client_kwargs
        )

    def _translate_error(self, exc: BaseException) -> ParleyError:
        return _translate_openai_error(exc, self._timeout) or super()._translate_error(exc)

    def _request_params(self, history: list[HistoryEntry], options: SendOptions) -> dict[str, Any]:
        instructions = options.system_prompt or ""
        instructions += f"\n\nCurrent date and time: {datetime.now().astimezone().isoformat(timespec='seconds')}"

        request_params: dict[str, Any] = {
            "model": options.model,
            "input": _history_to_responses_input(history),
            "instructions": instructions.strip(),
            "max_output_tokens": options.max_output_tokens,
            "store": False,
            "stream": True,
        }
        # Note: temperature is rejected by reasoning models
        if not options.reasoning:
            request_params["temperature"] = options.temperature
        if options.user:
            request_params["user"] = options.user

        tools: list[dict[str, Any]] = [
            {
                "type": "function",
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters
            }
            for tool in options.tools
        ]
        if options.search_tool:
            tools.append({"type": options.search_tool})
        if tools:
            request_params["tools"] = tools

        return request_params

    async def _events(
        self,
        history: list[HistoryEntry],
        options: SendOptions
    ) -> AsyncIterator[StreamEvent]:
        stream = await self._client.responses.create(**self._request_params(history, options))

        buffer = ToolCallBuffer()
        usage: Usage | None = None
        finish_reason: str | None = None

        async for event in stream:
            event_type = getattr(event, "type", None)

            if event_type == "response.output_text.delta":
                if event.delta:
                    yield TextDelta(text=event.delta)

            elif event_type == "response.output_item.added":
                item = event.item
                if item.type == "function_call":
                    buffer.update(item.id, call_id=item.call_id, name=item.name)
                elif item.type == "web_search_call":
                    logger.info("builtin_search_started", model=options.model)

            elif event_type == "response.function_call_arguments.delta":
                if event.item_id in buffer:
                    buffer.update(event.item_id, fragment=event.delta)

            elif event_type == "response.output_item.done":
                item = event.item
                if item.type == "function_call":
                    buffer.update(
                        item.id,
                        call_id=item.call_id,
                        name=item.name,
                        arguments=item.arguments,
                    )
                    yield buffer.complete(item.id)

            elif event_type == "response.completed":
                response = event.response
                finish_reason = response.status
                if response.usage is not None:
                    usage = Usage(
                        input_tokens=response.usage.input_tokens or 0,
                        output_tokens=response.usage.output_tokens or 0,
                    )

            elif event_type == "response.incomplete":
                details = event.response.incomplete_details
                finish_reason = details.reason if details else "incomplete"

            elif event_type in ("response.failed", "error"):
                message = getattr(event, "message", None)
                if message is None and getattr(event, "response", None) is not None:
                    error = event.response.error
                    message = error.message if error else "response failed"
                raise ProviderUnavailableError(f"Provider stream error: {message}")

        for call in buffer.drain():
            yield call
        if usage is not None:
            yield UsageReported(usage=usage)
        yield Done(finish_reason=finish_reason)

    async def close(self) -> None:
        await self._client.close()

"""Anthropic Claude provider adapter.

Uses the official Anthropic Python SDK's streaming messages API.
Reference: https://github.com/anthropics/anthropic-sdk-python
"""

import json
from collections.abc import AsyncIterator
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from ...errors import ParleyError, ProviderTimeoutError, ProviderUnavailableError
from ...memory.models import EntryType, HistoryEntry, Role, Usage
from ..attachments import b64, load_attachment
from ..base import DEFAULT_PROVIDER_TIMEOUT, ProviderAdapter, ToolCallBuffer
from ..models import Done, SendOptions, StreamEvent, TextDelta, UsageReported


def _user_blocks(entry: HistoryEntry) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    attachment = load_attachment(entry)
    if attachment is not None:
        media_type, data = attachment
        if media_type.startswith("image/"):
            blocks.append({
                "type": "image",
                "source": {"type": "base64", "media_type": media_type, "data": b64(data)}
            })
        elif media_type == "application/pdf":
            blocks.append({
                "type": "document",
                "source": {"type": "base64", "media_type": media_type, "data": b64(data)}
            })
    blocks.append({"type": "text", "text": entry.content or ""})
    return blocks


def _history_to_anthropic_messages(history: list[HistoryEntry]) -> list[dict[str, Any]]:
    """Convert history entries to Anthropic messages.

    Tool results travel as ``tool_result`` blocks in a user message.
    Consecutive messages with the same role are merged because the
    Messages API requires alternating roles.
    """
    messages: list[dict[str, Any]] = []

    for entry in history:
        if entry.entry_type == EntryType.SUMMARY:
            # Sent as user context so the thread may still open with a user turn
            role = "user"
            blocks = [{"type": "text", "text": f"[Conversation summary]\n{entry.content or ''}"}]
        elif entry.role == Role.TOOL:
            role = "user"
            blocks = [{
                "type": "tool_result",
                "tool_use_id": entry.tool_call_id,
                "content": entry.content or ""
            }]
        elif entry.role == Role.ASSISTANT:
            role = "assistant"
            blocks = []
            if entry.content:
                blocks.append({"type": "text", "text": entry.content})
            for call in entry.tool_calls:
                blocks.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": json.loads(call.arguments or "{}")
                })
            if not blocks:
                continue
        else:
            role = "user"
            blocks = _user_blocks(entry)

        if messages and messages[-1]["role"] == role:
            messages[-1]["content"].extend(blocks)
        else:
            messages.append({"role": role, "content": blocks})

    return messages


class AnthropicAdapter(ProviderAdapter):
    """Anthropic Claude provider adapter.

    Hidden design decisions:
    - Anthropic API client initialization
    - Message format conversion (system prompt, tool_use/tool_result blocks)
    - Tool input JSON reassembled per content block
    - Temperature clamped to the provider range
    """

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
        **client_kwargs: Any
    ):
        """Initialize Anthropic adapter.

        Args:
            api_key: Anthropic API key
            base_url: Optional custom API base URL
            timeout: Deadline in seconds for one call
            **client_kwargs: Additional kwargs for AsyncAnthropic client
        """
        super().__init__(timeout=timeout)
        self._client = AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            **client_kwargs
        )

    def _translate_error(self, exc: BaseException) -> ParleyError:
        if isinstance(exc, anthropic.APITimeoutError):
            return ProviderTimeoutError(self._timeout, f"Provider request timed out: {exc}")
        if isinstance(exc, anthropic.APIStatusError):
            return ProviderUnavailableError(f"Provider returned HTTP {exc.status_code}: {exc.message}")
        if isinstance(exc, anthropic.APIConnectionError):
            return ProviderUnavailableError(f"Could not reach provider: {exc}")
        return super()._translate_error(exc)

    def _request_params(self, history: list[HistoryEntry], options: SendOptions) -> dict[str, Any]:
        request_params: dict[str, Any] = {
            "model": options.model,
            "messages": _history_to_anthropic_messages(history),
            "max_tokens": options.max_output_tokens,  # Anthropic requires max_tokens
        }
        if not options.reasoning:
            request_params["temperature"] = min(options.temperature, 1.0)
        if options.system_prompt:
            request_params["system"] = options.system_prompt

        tools: list[dict[str, Any]] = [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.parameters
            }
            for tool in options.tools
        ]
        if options.search_tool:
            tools.append({"type": options.search_tool, "name": "web_search", "max_uses": 5})
        if tools:
            request_params["tools"] = tools

        return request_params

    async def _events(
        self,
        history: list[HistoryEntry],
        options: SendOptions
    ) -> AsyncIterator[StreamEvent]:
        buffer = ToolCallBuffer()
        input_tokens = 0
        output_tokens = 0
        stop_reason: str | None = None

        async with self._client.messages.stream(**self._request_params(history, options)) as stream:
            async for event in stream:
                event_type = getattr(event, "type", None)

                # message_start contains input_tokens
                if event_type == "message_start":
                    input_tokens = event.message.usage.input_tokens or 0

                elif event_type == "content_block_start":
                    block = event.content_block
                    if block.type == "tool_use":
                        buffer.update(event.index, call_id=block.id, name=block.name)

                elif event_type == "content_block_delta":
                    delta = event.delta
                    if delta.type == "text_delta":
                        if delta.text:
                            yield TextDelta(text=delta.text)
                    elif delta.type == "input_json_delta" and event.index in buffer:
                        buffer.update(event.index, fragment=delta.partial_json)

                elif event_type == "content_block_stop":
                    if event.index in buffer:
                        yield buffer.complete(event.index)

                # message_delta contains output_tokens (cumulative)
                elif event_type == "message_delta":
                    if event.usage is not None:
                        output_tokens = event.usage.output_tokens or 0
                    stop_reason = event.delta.stop_reason or stop_reason

        for call in buffer.drain():
            yield call
        yield UsageReported(usage=Usage(input_tokens=input_tokens, output_tokens=output_tokens))
        yield Done(finish_reason=stop_reason)

    async def close(self) -> None:
        """Close the Anthropic client."""
        await self._client.close()

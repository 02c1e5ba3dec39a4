"""Google Gemini provider adapter.

Uses the official Google GenAI SDK for async streaming.
Reference: https://github.com/googleapis/python-genai

Note: Gemini delivers function calls whole rather than as argument
fragments, so no reassembly is needed here.
"""

import json
from collections.abc import AsyncIterator
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ...errors import ParleyError, ProviderUnavailableError
from ...memory.models import EntryType, HistoryEntry, Role, Usage
from ..attachments import load_attachment
from ..base import DEFAULT_PROVIDER_TIMEOUT, ProviderAdapter, ToolCallBuffer
from ..models import Done, SendOptions, StreamEvent, TextDelta, UsageReported

# Default safety settings - relaxed to avoid blocking tool output
DEFAULT_SAFETY_SETTINGS = [
    types.SafetySetting(category="HARM_CATEGORY_HARASSMENT", threshold="BLOCK_ONLY_HIGH"),
    types.SafetySetting(category="HARM_CATEGORY_HATE_SPEECH", threshold="BLOCK_ONLY_HIGH"),
    types.SafetySetting(category="HARM_CATEGORY_SEXUALLY_EXPLICIT", threshold="BLOCK_ONLY_HIGH"),
    types.SafetySetting(category="HARM_CATEGORY_DANGEROUS_CONTENT", threshold="BLOCK_ONLY_HIGH"),
]


class GeminiAdapter(ProviderAdapter):
    """Google Gemini provider adapter.

    Hidden design decisions:
    - Google GenAI client initialization
    - Message format conversion (model role, function call/response parts)
    - Tool results matched back to function names by call id
    - Relaxed safety settings
    """

    def __init__(
        self,
        api_key: str,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
        **client_kwargs: Any
    ):
        """Initialize Gemini adapter.

        Args:
            api_key: Google AI API key
            timeout: Deadline in seconds for one call
            **client_kwargs: Additional kwargs for Client
        """
        super().__init__(timeout=timeout)
        self._client = genai.Client(api_key=api_key, **client_kwargs)

    def _translate_error(self, exc: BaseException) -> ParleyError:
        if isinstance(exc, genai_errors.APIError):
            return ProviderUnavailableError(f"Provider returned HTTP {exc.code}: {exc.message}")
        return super()._translate_error(exc)

    def _convert_history(self, history: list[HistoryEntry]) -> list[types.Content]:
        """Convert history entries to Gemini contents."""
        contents: list[types.Content] = []
        call_names: dict[str, str] = {}

        for entry in history:
            if entry.role == Role.TOOL:
                name = call_names.get(entry.tool_call_id or "", entry.tool_call_id or "tool")
                part = types.Part.from_function_response(
                    name=name,
                    response={"result": entry.content or ""}
                )
                contents.append(types.Content(role="user", parts=[part]))

            elif entry.role == Role.ASSISTANT and entry.entry_type != EntryType.SUMMARY:
                parts: list[types.Part] = []
                if entry.content:
                    parts.append(types.Part(text=entry.content))
                for call in entry.tool_calls:
                    call_names[call.id] = call.name
                    parts.append(types.Part(function_call=types.FunctionCall(
                        id=call.id,
                        name=call.name,
                        args=json.loads(call.arguments or "{}")
                    )))
                if parts:
                    contents.append(types.Content(role="model", parts=parts))

            else:
                text = entry.content or ""
                if entry.entry_type == EntryType.SUMMARY:
                    text = f"[Conversation summary]\n{text}"
                parts = [types.Part(text=text)]
                attachment = load_attachment(entry)
                if attachment is not None:
                    media_type, data = attachment
                    parts.insert(0, types.Part.from_bytes(data=data, mime_type=media_type))
                contents.append(types.Content(role="user", parts=parts))

        return contents

    def _config(self, options: SendOptions) -> types.GenerateContentConfig:
        tools: list[types.Tool] = []
        if options.tools:
            tools.append(types.Tool(function_declarations=[
                types.FunctionDeclaration(
                    name=tool.name,
                    description=tool.description,
                    parameters=tool.parameters
                )
                for tool in options.tools
            ]))
        if options.search_tool:
            tools.append(types.Tool(google_search=types.GoogleSearch()))

        config = types.GenerateContentConfig(
            system_instruction=options.system_prompt,
            safety_settings=DEFAULT_SAFETY_SETTINGS,
            max_output_tokens=options.max_output_tokens,
            tools=tools or None,
            # Function calls are executed by the orchestrator, never by the SDK
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )
        if not options.reasoning:
            config.temperature = options.temperature
        return config

    async def _events(
        self,
        history: list[HistoryEntry],
        options: SendOptions
    ) -> AsyncIterator[StreamEvent]:
        buffer = ToolCallBuffer()
        usage: Usage | None = None
        finish_reason: str | None = None

        stream = await self._client.aio.models.generate_content_stream(
            model=options.model,
            contents=self._convert_history(history),
            config=self._config(options)
        )
        async for chunk in stream:
            # usage_metadata is cumulative; the last chunk wins
            if chunk.usage_metadata:
                usage = Usage(
                    input_tokens=chunk.usage_metadata.prompt_token_count or 0,
                    output_tokens=chunk.usage_metadata.candidates_token_count or 0,
                )
            if not chunk.candidates:
                continue

            candidate = chunk.candidates[0]
            if candidate.finish_reason:
                finish_reason = str(candidate.finish_reason.value).lower()
            if not candidate.content or not candidate.content.parts:
                continue

            for part in candidate.content.parts:
                if part.function_call is not None:
                    key = len(buffer)
                    buffer.update(
                        key,
                        call_id=part.function_call.id,
                        name=part.function_call.name,
                        arguments=json.dumps(part.function_call.args or {}),
                    )
                    yield buffer.complete(key)
                elif part.text and not part.thought:
                    yield TextDelta(text=part.text)

        if usage is not None:
            yield UsageReported(usage=usage)
        yield Done(finish_reason=finish_reason)

    async def close(self) -> None:
        """Close the Gemini client.

        Note: The Google GenAI client doesn't require explicit closing,
        but we implement this for interface consistency.
        """
        pass

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any
from uuid import uuid4

import structlog

from ..errors import (
    MalformedToolCallError,
    ParleyError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from ..memory.models import HistoryEntry
from .models import (
    Done,
    Failed,
    SendOptions,
    StreamEvent,
    TextDelta,
    ToolCallRequested,
    UsageReported,
)

logger = structlog.get_logger(__name__)

DEFAULT_PROVIDER_TIMEOUT = 300.0


class ProviderAdapter(ABC):
    """Abstract base class for provider adapters.

    This module hides the design decision of which provider protocol is
    spoken. Implementations must handle provider-specific details like:
    - API client setup and authentication
    - Request/response format conversion
    - Reassembling streamed tool-call arguments
    - Mapping SDK exceptions onto the error taxonomy

    Every variant produces the same event sequence from ``send``: text
    deltas and tool calls in emission order, at most one usage report,
    then exactly one terminal ``Done`` or ``Failed``.

    Supports async context manager protocol for proper resource cleanup:
        async with adapter:
            async for event in adapter.send(history, options):
                ...
    """

    def __init__(self, timeout: float = DEFAULT_PROVIDER_TIMEOUT):
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    @abstractmethod
    def _events(
        self,
        history: list[HistoryEntry],
        options: SendOptions
    ) -> AsyncIterator[StreamEvent]:
        """Yield provider events for one call.

        Implementations may raise; ``send`` turns exceptions into ``Failed``.
        A trailing ``Done`` is optional and is added when missing.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections or resources."""

    def _translate_error(self, exc: BaseException) -> ParleyError:
        """Map an exception raised while streaming onto the error taxonomy.

        Subclasses extend this for SDK-specific exception types.
        """
        if isinstance(exc, ParleyError):
            return exc
        if isinstance(exc, TimeoutError):
            return ProviderTimeoutError(self._timeout)
        return ProviderUnavailableError(f"{type(exc).__name__}: {exc}")

    async def send(
        self,
        history: list[HistoryEntry],
        options: SendOptions
    ) -> AsyncIterator[StreamEvent]:
        """Stream one provider call as normalized events.

        The whole call is bound to the adapter timeout. Never raises for
        provider failures; they arrive as a single ``Failed`` event.

        Args:
            history: Conversation entries to send, oldest first
            options: Model, sampling and tool options

        Yields:
            StreamEvent instances ending with ``Done`` or ``Failed``
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        events = aiter(self._events(history, options))

        try:
            while True:
                try:
                    async with asyncio.timeout_at(deadline):
                        event = await anext(events)
                except StopAsyncIteration:
                    break

                if isinstance(event, Failed):
                    yield event
                    return
                yield event
                if isinstance(event, Done):
                    return

            yield Done()
        except Exception as exc:
            error = self._translate_error(exc)
            logger.warning(
                "provider_call_failed",
                adapter=type(self).__name__,
                model=options.model,
                error_code=error.code,
                error=str(error),
            )
            yield Failed(error=error)
        finally:
            await events.aclose()

    async def complete(
        self,
        history: list[HistoryEntry],
        options: SendOptions
    ) -> tuple[str, UsageReported | None]:
        """Run one call to completion and return its text.

        Used for auxiliary single-shot requests such as summaries.

        Returns:
            Tuple of (text, usage event or None)

        Raises:
            ParleyError: The error carried by a ``Failed`` event
        """
        parts: list[str] = []
        usage: UsageReported | None = None
        async for event in self.send(history, options):
            if isinstance(event, TextDelta):
                parts.append(event.text)
            elif isinstance(event, UsageReported):
                usage = event
            elif isinstance(event, Failed):
                raise event.error
        return "".join(parts), usage

    async def __aenter__(self) -> "ProviderAdapter":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise


class ToolCallBuffer:
    """Accumulates streamed tool-call fragments until they parse.

    Providers that stream arguments piecewise register each call under a
    key (stream index, content block index or output item id) and append
    argument text as it arrives. A call is only released once its
    arguments form a complete JSON document.
    """

    def __init__(self) -> None:
        self._calls: dict[Any, dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, key: Any) -> bool:
        return key in self._calls

    def update(
        self,
        key: Any,
        call_id: str | None = None,
        name: str | None = None,
        fragment: str | None = None,
        arguments: str | None = None
    ) -> None:
        """Register a call or add to it.

        ``fragment`` is appended to the buffered argument text;
        ``arguments`` replaces it with a provider-assembled final value.
        """
        call = self._calls.setdefault(key, {"id": None, "name": None, "arguments": []})
        if call_id:
            call["id"] = call_id
        if name:
            call["name"] = name
        if fragment:
            call["arguments"].append(fragment)
        if arguments is not None:
            call["arguments"] = [arguments]

    def complete(self, key: Any) -> ToolCallRequested:
        """Release one buffered call.

        Raises:
            MalformedToolCallError: If the name is missing or the arguments
                do not parse as JSON
        """
        call = self._calls.pop(key)
        arguments = "".join(call["arguments"]).strip() or "{}"
        if not call["name"]:
            raise MalformedToolCallError("Tool call without a function name")
        try:
            json.loads(arguments)
        except json.JSONDecodeError as e:
            raise MalformedToolCallError(
                f"Incomplete arguments for tool '{call['name']}': {e.msg}"
            ) from e
        return ToolCallRequested(
            id=call["id"] or f"call_{uuid4().hex[:24]}",
            name=call["name"],
            arguments=arguments,
        )

    def drain(self) -> list[ToolCallRequested]:
        """Release every buffered call in registration order."""
        return [self.complete(key) for key in list(self._calls)]

"""Reassembly of provider event streams."""

from collections.abc import AsyncIterator, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ParleyError
from ..llm.models import Done, Failed, StreamEvent, TextDelta, ToolCallRequested, UsageReported
from ..memory.models import ToolCallRequest, Usage

DEFAULT_PROGRESS_EVERY = 16


class StreamResult(BaseModel):
    """Outcome of one provider call."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    text: str = ""
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
    usage: Usage | None = None
    error: ParleyError | None = None
    finish_reason: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class StreamAggregator:
    """Accumulates text fragments and collects tool-call requests.

    Every ``progress_every``-th fragment triggers ``on_progress`` with the
    whole text so far, so the caller can replace what it displays rather
    than append to it. Nothing is executed here; tool calls are handed
    back in the result.
    """

    def __init__(
        self,
        progress_every: int = DEFAULT_PROGRESS_EVERY,
        on_progress: Callable[[str], Awaitable[None]] | None = None
    ):
        if progress_every < 1:
            raise ValueError("progress_every must be at least 1")
        self._progress_every = progress_every
        self._on_progress = on_progress

    async def consume(self, events: AsyncIterator[StreamEvent]) -> StreamResult:
        parts: list[str] = []
        fragments = 0
        result = StreamResult()

        async for event in events:
            if isinstance(event, TextDelta):
                parts.append(event.text)
                fragments += 1
                if self._on_progress is not None and fragments % self._progress_every == 0:
                    await self._on_progress("".join(parts))
            elif isinstance(event, ToolCallRequested):
                result.tool_calls.append(event.to_request())
            elif isinstance(event, UsageReported):
                result.usage = event.usage
            elif isinstance(event, Done):
                result.finish_reason = event.finish_reason
            elif isinstance(event, Failed):
                result.error = event.error

        result.text = "".join(parts)
        return result

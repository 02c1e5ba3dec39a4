"""Per-turn sequential delivery of display updates."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog

from ..errors import ParleyError

if TYPE_CHECKING:
    from ..orchestrator.callbacks import TransportCallbacks

logger = structlog.get_logger(__name__)

_CLOSE = object()


class DisplayChannel:
    """Funnels every transport display call of one turn through one task.

    Updates are applied strictly in the order they were queued, so the
    final text always lands after every partial update. A progress update
    identical to the text already shown is dropped.

    Usage:
        async with DisplayChannel(callbacks) as display:
            await display.progress("Hel")
            await display.final("Hello")
    """

    def __init__(
        self,
        callbacks: "TransportCallbacks",
        on_message_ref: Callable[[str], Awaitable[None]] | None = None
    ):
        """Initialize the channel.

        Args:
            callbacks: Transport receiving the updates
            on_message_ref: Called when the transport reports a new
                in-flight message reference from ``on_progress``
        """
        self._callbacks = callbacks
        self._on_message_ref = on_message_ref
        self._message_ref: str | None = None
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._last_queued: str | None = None
        self._shown: str | None = None
        self._closed = False

    @property
    def shown(self) -> str | None:
        """Text most recently applied by the transport."""
        return self._shown

    def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())

    async def progress(self, text: str) -> None:
        if self._closed or text == self._last_queued:
            return
        self._last_queued = text
        await self._queue.put(("progress", text))

    async def tool_started(self, name: str, args_summary: str) -> None:
        if not self._closed:
            await self._queue.put(("tool", name, args_summary))

    async def final(self, text: str) -> None:
        if not self._closed:
            self._last_queued = text
            await self._queue.put(("final", text))

    async def error(self, error: ParleyError) -> None:
        if not self._closed:
            await self._queue.put(("error", error))

    async def close(self) -> None:
        """Apply every queued update, then stop the worker."""
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_CLOSE)
        if self._worker is not None:
            await self._worker

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            try:
                await self._apply(item)
            except Exception as e:
                logger.warning("display_update_failed", kind=item[0], error=str(e))

    async def _apply(self, item: tuple[Any, ...]) -> None:
        kind = item[0]
        if kind == "progress":
            if item[1] == self._shown:
                return
            message_ref = await self._callbacks.on_progress(item[1])
            self._shown = item[1]
            if message_ref and message_ref != self._message_ref:
                self._message_ref = message_ref
                if self._on_message_ref is not None:
                    await self._on_message_ref(message_ref)
        elif kind == "tool":
            await self._callbacks.on_tool_started(item[1], item[2])
        elif kind == "final":
            await self._callbacks.on_final(item[1])
            self._shown = item[1]
        elif kind == "error":
            await self._callbacks.on_error(item[1])

    async def __aenter__(self) -> "DisplayChannel":
        self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

"""Callback interface between the answer engine and a transport.

Hides how a front end (chat bot, web socket, terminal) renders updates.
The engine calls these from a single task per turn, in order.
"""

from typing import Protocol, runtime_checkable

from ..errors import ParleyError


@runtime_checkable
class TransportCallbacks(Protocol):
    """Receives display updates for one turn."""

    async def on_progress(self, text: str) -> str | None:
        """Replace the in-flight message with the full text so far.

        Returns:
            Reference of the message now showing the text (for example a
            chat message id), or None. The engine stores it on the
            conversation as the in-flight message.
        """
        ...

    async def on_tool_started(self, name: str, args_summary: str) -> None:
        """Show a status line for a tool invocation."""
        ...

    async def on_final(self, text: str) -> None:
        """Show the complete answer. Always the last update of a successful turn."""
        ...

    async def on_error(self, error: ParleyError) -> None:
        """Report a failed turn."""
        ...


class NullCallbacks:
    """No-op callbacks; subclass and override only what a transport needs."""

    async def on_progress(self, text: str) -> str | None:
        return None

    async def on_tool_started(self, name: str, args_summary: str) -> None:
        pass

    async def on_final(self, text: str) -> None:
        pass

    async def on_error(self, error: ParleyError) -> None:
        pass

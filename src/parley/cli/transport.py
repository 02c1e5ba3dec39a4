"""Terminal transport rendering a turn with Rich."""

from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown

from ..errors import ParleyError
from ..orchestrator import NullCallbacks


class ConsoleTransport(NullCallbacks):
    """Shows the in-flight answer in a live region that is replaced on each update."""

    def __init__(self, console: Console, markdown: bool = True):
        self._console = console
        self._markdown = markdown
        self._live: Live | None = None

    def _render(self, text: str) -> Markdown | str:
        return Markdown(text) if self._markdown else text

    async def on_progress(self, text: str) -> str | None:
        if self._live is None:
            self._live = Live(self._render(text), console=self._console, refresh_per_second=8)
            self._live.start()
        else:
            self._live.update(self._render(text))
        return "console"

    async def on_tool_started(self, name: str, args_summary: str) -> None:
        self._console.print(f"[dim]Action: {name}\nAction input: {args_summary}[/dim]")

    async def on_final(self, text: str) -> None:
        if self._live is None:
            self._console.print(self._render(text))
            return
        self._live.update(self._render(text))
        self.stop()

    async def on_error(self, error: ParleyError) -> None:
        self.stop()
        self._console.print(f"[red]Error ({error.code}): {error}[/red]")

    def stop(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

"""Main CLI application using Typer."""
import asyncio
import traceback
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from ..config import load_settings
from ..llm import ModelCatalog
from ..logging_config import setup_logging
from ..memory import Conversation
from ..orchestrator import TurnState
from .providers import get_orchestrator, get_store
from .transport import ConsoleTransport

# Create Typer app
app = typer.Typer(
    name="parley",
    help="Conversational answer engine over interchangeable language-model providers",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()


def _apply_overrides(conversation: Conversation, model: str | None, no_stream: bool) -> None:
    if model:
        conversation.model_name = model
    if no_stream:
        conversation.stream = False


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level")
):
    """Load settings and configure logging for every command."""
    settings = load_settings()
    setup_logging("DEBUG" if verbose else settings.log_level, settings.log_format)


@app.command()
def ask(
    message: str = typer.Argument(..., help="Message to send"),
    thread: str | None = typer.Option(
        None,
        "--thread",
        "-t",
        help="Conversation ID (a new conversation is created when omitted)"
    ),
    model: str | None = typer.Option(
        None,
        "--model",
        "-m",
        help="Model name to use for this conversation"
    ),
    no_stream: bool = typer.Option(
        False,
        "--no-stream",
        help="Request the whole answer at once instead of streaming"
    ),
    attach: Path | None = typer.Option(
        None,
        "--attach",
        "-a",
        exists=True,
        dir_okay=False,
        help="File to send along with the message"
    ),
):
    """Send one message and print the answer."""
    async def _ask() -> TurnState:
        settings = load_settings()
        store = get_store(settings)
        await store.connect()
        orchestrator, catalog = get_orchestrator(settings, store, console)
        try:
            if thread is None:
                conversation = await orchestrator.create_conversation()
                conversation_id = conversation.id
                console.print(f"[dim]New conversation: {conversation_id}[/dim]")
            else:
                conversation_id = thread

            if model or no_stream:
                session = await orchestrator.sessions.get(conversation_id)
                await session.mutate(lambda c: _apply_overrides(c, model, no_stream))

            transport = ConsoleTransport(console)
            try:
                result = await orchestrator.answer(
                    conversation_id,
                    message,
                    transport,
                    attachment_path=str(attach) if attach else None,
                )
            finally:
                transport.stop()

            if result.state == TurnState.DONE:
                console.print(
                    f"[dim]{result.iterations} call(s), "
                    f"{result.usage.input_tokens} in / {result.usage.output_tokens} out tokens[/dim]"
                )
            return result.state

        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")
            console.print(f"[dim]{traceback.format_exc()}[/dim]")
            return TurnState.FAILED
        finally:
            await catalog.close()
            await store.disconnect()

    if asyncio.run(_ask()) != TurnState.DONE:
        raise typer.Exit(code=1)


@app.command()
def models():
    """List the models that conversations can select."""
    settings = load_settings()
    catalog = ModelCatalog(settings)

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Name", style="cyan")
    table.add_column("Model ID")
    table.add_column("Provider", style="yellow")
    table.add_column("Protocol")
    table.add_column("Search tool", style="dim")
    table.add_column("Reasoning", width=9)

    for model in catalog.models:
        name = model.name
        if model.name == catalog.default_model.name:
            name += " [green](default)[/green]"
        table.add_row(
            name,
            model.model_id,
            model.provider,
            ModelCatalog.adapter_key(model),
            model.search_tool or "-",
            "yes" if model.reasoning else "no",
        )

    console.print(table)


@app.command()
def history(
    thread: str = typer.Option(..., "--thread", "-t", help="Conversation ID"),
    width: int = typer.Option(80, "--width", "-w", help="Maximum characters of content shown"),
):
    """Show the live history of a conversation."""
    async def _history():
        settings = load_settings()
        store = get_store(settings)
        try:
            await store.connect()
            conversation = await store.get_conversation(thread)
            if conversation is None:
                console.print(f"[red]Error: conversation '{thread}' not found[/red]")
                raise typer.Exit(code=1)

            entries = await store.load_live_history(thread)
            console.print(
                f"[bold cyan]{conversation.title or conversation.id}[/bold cyan] "
                f"[dim]model={conversation.model_name} tokens={conversation.total_tokens}[/dim]"
            )
            if not entries:
                console.print("[yellow]No live entries[/yellow]")
                return

            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("ID", style="dim", width=6)
            table.add_column("Time", style="dim")
            table.add_column("Role", style="yellow", width=9)
            table.add_column("Type", width=8)
            table.add_column("Content")

            for entry in entries:
                content = entry.content or ""
                if entry.tool_calls:
                    calls = ", ".join(f"{c.name}({c.arguments})" for c in entry.tool_calls)
                    content = f"{content} -> {calls}" if content else calls
                if len(content) > width:
                    content = content[:width - 3] + "..."
                table.add_row(
                    str(entry.id),
                    entry.created_at.strftime("%Y-%m-%d %H:%M"),
                    entry.role.value,
                    entry.entry_type.value,
                    content,
                )

            console.print(table)
        finally:
            await store.disconnect()

    asyncio.run(_history())


@app.command()
def reset(
    thread: str = typer.Option(..., "--thread", "-t", help="Conversation ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a conversation and its whole history."""
    if not yes:
        confirm = typer.confirm(f"Delete conversation {thread}?")
        if not confirm:
            console.print("[dim]Aborted.[/dim]")
            return

    async def _reset():
        settings = load_settings()
        store = get_store(settings)
        try:
            await store.connect()
            await store.delete_conversation(thread)
            console.print(f"[green]Deleted conversation {thread}[/green]")
        finally:
            await store.disconnect()

    asyncio.run(_reset())


if __name__ == "__main__":
    app()

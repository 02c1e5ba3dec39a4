"""Engine assembly for the CLI.

Centralizes creation of the store, catalog, tools and orchestrator from
settings. Hides wiring details from command implementations.
"""

from rich.console import Console

from ..config import Settings
from ..context import ContextWindowManager, ModelSummarizer
from ..llm import ModelCatalog
from ..memory import ConversationStore, create_conversation_store
from ..orchestrator import AnswerOrchestrator
from ..tools import CryptoRateTool, ReminderTool, ToolRegistry


def get_store(settings: Settings) -> ConversationStore:
    """Create the SQLite conversation store at ``settings.db_path``."""
    return create_conversation_store("sqlite", path=settings.db_path)


def get_tools(settings: Settings, console: Console) -> ToolRegistry:
    """Create the registry of built-in tools.

    Reminders are printed to the console; they only fire while the
    process is still running.
    """
    async def print_reminder(text: str) -> None:
        console.print(f"[bold magenta]Reminder:[/bold magenta] {text}")

    return ToolRegistry(
        [CryptoRateTool(), ReminderTool(print_reminder)],
        timeout=settings.tool_timeout,
    )


def get_orchestrator(
    settings: Settings,
    store: ConversationStore,
    console: Console
) -> tuple[AnswerOrchestrator, ModelCatalog]:
    """Wire an orchestrator and the catalog it uses."""
    catalog = ModelCatalog(settings)
    summarizer = ModelSummarizer(
        catalog,
        model_name=settings.summary_model,
        timeout=settings.summary_timeout,
    )
    window = ContextWindowManager(store, summarizer, keep_recent=settings.keep_recent)
    orchestrator = AnswerOrchestrator(
        store=store,
        catalog=catalog,
        tools=get_tools(settings, console),
        window=window,
        settings=settings,
    )
    return orchestrator, catalog

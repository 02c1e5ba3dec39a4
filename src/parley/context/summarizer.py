"""History compression through a cheap model."""

import asyncio
from typing import TYPE_CHECKING, Protocol

import structlog

from ..errors import ParleyError, SummarizationFailedError
from ..llm.models import SendOptions
from ..memory.models import Conversation, HistoryEntry, Role, Usage
from ..prompts import get_summary_prompt, load_prompt

if TYPE_CHECKING:
    from ..llm.catalog import ModelCatalog

logger = structlog.get_logger(__name__)

DEFAULT_SUMMARY_MODEL = "gpt-4o-mini"
DEFAULT_SUMMARY_TEMPERATURE = 0.5
DEFAULT_SUMMARY_TIMEOUT = 30.0


class Summarizer(Protocol):
    async def summarize(
        self,
        conversation: Conversation,
        entries: list[HistoryEntry]
    ) -> tuple[str, Usage | None]:
        """Compress entries into one text.

        Raises:
            SummarizationFailedError: If no summary could be produced
        """
        ...


class ModelSummarizer:
    """Summarizer backed by a provider adapter from the catalog.

    Hidden design decisions:
    - Which model compresses history and at what temperature
    - How entries with tool calls are flattened for the request
    """

    def __init__(
        self,
        catalog: "ModelCatalog",
        model_name: str = DEFAULT_SUMMARY_MODEL,
        temperature: float = DEFAULT_SUMMARY_TEMPERATURE,
        timeout: float = DEFAULT_SUMMARY_TIMEOUT
    ):
        self._catalog = catalog
        self._model_name = model_name
        self._temperature = temperature
        self._timeout = timeout

    async def summarize(
        self,
        conversation: Conversation,
        entries: list[HistoryEntry]
    ) -> tuple[str, Usage | None]:
        model = self._catalog.get(self._model_name)
        try:
            adapter = self._catalog.adapter_for(model)
        except (TypeError, ValueError) as e:
            raise SummarizationFailedError(
                f"Summary provider '{model.provider}' is not configured: {e}"
            ) from e

        # Tool calls are dropped: their results are not part of the request
        history = [
            entry.model_copy(update={"tool_calls": []})
            for entry in entries
            if entry.role != Role.TOOL and entry.content
        ]
        history.append(HistoryEntry(
            conversation_id=conversation.id,
            role=Role.USER,
            content=get_summary_prompt(conversation.lang),
        ))
        options = SendOptions(
            model=model.model_id,
            temperature=self._temperature,
            system_prompt=load_prompt("summary_system"),
            reasoning=model.reasoning,
            stream=False,
        )

        try:
            async with asyncio.timeout(self._timeout):
                text, usage = await adapter.complete(history, options)
        except TimeoutError as e:
            raise SummarizationFailedError(
                f"Summary model timed out after {self._timeout:g}s"
            ) from e
        except ParleyError as e:
            raise SummarizationFailedError(f"Summary model failed: {e}") from e

        text = text.strip()
        if not text:
            raise SummarizationFailedError("Summary model returned no text")

        logger.info(
            "history_summarized",
            conversation_id=conversation.id,
            model=model.name,
            entries=len(history) - 1,
        )
        return text, usage.usage if usage is not None else None

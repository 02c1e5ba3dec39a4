from .summarizer import (
    DEFAULT_SUMMARY_MODEL,
    DEFAULT_SUMMARY_TEMPERATURE,
    DEFAULT_SUMMARY_TIMEOUT,
    ModelSummarizer,
    Summarizer,
)
from .window import DEFAULT_CONTEXT_LIMIT, DEFAULT_KEEP_RECENT, ContextWindowManager

__all__ = [
    "DEFAULT_SUMMARY_MODEL",
    "DEFAULT_SUMMARY_TEMPERATURE",
    "DEFAULT_SUMMARY_TIMEOUT",
    "ModelSummarizer",
    "Summarizer",
    "DEFAULT_CONTEXT_LIMIT",
    "DEFAULT_KEEP_RECENT",
    "ContextWindowManager",
]

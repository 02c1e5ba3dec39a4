"""
Parley: a conversational answer engine for interchangeable language-model providers.

This package follows Parnas's information hiding principles,
where each module hides a specific design decision.
"""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .errors import ParleyError
from .llm import ModelCatalog, create_provider_adapter
from .memory import Conversation, HistoryEntry, create_conversation_store
from .orchestrator import AnswerOrchestrator, NullCallbacks, TransportCallbacks, TurnResult, TurnState

__all__ = [
    "Settings",
    "load_settings",
    "ParleyError",
    "ModelCatalog",
    "create_provider_adapter",
    "Conversation",
    "HistoryEntry",
    "create_conversation_store",
    "AnswerOrchestrator",
    "NullCallbacks",
    "TransportCallbacks",
    "TurnResult",
    "TurnState",
]

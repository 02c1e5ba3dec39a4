from .callbacks import NullCallbacks, TransportCallbacks
from .engine import AnswerOrchestrator, TurnResult, TurnState
from .session import ConversationSession, SessionRegistry

__all__ = [
    "NullCallbacks",
    "TransportCallbacks",
    "AnswerOrchestrator",
    "TurnResult",
    "TurnState",
    "ConversationSession",
    "SessionRegistry",
]

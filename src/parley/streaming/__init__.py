from .aggregator import DEFAULT_PROGRESS_EVERY, StreamAggregator, StreamResult
from .display import DisplayChannel

__all__ = [
    "DEFAULT_PROGRESS_EVERY",
    "StreamAggregator",
    "StreamResult",
    "DisplayChannel",
]

from .base import BaseTool, ToolResult
from .builtin import CryptoRateTool, ReminderTool
from .registry import DEFAULT_TOOL_TIMEOUT, ToolRegistry

__all__ = [
    "BaseTool",
    "ToolResult",
    "CryptoRateTool",
    "ReminderTool",
    "DEFAULT_TOOL_TIMEOUT",
    "ToolRegistry",
]

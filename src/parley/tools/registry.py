"""Tool lookup and guarded invocation."""

import asyncio
import time

import structlog

from ..errors import ParleyError, ToolExecutionError, ToolNotFoundError
from ..llm.models import ToolSchema
from ..memory.models import ToolCallRequest
from .base import BaseTool, ToolResult

logger = structlog.get_logger(__name__)

DEFAULT_TOOL_TIMEOUT = 30.0


class ToolRegistry:
    """Maps tool names to tools and runs them under a deadline.

    The registry holds no per-call state. Failures never escape
    ``invoke``: they are returned as error results so the model can
    react to them on the next provider call.
    """

    def __init__(self, tools: list[BaseTool] | None = None, timeout: float = DEFAULT_TOOL_TIMEOUT):
        self._timeout = timeout
        self._tools: dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def register(self, tool: BaseTool) -> None:
        """Register a tool.

        Raises:
            ValueError: If a tool with the same name is already registered
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool {tool.name} already registered")
        self._tools[tool.name] = tool

    def resolve(self, name: str) -> BaseTool:
        """Look up a tool by name.

        Raises:
            ToolNotFoundError: If no tool has this name
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    @property
    def tools(self) -> list[BaseTool]:
        return list(self._tools.values())

    def schemas(self, enabled: list[str] | None = None) -> list[ToolSchema]:
        """Declarations for the tools offered to the model.

        Args:
            enabled: Tool names to include; None includes every tool
        """
        return [
            tool.to_schema()
            for name, tool in self._tools.items()
            if enabled is None or name in enabled
        ]

    async def invoke(self, tool: BaseTool, arguments: str, tool_call_id: str = "") -> ToolResult:
        """Run one tool call under the tool deadline.

        Returns:
            ToolResult; ``error`` is set and ``content`` starts with
            "Error:" when the call failed or timed out
        """
        started = time.perf_counter()
        try:
            async with asyncio.timeout(self._timeout):
                content = await tool.call(arguments)
        except TimeoutError:
            error: ParleyError = ToolExecutionError(
                f"Tool '{tool.name}' timed out after {self._timeout:g}s"
            )
        except ParleyError as e:
            error = e
        except Exception as e:
            error = ToolExecutionError(f"Tool '{tool.name}' failed: {type(e).__name__}: {e}")
        else:
            logger.info(
                "tool_executed",
                tool=tool.name,
                duration_ms=int((time.perf_counter() - started) * 1000),
            )
            return ToolResult(tool_call_id=tool_call_id, content=content)

        logger.warning("tool_failed", tool=tool.name, error_code=error.code, error=str(error))
        return ToolResult(tool_call_id=tool_call_id, content=f"Error: {error}", error=True)

    async def dispatch(self, call: ToolCallRequest) -> ToolResult:
        """Resolve and invoke a requested call, reporting unknown tools as errors."""
        try:
            tool = self.resolve(call.name)
        except ToolNotFoundError as e:
            logger.warning("tool_not_found", tool=call.name)
            return ToolResult(tool_call_id=call.id, content=f"Error: {e}", error=True)
        return await self.invoke(tool, call.arguments, tool_call_id=call.id)

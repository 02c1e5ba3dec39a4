"""Tool contract."""

import json
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from ..errors import MalformedToolCallError
from ..llm.models import ToolSchema


class ToolResult(BaseModel):
    """Result of a tool invocation.

    Attributes:
        tool_call_id: ID of the tool call that was executed
        content: The result content, or an error description
        error: Whether an error occurred
    """

    tool_call_id: str = ""
    content: str
    error: bool = False


class BaseTool(ABC):
    """Abstract base class for tools the model may call.

    Hidden design decisions:
    - How the JSON argument payload is interpreted
    - Which external service answers the call
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the tool name."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Get the tool description for the LLM."""
        pass

    @property
    @abstractmethod
    def parameters_schema(self) -> dict[str, Any]:
        """Get the JSON schema for tool parameters."""
        pass

    @abstractmethod
    async def execute(self, params: dict[str, Any]) -> str:
        """Execute the tool.

        Args:
            params: Parsed JSON object sent by the model

        Returns:
            Result text fed back to the model
        """
        pass

    async def call(self, arguments: str) -> str:
        """Run the tool on the raw argument payload from the model.

        Raises:
            MalformedToolCallError: If the payload is not a JSON object
        """
        try:
            params = json.loads(arguments or "{}")
        except json.JSONDecodeError as e:
            raise MalformedToolCallError(f"Invalid arguments for tool '{self.name}': {e.msg}") from e
        if not isinstance(params, dict):
            raise MalformedToolCallError(f"Arguments for tool '{self.name}' must be a JSON object")
        return await self.execute(params)

    def to_schema(self) -> ToolSchema:
        """Convert tool to the declaration sent to providers."""
        return ToolSchema(
            name=self.name,
            description=self.description,
            parameters=self.parameters_schema
        )

    def summarize_arguments(self, arguments: str) -> str:
        """Short human form of the arguments for status lines.

        Uses the first string value of the JSON object, else the raw text.
        """
        try:
            parsed = json.loads(arguments or "{}")
        except json.JSONDecodeError:
            return arguments
        if isinstance(parsed, dict):
            for value in parsed.values():
                if isinstance(value, str) and value:
                    return value
        return arguments

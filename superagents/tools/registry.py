"""Tool seam between a supervising agent and the task manager."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, model_validator

from superagents.exceptions import ToolExecutionError, ToolNotFoundError
from superagents.logging import get_logger
from superagents.models import ToolContext

log = get_logger(__name__)


def _normalize_tool_name(value: str) -> str:
    return str(value or "").strip().lower()


class ToolResult(BaseModel):
    """Text handed back to the calling agent."""

    success: bool = True
    content: str = ""
    error: str | None = None

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "ToolResult":
        """Ensure failed results always provide an error message."""
        if not self.success and not (self.error or "").strip():
            fallback = (self.content or "").strip()
            self.error = fallback or "Tool execution failed"
        return self

    @classmethod
    def failure(cls, message: str) -> "ToolResult":
        return cls(success=False, content=message, error=message)


class Tool(ABC):
    """A named operation the supervising agent can call."""

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {}
    timeout_seconds: float = 30.0

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool.

        Args:
            **kwargs: Tool-specific arguments plus ``_context``, the
                invocation context of the calling session.

        Returns:
            ToolResult with success status and content
        """
        pass

    def get_definition(self) -> dict[str, Any]:
        """Get the tool definition (function-calling style)."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Check that every required argument is present.

        Raises:
            ToolExecutionError if one is missing
        """
        required = self.parameters.get("required", [])
        for field in required:
            if field not in arguments:
                raise ToolExecutionError(
                    self.name,
                    f"Missing required argument: {field}",
                )


class ToolRegistry:
    """Tools by normalized name."""

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        if not tool.name:
            raise ValueError("Tool must have a name")
        log.debug("Registering tool", tool=tool.name)
        self._tools[_normalize_tool_name(tool.name)] = tool

    def unregister(self, name: str) -> None:
        self._tools.pop(_normalize_tool_name(name), None)

    def has_tool(self, name: str) -> bool:
        return _normalize_tool_name(name) in self._tools

    def get(self, name: str) -> Tool:
        tool = self._tools.get(_normalize_tool_name(name))
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def list_tools(self) -> list[str]:
        return sorted(tool.name for tool in self._tools.values())

    def get_definitions(self) -> list[dict[str, Any]]:
        return [self._tools[key].get_definition() for key in sorted(self._tools)]

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        context: ToolContext | None = None,
    ) -> ToolResult:
        """Execute a tool by name.

        Raises:
            ToolNotFoundError if tool not found
            ToolExecutionError if execution fails or times out
        """
        tool = self.get(name)
        tool.validate_arguments(arguments)

        timeout_seconds = max(1.0, float(tool.timeout_seconds or 30.0))
        try:
            log.info("Executing tool", tool=name, args=arguments)
            result = await asyncio.wait_for(
                tool.execute(**arguments, _context=context or ToolContext(session_id="")),
                timeout=timeout_seconds,
            )
        except asyncio.TimeoutError:
            timeout_label = int(timeout_seconds) if timeout_seconds.is_integer() else timeout_seconds
            raise ToolExecutionError(name, f"Execution timed out after {timeout_label}s")
        except ToolExecutionError:
            raise
        except Exception as e:
            log.error("Tool execution failed", tool=name, error=str(e))
            raise ToolExecutionError(name, str(e))

        if not isinstance(result, ToolResult):
            raise ToolExecutionError(name, "Tool returned invalid result payload")
        log.info("Tool executed", tool=name, success=result.success)
        return result

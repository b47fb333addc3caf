"""Tools package for superagents."""

from superagents.tools.background import (
    BackgroundBlockTool,
    BackgroundCancelTool,
    BackgroundClearTool,
    BackgroundListTool,
    BackgroundOutputTool,
    BackgroundTaskTool,
)
from superagents.tools.registry import Tool, ToolRegistry, ToolResult


def build_tool_registry(manager) -> ToolRegistry:
    """Registry with every background task tool bound to ``manager``."""
    registry = ToolRegistry()
    for tool_cls in (
        BackgroundTaskTool,
        BackgroundOutputTool,
        BackgroundCancelTool,
        BackgroundListTool,
        BackgroundClearTool,
        BackgroundBlockTool,
    ):
        registry.register(tool_cls(manager))
    return registry


__all__ = [
    "Tool",
    "ToolRegistry",
    "ToolResult",
    "build_tool_registry",
    "BackgroundTaskTool",
    "BackgroundOutputTool",
    "BackgroundCancelTool",
    "BackgroundListTool",
    "BackgroundClearTool",
    "BackgroundBlockTool",
]

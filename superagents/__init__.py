"""superagents - background agent task orchestration."""

__version__ = "0.1.0"

from superagents.config import Config
from superagents.manager import TaskManager
from superagents.models import LaunchInput, Task, ToolContext

__all__ = ["Config", "TaskManager", "LaunchInput", "Task", "ToolContext", "__version__"]

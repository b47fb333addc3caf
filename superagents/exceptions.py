"""Custom exceptions for superagents."""


class SuperagentsError(Exception):
    """Base exception for superagents."""

    pass


class ConfigurationError(SuperagentsError):
    """Configuration-related errors."""

    pass


class AgentRequiredError(SuperagentsError):
    """Launch attempted without a target agent."""

    def __init__(self):
        super().__init__("Agent parameter is required. Specify which agent to use.")


class TaskNotFoundError(SuperagentsError):
    """No task matches the given id or prefix."""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class InvalidTransitionError(SuperagentsError):
    """Requested lifecycle change is not allowed from the current status."""

    def __init__(self, task_id: str, current_status: str, message: str | None = None):
        super().__init__(
            message or f'Invalid transition for task {task_id}: current status is "{current_status}"'
        )
        self.task_id = task_id
        self.current_status = current_status


class SessionExpiredError(SuperagentsError):
    """Underlying session vanished before a resume could proceed."""

    def __init__(self, session_id: str):
        super().__init__("Session expired or was deleted. Start a new background_task to continue.")
        self.session_id = session_id


class DispatchError(SuperagentsError):
    """Asynchronous prompt dispatch failed."""

    def __init__(self, session_id: str, message: str):
        super().__init__(message)
        self.session_id = session_id


class PersistenceError(SuperagentsError):
    """Durable task metadata could not be read or written."""

    pass


class NotificationError(SuperagentsError):
    """Toast or parent-session message could not be delivered."""

    pass


class ToolError(SuperagentsError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class SessionServiceError(SuperagentsError):
    """Session server request failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

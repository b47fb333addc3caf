"""Task records and the value types exchanged with the session server."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from superagents.timeutil import now_iso


# ---------------------------------------------------------------------------
# Task statuses
# ---------------------------------------------------------------------------

RUNNING = "running"
COMPLETED = "completed"
ERROR = "error"
CANCELLED = "cancelled"
RESUMED = "resumed"

ALL_STATUSES = (RUNNING, COMPLETED, ERROR, CANCELLED, RESUMED)
TERMINAL_STATES = frozenset({COMPLETED, ERROR, CANCELLED})
ACTIVE_STATES = frozenset({RUNNING, RESUMED})

# Allowed lifecycle edges.
TRANSITIONS: dict[str, frozenset[str]] = {
    RUNNING: frozenset({COMPLETED, ERROR, CANCELLED}),
    COMPLETED: frozenset({RESUMED}),
    RESUMED: frozenset({COMPLETED, ERROR}),
    ERROR: frozenset(),
    CANCELLED: frozenset(),
}

# Tools a child session must not call.
CHILD_TOOL_GATE: dict[str, bool] = {
    "background_task": False,
    "background_output": False,
    "background_cancel": False,
    "background_list": False,
    "background_clear": False,
}

MAX_LAST_TOOLS = 3

# Store status -> registry status for rehydrated tasks.
_REHYDRATED_STATUS = {RESUMED: COMPLETED, RUNNING: CANCELLED}


@dataclass
class TaskProgress:
    """Display-only progress snapshot derived from message history."""

    tool_calls: int = 0
    last_tools: list[str] = field(default_factory=list)
    last_update: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool_calls": self.tool_calls,
            "last_tools": list(self.last_tools),
            "last_update": self.last_update,
        }


@dataclass
class Task:
    """One supervised unit of work bound to one child session."""

    session_id: str
    parent_session_id: str
    description: str
    agent: str
    prompt: str = ""
    parent_message_id: str = ""
    parent_agent: str = ""
    status: str = RUNNING
    started_at: str = field(default_factory=now_iso)
    completed_at: str | None = None
    result_retrieved_at: str | None = None
    error: str | None = None
    progress: TaskProgress = field(default_factory=TaskProgress)
    batch_id: str = ""
    resume_count: int = 0
    is_forked: bool = False

    @property
    def id(self) -> str:
        return self.session_id

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def is_active(self) -> bool:
        return self.status in ACTIVE_STATES

    def to_persisted(self) -> PersistedTask:
        return PersistedTask(
            description=self.description,
            agent=self.agent,
            parent_session_id=self.parent_session_id,
            created_at=self.started_at,
            status=self.status,
            resume_count=self.resume_count,
            is_forked=self.is_forked,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "parent_session_id": self.parent_session_id,
            "parent_message_id": self.parent_message_id,
            "parent_agent": self.parent_agent,
            "description": self.description,
            "prompt": self.prompt,
            "agent": self.agent,
            "status": self.status,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "result_retrieved_at": self.result_retrieved_at,
            "error": self.error,
            "progress": self.progress.to_dict(),
            "batch_id": self.batch_id,
            "resume_count": self.resume_count,
            "is_forked": self.is_forked,
        }


@dataclass
class PersistedTask:
    """Durable shadow of a task: enough to list and resume it after a restart."""

    description: str
    agent: str
    parent_session_id: str
    created_at: str
    status: str
    resume_count: int = 0
    is_forked: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "agent": self.agent,
            "parent_session_id": self.parent_session_id,
            "created_at": self.created_at,
            "status": self.status,
            "resume_count": self.resume_count,
            "is_forked": self.is_forked,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PersistedTask:
        return cls(
            description=str(data.get("description", "")),
            agent=str(data.get("agent", "")),
            parent_session_id=str(data.get("parent_session_id", "")),
            created_at=str(data.get("created_at", "")),
            status=str(data.get("status", COMPLETED)),
            resume_count=int(data.get("resume_count", 0) or 0),
            is_forked=bool(data.get("is_forked", False)),
        )

    def to_task(self, session_id: str) -> Task:
        """Rehydrate into a registry task; prompt and parent message are not stored.

        A resume interrupted by a restart comes back as ``completed``. A
        ``running`` entry outlived the process or ``clear_all`` that aborted
        it, so nothing will ever poll it again; it comes back ``cancelled``.
        """
        status = _REHYDRATED_STATUS.get(self.status, self.status)
        completed_at = self.created_at if status in TERMINAL_STATES else None
        return Task(
            session_id=session_id,
            parent_session_id=self.parent_session_id,
            description=self.description,
            agent=self.agent,
            prompt="",
            parent_message_id="",
            parent_agent="",
            status=status,
            started_at=self.created_at,
            completed_at=completed_at,
            batch_id="",
            resume_count=self.resume_count,
            is_forked=self.is_forked,
        )


@dataclass
class LaunchInput:
    description: str
    prompt: str
    agent: str
    parent_session_id: str
    parent_message_id: str = ""
    parent_agent: str = ""
    fork: bool = False


@dataclass
class ToolContext:
    """Invocation context of the supervising session calling a tool."""

    session_id: str
    message_id: str = ""
    agent: str = ""


@dataclass
class SessionMessage:
    """One message from a session's history: a role plus raw parts."""

    role: str
    parts: list[dict[str, Any]] = field(default_factory=list)

    def text_content(self) -> str:
        texts = [
            str(part.get("text") or "")
            for part in self.parts
            if part.get("type") == "text"
        ]
        return "\n".join(text for text in texts if text)

    def has_text(self) -> bool:
        return bool(self.text_content())

    def tool_names(self) -> list[str]:
        return [
            str(part["tool"])
            for part in self.parts
            if part.get("type") == "tool" and part.get("tool")
        ]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionMessage:
        info = data.get("info") or {}
        role = info.get("role") or data.get("role") or ""
        parts = data.get("parts") or data.get("content") or []
        return cls(role=str(role), parts=[p for p in parts if isinstance(p, dict)])


@dataclass
class SessionEvent:
    type: str
    properties: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionEvent:
        properties = data.get("properties")
        return cls(
            type=str(data.get("type", "")),
            properties=properties if isinstance(properties, dict) else {},
        )

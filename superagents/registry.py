"""In-memory task map and the lifecycle state machine."""

from __future__ import annotations

from typing import Iterator

from superagents.exceptions import InvalidTransitionError
from superagents.logging import get_logger
from superagents.models import (
    RESUMED,
    RUNNING,
    TERMINAL_STATES,
    TRANSITIONS,
    Task,
)
from superagents.timeutil import now_iso, now_utc, parse_iso

log = get_logger(__name__)


def _started_key(task: Task) -> float:
    try:
        return parse_iso(task.started_at).timestamp()
    except ValueError:
        return 0.0


class TaskRegistry:
    """Tasks keyed by session id.

    Status changes go through ``set_status`` so the transition table and the
    ``completed_at`` bookkeeping live in one place.
    """

    def __init__(self):
        self._tasks: dict[str, Task] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._tasks

    def __iter__(self) -> Iterator[Task]:
        return iter(list(self._tasks.values()))

    def add(self, task: Task) -> None:
        self._tasks[task.session_id] = task

    def get(self, session_id: str) -> Task | None:
        return self._tasks.get(session_id)

    def remove(self, session_id: str) -> Task | None:
        return self._tasks.pop(session_id, None)

    def clear(self) -> None:
        self._tasks.clear()

    def all(self) -> list[Task]:
        return list(self._tasks.values())

    def with_status(self, *statuses: str) -> list[Task]:
        return [t for t in self._tasks.values() if t.status in statuses]

    def running(self) -> list[Task]:
        return self.with_status(RUNNING)

    def active(self) -> list[Task]:
        return [t for t in self._tasks.values() if t.is_active()]

    def newest_first(self) -> list[Task]:
        return sorted(self._tasks.values(), key=_started_key, reverse=True)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @staticmethod
    def can_transition(current: str, target: str) -> bool:
        return target in TRANSITIONS.get(current, frozenset())

    def set_status(self, task: Task, status: str, error: str | None = None) -> Task:
        """Apply a lifecycle transition.

        Terminal targets stamp ``completed_at``. Entering ``resumed`` opens a
        new episode, so ``completed_at`` and ``result_retrieved_at`` are cleared.
        """
        if not self.can_transition(task.status, status):
            raise InvalidTransitionError(task.session_id, task.status)

        previous = task.status
        task.status = status
        if status in TERMINAL_STATES:
            task.completed_at = now_iso()
        elif status == RESUMED:
            task.completed_at = None
            task.result_retrieved_at = None
        if error is not None:
            task.error = error

        log.debug("Task transition", session_id=task.session_id, old=previous, new=status)
        return task

    def mark_result_retrieved(self, task: Task) -> None:
        """Stamp the first retrieval of a finished episode's result."""
        if task.is_terminal() and not task.result_retrieved_at:
            task.result_retrieved_at = now_iso()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def resolve_id(self, id_or_prefix: str) -> str | None:
        """Exact id first, then the most recently started prefix match."""
        key = (id_or_prefix or "").strip()
        if not key:
            return None
        if key in self._tasks:
            return key
        for task in self.newest_first():
            if task.session_id.startswith(key):
                return task.session_id
        return None

    def get_or_create_batch_id(self) -> str:
        """Join the batch of the first running task, or open a new one."""
        for task in self._tasks.values():
            if task.status == RUNNING and task.batch_id:
                return task.batch_id
        return f"batch_{int(now_utc().timestamp() * 1000)}"

"""Toasts and parent-session messages for task state changes.

Every delivery here is best-effort: failures are logged at debug level and
never reach the caller.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine

from superagents import messages
from superagents.batch import build_progress_toast, compute_batch_progress
from superagents.config import TasksConfig
from superagents.exceptions import NotificationError
from superagents.formatting import short_id, task_duration
from superagents.logging import get_logger
from superagents.models import CANCELLED, COMPLETED, ERROR, RUNNING, Task, ToolContext
from superagents.registry import TaskRegistry
from superagents.session_service import SessionService

log = get_logger(__name__)

_HEADERS = {
    COMPLETED: messages.TASK_COMPLETED_HEADER,
    ERROR: messages.TASK_FAILED_HEADER,
    CANCELLED: messages.TASK_CANCELLED_HEADER,
}

_TOAST_TITLES = {
    COMPLETED: messages.TOAST_TASK_COMPLETED,
    ERROR: messages.TOAST_TASK_FAILED,
    CANCELLED: messages.TOAST_TASK_CANCELLED,
}


class NotificationDispatcher:
    """Sends terminal, resume and progress notifications."""

    def __init__(self, service: SessionService, registry: TaskRegistry, settings: TasksConfig):
        self.service = service
        self.registry = registry
        self.settings = settings
        self._notified: set[tuple[str, str, str]] = set()
        self._pending: set[asyncio.Task[Any]] = set()
        self._frame = 0

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for in-flight deliveries."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def cancel_pending(self) -> None:
        for task in list(self._pending):
            task.cancel()

    def forget(self, session_id: str) -> None:
        """Drop the idempotency keys of a task that left the registry."""
        self._notified = {key for key in self._notified if key[0] != session_id}

    @property
    def notified_sessions(self) -> set[str]:
        return {key[0] for key in self._notified}

    # ------------------------------------------------------------------
    # Delivery primitives
    # ------------------------------------------------------------------

    async def _prompt(self, session_id: str, agent: str, text: str) -> None:
        if not session_id:
            raise NotificationError("No session to notify")
        try:
            await self.service.prompt(session_id, agent, text)
        except Exception as e:
            raise NotificationError(f"Failed to notify session {session_id}: {e}") from e

    async def _toast(self, title: str, message: str, variant: str, duration_ms: int) -> None:
        try:
            await self.service.show_toast(title, message, variant, duration_ms)
        except Exception as e:
            log.debug("Toast failed", title=title, error=str(e))

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def notify_terminal(self, task: Task) -> bool:
        """Queue the toast and the parent message for a terminal transition.

        The text is built now, from the registry as it stands right after the
        transition. Returns False when this exact transition (session id,
        completion stamp, status) was already notified.
        """
        key = (task.session_id, task.completed_at or "", task.status)
        if key in self._notified:
            return False
        self._notified.add(key)

        progress = compute_batch_progress(self.registry.all(), task.batch_id)
        still_running = sum(
            1 for t in self.registry.all() if t.batch_id == task.batch_id and t.status == RUNNING
        )
        duration = task_duration(task)

        toast_message = messages.toast_terminal_message(
            task.description, duration, progress.finished, progress.total, still_running
        )
        body = messages.task_completion_body(
            _HEADERS.get(task.status, messages.TASK_COMPLETED_HEADER),
            task.description,
            duration,
            progress.finished,
            progress.total,
            still_running,
            short_id(task.session_id),
            messages.LEFTOVER_TASKS_WARNING if still_running > 0 else "",
        )

        self._spawn(
            self._deliver_terminal(
                task,
                toast_title=_TOAST_TITLES.get(task.status, messages.TOAST_TASK_COMPLETED),
                toast_message=toast_message,
                body=body,
            )
        )
        log.info(
            "Task notification queued",
            session_id=task.session_id,
            status=task.status,
            parent_session_id=task.parent_session_id,
        )
        return True

    async def _deliver_terminal(
        self,
        task: Task,
        toast_title: str,
        toast_message: str,
        body: str,
    ) -> None:
        variant = "success" if task.status == COMPLETED else "error"
        await self._toast(toast_title, toast_message, variant, self.settings.toast_duration_ms)

        await asyncio.sleep(self.settings.notify_delay_ms / 1000)
        try:
            await self._prompt(task.parent_session_id, task.parent_agent, body)
        except NotificationError as e:
            log.debug("Parent notification skipped", session_id=task.session_id, error=str(e))

    # ------------------------------------------------------------------
    # Resume outcomes
    # ------------------------------------------------------------------

    async def notify_resume_complete(self, task: Task, ctx: ToolContext) -> None:
        text = messages.resume_completion_body(
            messages.resume_completed_header(task.resume_count),
            task.description,
            short_id(task.session_id),
        )
        try:
            await self._prompt(ctx.session_id, ctx.agent, text)
        except NotificationError as e:
            log.debug("Resume notification skipped", session_id=task.session_id, error=str(e))

    async def notify_resume_error(self, task: Task, error: str, ctx: ToolContext) -> None:
        text = messages.resume_error_body(
            messages.resume_failed_header(task.resume_count),
            task.description,
            error,
            short_id(task.session_id),
        )
        try:
            await self._prompt(ctx.session_id, ctx.agent, text)
        except NotificationError as e:
            log.debug("Resume error notification skipped", session_id=task.session_id, error=str(e))

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def show_progress(self, tasks: list[Task]) -> None:
        self._frame = (self._frame + 1) % 10
        toast = build_progress_toast(
            tasks,
            self._frame,
            display_seconds=self.settings.completion_display_seconds,
        )
        if toast is None:
            return
        await self._toast(
            toast.title,
            toast.message,
            toast.variant,
            self.settings.progress_toast_duration_ms,
        )

"""Conversational resumption of completed tasks."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from superagents import messages
from superagents.exceptions import InvalidTransitionError, SessionExpiredError, TaskNotFoundError
from superagents.logging import get_logger
from superagents.models import CHILD_TOOL_GATE, COMPLETED, RESUMED, Task, ToolContext
from superagents.polling import apply_progress

if TYPE_CHECKING:
    from superagents.manager import TaskManager

log = get_logger(__name__)

RESUME_TIMEOUT_ERROR = "Timeout waiting for response"


class ResumeController:
    """Re-opens a completed task and owns it until the follow-up is answered."""

    def __init__(self, manager: TaskManager):
        self.manager = manager

    @staticmethod
    def validate(task: Task) -> None:
        if task.status == RESUMED:
            raise InvalidTransitionError(
                task.session_id, task.status, messages.TASK_CURRENTLY_RESUMING
            )
        if task.status != COMPLETED:
            raise InvalidTransitionError(
                task.session_id, task.status, messages.only_completed_can_resume(task.status)
            )

    async def resume(self, id_or_prefix: str, prompt: str, ctx: ToolContext) -> Task:
        """Send a follow-up prompt to a completed task.

        Raises:
            TaskNotFoundError: nothing in memory or on disk matches.
            InvalidTransitionError: the task is not exactly ``completed``.
            SessionExpiredError: the child session no longer exists.
        """
        manager = self.manager
        task = await manager.resolve_with_fallback(id_or_prefix)
        if task is None:
            raise TaskNotFoundError(id_or_prefix)
        self.validate(task)

        previous_completed_at = task.completed_at
        previous_retrieved_at = task.result_retrieved_at
        manager.registry.set_status(task, RESUMED)
        task.resume_count += 1
        await manager.persist(task)

        try:
            exists = await manager.service.exists(task.session_id)
        except Exception as e:
            log.debug("Session check failed", session_id=task.session_id, error=str(e))
            exists = False

        if not exists:
            if task.status == RESUMED:
                manager.registry.set_status(task, COMPLETED)
                task.completed_at = previous_completed_at
                task.result_retrieved_at = previous_retrieved_at
                await manager.persist(task)
            log.info("Resume target expired", session_id=task.session_id)
            raise SessionExpiredError(task.session_id)

        baseline = await self._assistant_count(task.session_id)
        manager.spawn(self._continue(task, prompt, ctx, baseline))
        manager.poller.start()
        log.info(
            "Task resumed",
            session_id=task.session_id,
            resume_count=task.resume_count,
        )
        return task

    async def _assistant_count(self, session_id: str) -> int | None:
        try:
            history = await self.manager.service.messages(session_id)
        except Exception as e:
            log.debug("Message snapshot failed", session_id=session_id, error=str(e))
            return None
        return sum(1 for m in history if m.role == "assistant")

    async def _continue(
        self,
        task: Task,
        prompt: str,
        ctx: ToolContext,
        baseline: int | None,
    ) -> None:
        manager = self.manager
        settings = manager.config.tasks

        try:
            await manager.service.prompt_async(
                task.session_id, task.agent, prompt, tools=CHILD_TOOL_GATE
            )
        except Exception as e:
            await self._finish(task, ctx, error=str(e))
            return

        for attempt in range(1, settings.resume_max_attempts + 1):
            await asyncio.sleep(settings.resume_poll_seconds)
            if task.status != RESUMED:
                return

            try:
                statuses = await manager.service.status()
                history = await manager.service.messages(task.session_id)
            except Exception as e:
                log.debug("Resume poll failed", session_id=task.session_id, error=str(e))
                continue
            if task.status != RESUMED:
                return

            apply_progress(task, history)
            assistant_count = sum(1 for m in history if m.role == "assistant")
            if baseline is not None and assistant_count > baseline:
                await self._finish(task, ctx)
                return
            if statuses.get(task.session_id) == "idle" and attempt > settings.resume_idle_grace_attempts:
                await self._finish(task, ctx)
                return

        await self._finish(task, ctx, error=RESUME_TIMEOUT_ERROR)

    async def _finish(self, task: Task, ctx: ToolContext, error: str | None = None) -> None:
        """Close the resume episode; the task always ends up ``completed``."""
        if task.status != RESUMED:
            return
        self.manager.registry.set_status(task, COMPLETED)
        await self.manager.persist(task)
        if error is None:
            log.info("Resume completed", session_id=task.session_id, source="resume")
            await self.manager.dispatcher.notify_resume_complete(task, ctx)
        else:
            log.info("Resume failed", session_id=task.session_id, error=error, source="resume")
            await self.manager.dispatcher.notify_resume_error(task, error, ctx)

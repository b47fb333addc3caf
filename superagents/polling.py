"""Polling fallback of the completion detector."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from superagents.logging import get_logger
from superagents.models import COMPLETED, MAX_LAST_TOOLS, RUNNING, SessionMessage, Task
from superagents.timeutil import now_iso, now_utc, parse_iso

if TYPE_CHECKING:
    from superagents.manager import TaskManager

log = get_logger(__name__)


def count_tool_calls(messages: list[SessionMessage]) -> tuple[int, list[str]]:
    """Tool parts across assistant messages, with every tool name in order."""
    tools: list[str] = []
    for message in messages:
        if message.role != "assistant":
            continue
        tools.extend(message.tool_names())
    return len(tools), tools


def apply_progress(task: Task, messages: list[SessionMessage]) -> None:
    """Refresh the display-only progress snapshot.

    The call counter only moves forward while a task is live, even if the
    server returns a shorter history.
    """
    tool_calls, tools = count_tool_calls(messages)
    task.progress.tool_calls = max(task.progress.tool_calls, tool_calls)
    if tools:
        task.progress.last_tools = tools[-MAX_LAST_TOOLS:]
    task.progress.last_update = now_iso()


def has_assistant_text(messages: list[SessionMessage]) -> bool:
    return any(m.role == "assistant" and m.has_text() for m in messages)


class TaskPoller:
    """Singleton ticking loop owned by the ``TaskManager``."""

    def __init__(self, manager: TaskManager):
        self.manager = manager
        self._task: asyncio.Task[None] | None = None

    @property
    def interval(self) -> float:
        return self.manager.config.tasks.poll_interval_ms / 1000

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        log.debug("Polling started")

    def stop(self) -> None:
        """Stop the loop; safe to call from inside a tick."""
        task = self._task
        self._task = None
        if task is None:
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()
        log.debug("Polling stopped")

    async def _run(self) -> None:
        me = asyncio.current_task()
        while self._task is me:
            try:
                await asyncio.sleep(self.interval)
                if self._task is not me:
                    break
                if not await self.tick():
                    if self._task is me:
                        self._task = None
                    break
            except asyncio.CancelledError:
                break
            except Exception as e:
                log.warning("Poll tick failed", error=str(e))

    # ------------------------------------------------------------------
    # One tick
    # ------------------------------------------------------------------

    async def tick(self) -> bool:
        """Run one polling pass. Returns False when polling should stop."""
        manager = self.manager
        settings = manager.config.tasks

        if not await self._parent_still_there():
            return False

        await self._check_running()

        for task in manager.registry.active():
            if task.status != RUNNING:
                await self.refresh_progress(task)

        now = now_utc()
        if not manager.registry.active():
            self._sweep(now)

        if not self._has_recent_activity(now, settings.completion_display_seconds):
            return False

        await manager.dispatcher.show_progress(manager.registry.all())
        return True

    async def _parent_still_there(self) -> bool:
        """Clear everything once the supervising session has gone away."""
        manager = self.manager
        parent_id = manager.original_parent_session_id
        running = manager.registry.running()
        if not parent_id or not running:
            return True

        oldest = min(parse_iso(t.started_at) for t in running)
        if (now_utc() - oldest).total_seconds() <= manager.config.tasks.parent_grace_seconds:
            return True

        try:
            exists = await manager.service.exists(parent_id)
        except Exception as e:
            log.debug("Parent session check failed", parent_session_id=parent_id, error=str(e))
            exists = False

        if not exists:
            log.info("Parent session gone, clearing tasks", parent_session_id=parent_id)
            manager.clear_all()
            return False
        return True

    async def _check_running(self) -> None:
        manager = self.manager
        running = manager.registry.running()
        if not running:
            return

        try:
            statuses = await manager.service.status()
        except Exception as e:
            log.debug("Status query failed", error=str(e))
            return

        for task in running:
            if task.status != RUNNING:
                continue
            state = statuses.get(task.session_id)
            if state == "idle":
                await manager.finish_task(task, COMPLETED, source="poll")
            elif state is None:
                await self._check_history(task)
            else:
                await self.refresh_progress(task)

    async def _check_history(self, task: Task) -> None:
        """Session missing from the status map: decide from its message history."""
        messages = await self._fetch(task)
        if messages is None or task.status != RUNNING:
            return
        if has_assistant_text(messages):
            await self.manager.finish_task(task, COMPLETED, source="poll")
        else:
            apply_progress(task, messages)

    async def refresh_progress(self, task: Task) -> None:
        messages = await self._fetch(task)
        if messages is not None and task.is_active():
            apply_progress(task, messages)

    async def _fetch(self, task: Task) -> list[SessionMessage] | None:
        try:
            return await self.manager.service.messages(task.session_id)
        except Exception as e:
            log.debug("Message fetch failed", session_id=task.session_id, error=str(e))
            return None

    def _sweep(self, now) -> None:
        """Drop finished tasks whose result was read more than a display window ago."""
        window = self.manager.config.tasks.completion_display_seconds
        registry = self.manager.registry
        for task in registry.all():
            if not task.is_terminal() or not task.result_retrieved_at:
                continue
            if (now - parse_iso(task.result_retrieved_at)).total_seconds() > window:
                registry.remove(task.session_id)
                self.manager.dispatcher.forget(task.session_id)
                log.debug("Task swept", session_id=task.session_id)

    def _has_recent_activity(self, now, window: float) -> bool:
        for task in self.manager.registry.all():
            if task.is_active():
                return True
            if task.completed_at and (now - parse_iso(task.completed_at)).total_seconds() <= window:
                return True
        return False

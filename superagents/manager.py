"""Background task orchestrator.

``TaskManager`` owns the task registry, the poller, the event listener and
the signal queue. Event-stream events and failed prompt dispatches are posted
onto the queue and applied by a single consumer coroutine. Every terminal
transition runs in this order: registry mutation, notification dispatch,
persistence write.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Coroutine

from superagents import messages
from superagents.config import Config, get_config
from superagents.events import CLEAR, DELETED, IDLE, EventListener, classify_event
from superagents.exceptions import (
    AgentRequiredError,
    DispatchError,
    InvalidTransitionError,
    PersistenceError,
    TaskNotFoundError,
)
from superagents.fork import build_forked_prompt
from superagents.logging import get_logger
from superagents.models import (
    CANCELLED,
    CHILD_TOOL_GATE,
    COMPLETED,
    ERROR,
    RUNNING,
    LaunchInput,
    SessionEvent,
    SessionMessage,
    Task,
    ToolContext,
)
from superagents.notifications import NotificationDispatcher
from superagents.polling import TaskPoller, has_assistant_text
from superagents.registry import TaskRegistry
from superagents.resume import ResumeController
from superagents.session_service import SessionService
from superagents.storage import TaskStore

log = get_logger(__name__)


@dataclass
class DispatchFailed:
    """Signal posted when the initial prompt of a task could not be sent."""

    error: DispatchError


def dispatch_error_message(agent: str, error: Exception) -> str:
    text = str(error)
    if "agent.name" in text or "undefined" in text:
        return messages.agent_not_found(agent)
    return text


class TaskManager:
    """Launches, tracks and finishes background agent tasks."""

    def __init__(
        self,
        service: SessionService,
        store: TaskStore | None = None,
        config: Config | None = None,
    ):
        self.config = config or get_config()
        self.service = service
        self.store = store or TaskStore(self.config.resolved_storage_path())
        self.registry = TaskRegistry()
        self.dispatcher = NotificationDispatcher(service, self.registry, self.config.tasks)
        self.poller = TaskPoller(self)
        self.resumer = ResumeController(self)
        self.signals: asyncio.Queue[Any] = asyncio.Queue()
        self.listener = EventListener(
            service, self.signals, self.config.tasks.event_reconnect_seconds
        )
        self.original_parent_session_id: str | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._consumer: asyncio.Task[None] | None = None
        # session id -> number of callers blocked on it
        self._awaited: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Lifecycle of the manager itself
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start consuming signals and listening to the event stream."""
        self._ensure_consumer()
        self.listener.start()

    def _ensure_consumer(self) -> None:
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.create_task(self._consume())

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run a coroutine in the background, tracked until it finishes."""
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait until background work, queued signals and deliveries are done."""
        while True:
            if self._background:
                await asyncio.gather(*list(self._background), return_exceptions=True)
                continue
            if self._consumer is not None and not self._consumer.done():
                await self.signals.join()
            if self.dispatcher.pending_count:
                await self.dispatcher.drain()
                continue
            if not self._background:
                break

    async def shutdown(self) -> None:
        self.poller.stop()
        await self.listener.stop()

        pending = list(self._background)
        if self._consumer is not None:
            pending.append(self._consumer)
            self._consumer = None
        for task in pending:
            task.cancel()
        self.dispatcher.cancel_pending()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self.dispatcher.drain()

    async def _consume(self) -> None:
        while True:
            signal = await self.signals.get()
            try:
                if isinstance(signal, DispatchFailed):
                    await self._apply_dispatch_failure(signal)
                elif isinstance(signal, SessionEvent):
                    await self.handle_event(signal)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.warning("Signal handling failed", signal=type(signal).__name__, error=str(e))
            finally:
                self.signals.task_done()

    # ------------------------------------------------------------------
    # Launch
    # ------------------------------------------------------------------

    async def launch(self, launch_input: LaunchInput) -> Task:
        """Create a child session and start the task's first turn.

        Returns as soon as the session exists; the prompt is dispatched in
        the background and a dispatch failure turns the task into ``error``.
        """
        agent = (launch_input.agent or "").strip()
        if not agent:
            raise AgentRequiredError()

        title = f"Background: {launch_input.description}"
        prompt = launch_input.prompt
        if launch_input.fork:
            session_id, prompt = await self._create_forked(launch_input, title)
        else:
            session_id = await self.service.create(launch_input.parent_session_id, title)

        task = Task(
            session_id=session_id,
            parent_session_id=launch_input.parent_session_id,
            parent_message_id=launch_input.parent_message_id,
            parent_agent=launch_input.parent_agent,
            description=launch_input.description,
            prompt=launch_input.prompt,
            agent=agent,
            batch_id=self.registry.get_or_create_batch_id(),
            is_forked=launch_input.fork,
        )
        self.original_parent_session_id = launch_input.parent_session_id
        self.registry.add(task)
        log.info(
            "Task launched",
            session_id=session_id,
            agent=agent,
            batch_id=task.batch_id,
            forked=task.is_forked,
        )

        await self.persist(task)
        self.poller.start()
        self._ensure_consumer()
        self.spawn(self._dispatch_initial(task, prompt))
        return task

    async def _create_forked(self, launch_input: LaunchInput, title: str) -> tuple[str, str]:
        parent_id = launch_input.parent_session_id
        try:
            session_id = await self.service.fork(parent_id)
            return session_id, launch_input.prompt
        except NotImplementedError:
            log.debug("Native fork unavailable, injecting parent context", parent_session_id=parent_id)

        try:
            history = await self.service.messages(parent_id)
        except Exception as e:
            log.warning("Parent history unavailable for fork", parent_session_id=parent_id, error=str(e))
            history = []
        session_id = await self.service.create(parent_id, title)
        return session_id, build_forked_prompt(history, launch_input.prompt, self.config.fork)

    async def _dispatch_initial(self, task: Task, prompt: str) -> None:
        try:
            await self.service.prompt_async(
                task.session_id, task.agent, prompt, tools=CHILD_TOOL_GATE
            )
        except Exception as e:
            error = DispatchError(task.session_id, dispatch_error_message(task.agent, e))
            await self.signals.put(DispatchFailed(error))

    async def _apply_dispatch_failure(self, signal: DispatchFailed) -> None:
        task = self.registry.get(signal.error.session_id)
        if task is None or task.status != RUNNING:
            return
        await self.finish_task(task, ERROR, error=str(signal.error), source="dispatch")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def finish_task(
        self,
        task: Task,
        status: str,
        error: str | None = None,
        source: str = "",
        skip_notification: bool = False,
    ) -> bool:
        """Apply a ``running -> terminal`` transition exactly once.

        Returns False when the task is no longer running or no longer tracked.
        """
        if task.status != RUNNING or self.registry.get(task.session_id) is not task:
            return False

        self.registry.set_status(task, status, error=error)
        log.info("Task finished", session_id=task.session_id, status=status, source=source)

        if not skip_notification and task.session_id not in self._awaited:
            self.dispatcher.notify_terminal(task)
        await self.persist(task)
        return True

    async def handle_event(self, event: SessionEvent) -> None:
        action = classify_event(event)
        if action is None:
            return

        if action.kind == CLEAR:
            log.info("Clear command received", event=event.type)
            self.clear_all()
            return

        if action.kind == DELETED:
            if any(t.parent_session_id == action.session_id for t in self.registry):
                log.info("Parent session deleted", parent_session_id=action.session_id)
                self.clear_all()
                return
            task = self.registry.get(action.session_id)
            if task is not None and task.status == RUNNING:
                await self.finish_task(task, CANCELLED, error=messages.SESSION_DELETED, source="event")
            return

        if action.kind == IDLE:
            task = self.registry.get(action.session_id)
            if task is not None and task.status == RUNNING:
                await self.finish_task(task, COMPLETED, source="event")

    async def check_and_update(self, task: Task, skip_notification: bool = False) -> Task:
        """On-demand status check of one running task."""
        if task.status != RUNNING:
            return task

        try:
            statuses = await self.service.status()
        except Exception as e:
            log.debug("Status query failed", session_id=task.session_id, error=str(e))
            return task

        state = statuses.get(task.session_id)
        if state == "idle":
            await self.finish_task(
                task, COMPLETED, source="check", skip_notification=skip_notification
            )
        elif state is None:
            try:
                history = await self.service.messages(task.session_id)
            except Exception as e:
                log.debug("Message fetch failed", session_id=task.session_id, error=str(e))
                return task
            if task.status == RUNNING and has_assistant_text(history):
                await self.finish_task(
                    task, COMPLETED, source="check", skip_notification=skip_notification
                )
        return task

    async def cancel(self, id_or_prefix: str) -> Task:
        """Cancel a running task. The caller reports the result, so no parent notification."""
        task = self.get(id_or_prefix)
        if task is None:
            raise TaskNotFoundError(id_or_prefix)
        if task.status != RUNNING:
            raise InvalidTransitionError(
                task.session_id, task.status, messages.cannot_cancel(task.status)
            )

        self.registry.set_status(task, CANCELLED)
        self.spawn(self._abort(task.session_id))
        log.info("Task cancelled", session_id=task.session_id)
        await self.persist(task)
        return task

    def clear_all(self) -> int:
        """Abort running sessions and forget every task. The store is untouched."""
        self.poller.stop()
        running = self.registry.running()
        for task in running:
            self.spawn(self._abort(task.session_id))
        total = len(self.registry)
        for task in self.registry.all():
            self.dispatcher.forget(task.session_id)
        self.registry.clear()
        self.original_parent_session_id = None
        log.info("Cleared all tasks", running=len(running), total=total)
        return total

    async def _abort(self, session_id: str) -> None:
        try:
            await self.service.abort(session_id)
        except Exception as e:
            log.debug("Abort failed", session_id=session_id, error=str(e))

    async def resume(self, id_or_prefix: str, prompt: str, ctx: ToolContext) -> Task:
        return await self.resumer.resume(id_or_prefix, prompt, ctx)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def resolve_id(self, id_or_prefix: str) -> str | None:
        return self.registry.resolve_id(id_or_prefix)

    def get(self, id_or_prefix: str) -> Task | None:
        session_id = self.resolve_id(id_or_prefix)
        return self.registry.get(session_id) if session_id else None

    def list_all(self) -> list[Task]:
        return self.registry.all()

    def list_tasks(self, status: str | None = None) -> list[Task]:
        """Tasks newest first, optionally filtered by status."""
        tasks = self.registry.newest_first()
        if status:
            wanted = status.strip().lower()
            tasks = [t for t in tasks if t.status == wanted]
        return tasks

    async def resolve_with_fallback(self, id_or_prefix: str) -> Task | None:
        """Resolve in memory, then in the store; a store hit is rehydrated."""
        session_id = self.resolve_id(id_or_prefix)
        if session_id:
            return self.registry.get(session_id)

        found = await self.store.resolve(id_or_prefix)
        if found is None:
            return None

        hit, record = found
        task = record.to_task(hit)
        self.registry.add(task)
        log.info("Task rehydrated from store", session_id=hit, status=task.status)
        return task

    async def get_task_messages(self, session_id: str) -> list[SessionMessage]:
        return await self.service.messages(session_id)

    def mark_result_retrieved(self, task: Task) -> None:
        self.registry.mark_result_retrieved(task)

    # ------------------------------------------------------------------
    # Waiting
    # ------------------------------------------------------------------

    def clamp_timeout(self, timeout_ms: int | float | None) -> int:
        settings = self.config.tasks
        if timeout_ms is None:
            return settings.default_wait_timeout_ms
        return int(min(max(0, timeout_ms), settings.max_wait_timeout_ms))

    async def wait_for_tasks(
        self,
        ids: list[str],
        timeout_ms: int | float | None = None,
        suppress_notification: bool = True,
    ) -> dict[str, Task | None]:
        """Block until every task is settled or the timeout passes.

        Only observes the registry. With ``suppress_notification`` the generic
        parent notification is skipped for tasks finishing while we wait,
        since the caller receives the outcome directly.
        """
        timeout = self.clamp_timeout(timeout_ms) / 1000
        resolved = {task_id: self.resolve_id(task_id) for task_id in ids}
        watched = {sid for sid in resolved.values() if sid}

        if suppress_notification:
            for sid in watched:
                self._awaited[sid] = self._awaited.get(sid, 0) + 1

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        try:
            while True:
                pending = [
                    sid for sid in watched
                    if (task := self.registry.get(sid)) is not None and task.is_active()
                ]
                remaining = deadline - loop.time()
                if not pending or remaining <= 0:
                    break
                await asyncio.sleep(min(self.config.tasks.wait_poll_seconds, remaining))
        finally:
            if suppress_notification:
                for sid in watched:
                    count = self._awaited.get(sid, 0) - 1
                    if count > 0:
                        self._awaited[sid] = count
                    else:
                        self._awaited.pop(sid, None)

        return {
            task_id: self.registry.get(sid) if sid else None
            for task_id, sid in resolved.items()
        }

    async def wait_for_task(
        self,
        id_or_prefix: str,
        timeout_ms: int | float | None = None,
        suppress_notification: bool = True,
    ) -> Task | None:
        results = await self.wait_for_tasks([id_or_prefix], timeout_ms, suppress_notification)
        return results[id_or_prefix]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def persist(self, task: Task) -> None:
        """Write the task's shadow; a failed write is logged, never raised."""
        try:
            await self.store.save_one(task.session_id, task.to_persisted())
        except PersistenceError as e:
            log.warning("Task persistence failed", session_id=task.session_id, error=str(e))

    async def delete_persisted(self, session_id: str) -> bool:
        return await self.store.delete(session_id)

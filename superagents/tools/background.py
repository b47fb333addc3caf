"""Tools exposed to the supervising agent for background task control."""

from typing import Any

from superagents import messages
from superagents.exceptions import (
    AgentRequiredError,
    InvalidTransitionError,
    SessionExpiredError,
    TaskNotFoundError,
)
from superagents.formatting import (
    format_block_result,
    format_task_list,
    format_task_result,
    format_task_result_error,
    format_task_status,
    short_id,
)
from superagents.logging import get_logger
from superagents.manager import TaskManager
from superagents.models import COMPLETED, RUNNING, LaunchInput, Task, ToolContext
from superagents.tools.registry import Tool, ToolResult

log = get_logger(__name__)

# Blocking tools may wait up to the maximum wait timeout.
_BLOCKING_TOOL_TIMEOUT_SECONDS = 660.0


def _context(kwargs: dict[str, Any]) -> ToolContext:
    ctx = kwargs.get("_context")
    return ctx if isinstance(ctx, ToolContext) else ToolContext(session_id="")


class _ManagerTool(Tool):
    def __init__(self, manager: TaskManager):
        self.manager = manager


class BackgroundTaskTool(_ManagerTool):
    """Launch a background agent, or resume a completed one."""

    name = "background_task"
    description = messages.BACKGROUND_TASK_DESCRIPTION
    parameters = {
        "type": "object",
        "properties": {
            "description": {
                "type": "string",
                "description": "Short task description (shown in status).",
            },
            "prompt": {
                "type": "string",
                "description": "Full detailed prompt for the agent, or the follow-up in resume mode.",
            },
            "agent": {
                "type": "string",
                "description": "Agent type to use (any registered agent).",
            },
            "resume": {
                "type": "string",
                "description": "Task ID to resume. Switches the tool to resume mode.",
            },
            "fork": {
                "type": "boolean",
                "description": "Start the agent with this conversation's context.",
            },
        },
        "required": ["prompt"],
    }

    async def execute(
        self,
        prompt: str = "",
        description: str = "",
        agent: str = "",
        resume: str | None = None,
        fork: bool = False,
        **kwargs: Any,
    ) -> ToolResult:
        ctx = _context(kwargs)
        if resume:
            return await self._resume(resume, prompt, ctx, ignored=bool(agent or description))

        if not (agent or "").strip():
            return ToolResult.failure(messages.AGENT_REQUIRED)

        try:
            task = await self.manager.launch(
                LaunchInput(
                    description=description,
                    prompt=prompt,
                    agent=agent.strip(),
                    parent_session_id=ctx.session_id,
                    parent_message_id=ctx.message_id,
                    parent_agent=ctx.agent,
                    fork=bool(fork),
                )
            )
        except AgentRequiredError:
            return ToolResult.failure(messages.AGENT_REQUIRED)
        except Exception as e:
            log.warning("Launch failed", agent=agent, error=str(e))
            return ToolResult.failure(messages.launch_failed(str(e)))

        return ToolResult(content=messages.task_launched(short_id(task.session_id)))

    async def _resume(self, task_id: str, prompt: str, ctx: ToolContext, ignored: bool) -> ToolResult:
        if not (prompt or "").strip():
            return ToolResult.failure(messages.PROMPT_REQUIRED)

        try:
            task = await self.manager.resume(task_id, prompt, ctx)
        except TaskNotFoundError:
            return ToolResult.failure(messages.task_not_found_with_hint(task_id))
        except (InvalidTransitionError, SessionExpiredError) as e:
            return ToolResult.failure(str(e))
        except Exception as e:
            log.warning("Resume failed", task_id=task_id, error=str(e))
            return ToolResult.failure(messages.resume_failed(str(e)))

        text = messages.resume_initiated(short_id(task.session_id), task.resume_count)
        if ignored:
            text = f"{messages.RESUME_MODE_IGNORES_PARAMS}\n\n{text}"
        return ToolResult(content=text)


class BackgroundOutputTool(_ManagerTool):
    """Status or result of one task, optionally waiting for it."""

    name = "background_output"
    description = messages.BACKGROUND_OUTPUT_DESCRIPTION
    timeout_seconds = _BLOCKING_TOOL_TIMEOUT_SECONDS
    parameters = {
        "type": "object",
        "properties": {
            "task_id": {"type": "string", "description": "Task ID (or unique prefix)."},
            "block": {"type": "boolean", "description": "Wait for completion."},
            "timeout": {"type": "number", "description": "Max wait time in ms when blocking."},
        },
        "required": ["task_id"],
    }

    async def execute(
        self,
        task_id: str,
        block: bool = False,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        try:
            task = self.manager.get(task_id)
            if task is None:
                return ToolResult.failure(messages.task_not_found(task_id))

            # The caller sees the outcome right here, so no parent notification.
            task = await self.manager.check_and_update(task, skip_notification=True)
            if task.is_terminal():
                return ToolResult(content=await self._finished(task))
            if not block:
                return ToolResult(content=format_task_status(task))

            timeout_ms = self.manager.clamp_timeout(timeout)
            waited = await self.manager.wait_for_task(
                task.session_id, timeout_ms, suppress_notification=True
            )
            if waited is None:
                return ToolResult.failure(messages.task_deleted(task_id))
            if waited.is_terminal():
                return ToolResult(content=await self._finished(waited))
            return ToolResult(
                content=f"{messages.output_timeout(timeout_ms, waited.status)}\n\n"
                f"{format_task_status(waited)}"
            )
        except Exception as e:
            return ToolResult.failure(messages.output_failed(str(e)))

    async def _finished(self, task: Task) -> str:
        self.manager.mark_result_retrieved(task)
        if task.status != COMPLETED:
            return format_task_status(task)
        try:
            history = await self.manager.get_task_messages(task.session_id)
        except Exception as e:
            return format_task_result_error(task, str(e))
        return format_task_result(task, history)


class BackgroundCancelTool(_ManagerTool):
    """Cancel one running task."""

    name = "background_cancel"
    description = messages.BACKGROUND_CANCEL_DESCRIPTION
    parameters = {
        "type": "object",
        "properties": {
            "task_id": {"type": "string", "description": "Task ID to cancel."},
        },
        "required": ["task_id"],
    }

    async def execute(self, task_id: str, **kwargs: Any) -> ToolResult:
        try:
            task = await self.manager.cancel(task_id)
        except TaskNotFoundError:
            return ToolResult.failure(messages.task_not_found(task_id))
        except Exception as e:
            return ToolResult.failure(messages.cancel_failed(str(e)))
        return ToolResult(content=messages.task_cancelled(short_id(task.session_id), task.description))


class BackgroundListTool(_ManagerTool):
    name = "background_list"
    description = messages.BACKGROUND_LIST_DESCRIPTION
    parameters = {
        "type": "object",
        "properties": {
            "status": {
                "type": "string",
                "enum": ["running", "completed", "error", "cancelled", "resumed"],
                "description": "Filter by status.",
            },
        },
        "required": [],
    }

    async def execute(self, status: str | None = None, **kwargs: Any) -> ToolResult:
        try:
            tasks = self.manager.list_tasks(status)
        except Exception as e:
            return ToolResult.failure(messages.list_failed(str(e)))
        if not tasks:
            if status:
                return ToolResult(content=messages.no_tasks_with_status(status))
            return ToolResult(content=messages.NO_TASKS_FOUND)
        return ToolResult(content=format_task_list(tasks))


class BackgroundClearTool(_ManagerTool):
    name = "background_clear"
    description = messages.BACKGROUND_CLEAR_DESCRIPTION
    parameters = {"type": "object", "properties": {}, "required": []}

    async def execute(self, **kwargs: Any) -> ToolResult:
        try:
            tasks = self.manager.list_all()
            running = sum(1 for t in tasks if t.status == RUNNING)
            self.manager.clear_all()
        except Exception as e:
            return ToolResult.failure(messages.clear_failed(str(e)))
        if not tasks:
            return ToolResult(content=messages.NO_TASKS_TO_CLEAR)
        return ToolResult(content=messages.cleared_all_tasks(running, len(tasks)))


class BackgroundBlockTool(_ManagerTool):
    """Wait for several tasks at once."""

    name = "background_block"
    description = messages.BACKGROUND_BLOCK_DESCRIPTION
    timeout_seconds = _BLOCKING_TOOL_TIMEOUT_SECONDS
    parameters = {
        "type": "object",
        "properties": {
            "task_ids": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Task IDs to wait for.",
            },
            "timeout": {"type": "number", "description": "Max wait time in ms."},
        },
        "required": ["task_ids"],
    }

    async def execute(
        self,
        task_ids: list[str],
        timeout: float | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        if not task_ids:
            return ToolResult.failure(messages.TASK_IDS_REQUIRED)

        try:
            current = [(task_id, self.manager.get(task_id)) for task_id in task_ids]
            waiting = [task_id for task_id, task in current if task is not None and task.is_active()]
            if not waiting:
                return ToolResult(content=format_block_result(current, timed_out=False))

            results = await self.manager.wait_for_tasks(
                waiting, self.manager.clamp_timeout(timeout), suppress_notification=True
            )
            final = [
                (task_id, results.get(task_id) or self.manager.get(task_id))
                for task_id in task_ids
            ]
            timed_out = any(task is not None and task.is_active() for _, task in final)
            return ToolResult(content=format_block_result(final, timed_out=timed_out))
        except Exception as e:
            return ToolResult.failure(messages.block_failed(str(e)))

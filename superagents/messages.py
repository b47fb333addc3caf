"""User-facing text: tool descriptions, notifications, toasts and errors."""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Tool descriptions
# ---------------------------------------------------------------------------

BACKGROUND_TASK_DESCRIPTION = """Launch a background agent task that runs asynchronously.

The task runs in a separate session while you continue with other work.

Use this for:
- Long-running research tasks
- Complex analysis that doesn't need immediate results
- Parallel workloads to maximize throughput

Arguments:
- resume: (Optional) Task ID to resume - if provided, enters resume mode
- description: Short task description (shown in status)
- prompt: Full detailed prompt for the agent (or follow-up message in resume mode)
- agent: Agent type to use (any registered agent)
- fork: (Optional) Start the agent with this conversation's context

IMPORTANT: You'll be informed when each task is complete. DO NOT assume all tasks were done, check again if all agents you need are complete.

Returns immediately with task ID. The task will run in background and notify you when complete.
Optionally use `background_output` later if you need to check results manually with or without blocking."""

BACKGROUND_OUTPUT_DESCRIPTION = """Get output from a background task.

Arguments:
- task_id: Required task ID to get output from
- block: If true, wait for task completion. If false (default), return current status immediately.
- timeout: Max wait time in ms when blocking (default: 60000, max: 600000)

Returns:
- When not blocking: Returns current status
- When blocking: Waits for completion, then returns full result"""

BACKGROUND_CANCEL_DESCRIPTION = """Cancel a running background task.

Only works for tasks with status "running". Aborts the background session and marks the task as cancelled.

Arguments:
- task_id: Required task ID to cancel."""

BACKGROUND_LIST_DESCRIPTION = """List all background tasks.

Shows all running, completed, error, and cancelled background tasks with their status.

Arguments:
- status: Optional filter by status ("running", "completed", "error", "cancelled")."""

BACKGROUND_CLEAR_DESCRIPTION = """Clear and abort all background tasks immediately.

Use this to stop all running background agents and clear the task list.
This is useful when you want to start fresh or cancel all pending work."""

BACKGROUND_BLOCK_DESCRIPTION = """Wait for specific background tasks to complete.

This tool blocks until all specified tasks complete OR the timeout is reached.
Use this when you need to wait for task results before proceeding.

Arguments:
- task_ids: Required array of task IDs to wait for
- timeout: Max wait time in ms (default: 60000, max: 600000)

Returns:
- Status summary of all specified tasks
- Completes immediately if all tasks are already done"""


# ---------------------------------------------------------------------------
# Success messages
# ---------------------------------------------------------------------------


def task_launched(short_task_id: str) -> str:
    return (
        "⏳ **Background task launched**\n"
        f"Task ID: `{short_task_id}`\n"
        "\n"
        "Task will run in background. You'll be notified when complete."
    )


def task_cancelled(short_task_id: str, description: str) -> str:
    return (
        "⊘ **Task cancelled**\n"
        "\n"
        f"Task ID: `{short_task_id}`\n"
        f"Description: {description}\n"
        "Status: ⊘ cancelled"
    )


def resume_initiated(short_task_id: str, resume_count: int) -> str:
    count_info = f"\nResume count: {resume_count}" if resume_count > 1 else ""
    return (
        "⏳ **Resume initiated**\n"
        f"Task ID: `{short_task_id}`{count_info}\n"
        "\n"
        "Follow-up prompt sent. You'll be notified when the response is ready."
    )


def cleared_all_tasks(running_count: int, total_count: int) -> str:
    return (
        "✓ **Cleared all background tasks**\n"
        "\n"
        f"Running tasks aborted: {running_count}\n"
        f"Total tasks cleared: {total_count}"
    )


# ---------------------------------------------------------------------------
# Error messages
# ---------------------------------------------------------------------------

AGENT_REQUIRED = "Agent parameter is required. Specify which agent to use."
PROMPT_REQUIRED = "Prompt is required when resuming a task"
TASK_CURRENTLY_RESUMING = "Task is currently being resumed. Wait for completion."
SESSION_EXPIRED = "Session expired or was deleted. Start a new background_task to continue."
SESSION_DELETED = "Session deleted"
NO_TASKS_FOUND = "No background tasks found."
NO_TASKS_TO_CLEAR = "No background tasks to clear."
TASK_IDS_REQUIRED = "Error: task_ids array is required and must not be empty"


def task_not_found(task_id: str) -> str:
    return f"Task not found: {task_id}"


def task_not_found_with_hint(task_id: str) -> str:
    return f"Task not found: {task_id}. Use background_list to see available tasks."


def only_completed_can_resume(current_status: str) -> str:
    return f"Only completed tasks can be resumed. Current status: {current_status}"


def cannot_cancel(current_status: str) -> str:
    return (
        f'Cannot cancel task: current status is "{current_status}". '
        "Only running tasks can be cancelled."
    )


def agent_not_found(agent: str) -> str:
    return f'Agent "{agent}" not found. Make sure the agent is registered.'


def launch_failed(message: str) -> str:
    return f"Failed to launch background task: {message}"


def cancel_failed(message: str) -> str:
    return f"Error cancelling task: {message}"


def list_failed(message: str) -> str:
    return f"Error listing tasks: {message}"


def output_failed(message: str) -> str:
    return f"Error getting output: {message}"


def clear_failed(message: str) -> str:
    return f"Error clearing tasks: {message}"


def resume_failed(message: str) -> str:
    return f"Error resuming task: {message}"


def block_failed(message: str) -> str:
    return f"Error waiting for tasks: {message}"


def no_tasks_with_status(status: str) -> str:
    return f'No background tasks found with status "{status}".'


def task_deleted(task_id: str) -> str:
    return f"Task was deleted: {task_id}"


def output_timeout(timeout_ms: int, status: str) -> str:
    return f"Timeout exceeded ({timeout_ms}ms). Task still {status}."


RESUME_MODE_IGNORES_PARAMS = "Note: agent and description are ignored in resume mode."


# ---------------------------------------------------------------------------
# Parent-session notifications
# ---------------------------------------------------------------------------

TASK_COMPLETED_HEADER = "✓ **Background task completed**"
TASK_FAILED_HEADER = "✗ **Background task failed**"
TASK_CANCELLED_HEADER = "⊘ **Background task cancelled**"

LEFTOVER_TASKS_WARNING = (
    "WATCH OUT for leftover tasks, you will likely WANT to wait for all tasks to complete."
)


def task_completion_body(
    header: str,
    description: str,
    duration: str,
    completed_count: int,
    total_count: int,
    running_count: int,
    short_task_id: str,
    leftover_warning: str = "",
) -> str:
    tail = f" {leftover_warning}" if leftover_warning else ""
    return (
        f"{header}\n"
        f'Task "{description}" finished in {duration}.\n'
        f"Batch progress: {completed_count}/{total_count} tasks complete, "
        f"{running_count} still running.\n"
        f'If you need results immediately, use background_output(task_id="{short_task_id}").\n'
        f"Otherwise, continue working or just say 'waiting' and halt.{tail}"
    )


def resume_completed_header(resume_count: int) -> str:
    if resume_count > 1:
        return f"✓ **Resume #{resume_count} completed**"
    return "✓ **Resume completed**"


def resume_failed_header(resume_count: int) -> str:
    if resume_count > 1:
        return f"✗ **Resume #{resume_count} failed**"
    return "✗ **Resume failed**"


def resume_completion_body(header: str, description: str, short_task_id: str) -> str:
    return (
        f"{header}\n"
        f'Task "{description}" finished. '
        f'Use background_output(task_id="{short_task_id}") for full response.'
    )


def resume_error_body(header: str, description: str, error_message: str, short_task_id: str) -> str:
    return (
        f"{header}\n"
        f'Task "{description}" failed: {error_message}\n'
        f'Use background_output(task_id="{short_task_id}") for more details.'
    )


# ---------------------------------------------------------------------------
# Toasts
# ---------------------------------------------------------------------------

TOAST_TASK_COMPLETED = "✓ Task completed"
TOAST_TASK_FAILED = "✗ Task failed"
TOAST_TASK_CANCELLED = "⊘ Task cancelled"
TOAST_TASKS_COMPLETE = "✓ Tasks complete"


def toast_background_tasks_running(spinner: str) -> str:
    return f"{spinner} Background Tasks"


def toast_terminal_message(
    description: str,
    duration: str,
    completed_count: int,
    total_count: int,
    running_count: int,
) -> str:
    return (
        f'Task "{description}" finished in {duration}. '
        f"Batch: {completed_count}/{total_count} complete, {running_count} still running."
    )


def and_more_finished(count: int) -> str:
    return f"   ... and {count} more finished"

"""Markdown renderings of tasks for tool results and the CLI."""

from __future__ import annotations

from datetime import datetime

from superagents.models import (
    CANCELLED,
    COMPLETED,
    ERROR,
    RESUMED,
    RUNNING,
    SessionMessage,
    Task,
)
from superagents.timeutil import now_utc, parse_iso

STATUS_ICONS = {
    RUNNING: "⏳",
    COMPLETED: "✓",
    ERROR: "✗",
    CANCELLED: "⊘",
    RESUMED: "↻",
}

PROMPT_PREVIEW_CHARS = 500
LIST_DESCRIPTION_CHARS = 30


def short_id(session_id: str) -> str:
    """``ses_41e080918ffeyhQtX6E4vERe4O`` -> ``ses_41e08091``."""
    if not session_id.startswith("ses_"):
        return session_id[:12]
    return f"ses_{session_id[4:][:8]}"


def toast_id(session_id: str) -> str:
    return session_id[-8:]


def format_duration(start: str | datetime, end: str | datetime | None = None) -> str:
    start_dt = parse_iso(start) if isinstance(start, str) else start
    if end is None:
        end_dt = now_utc()
    else:
        end_dt = parse_iso(end) if isinstance(end, str) else end

    seconds = max(0, int((end_dt - start_dt).total_seconds()))
    minutes = seconds // 60
    hours = minutes // 60

    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return f"{text[:max_length]}..."


def status_icon(status: str) -> str:
    return STATUS_ICONS.get(status, "?")


def task_duration(task: Task) -> str:
    return format_duration(task.started_at, task.completed_at)


def format_task_status(task: Task) -> str:
    icon = status_icon(task.status)

    progress_section = ""
    if task.progress.last_tools:
        progress_section = f"\n| Last tools | {' → '.join(task.progress.last_tools)} |"

    status_note = ""
    if task.status == RUNNING:
        status_note = "\n\n> ⏳ **Running**: Task is still in progress. Check back later for results."
    elif task.status == ERROR:
        status_note = f"\n\n> ✗ **Failed**: {task.error or 'Unknown error'}"
    elif task.status == CANCELLED:
        status_note = "\n\n> ⊘ **Cancelled**: Task was cancelled before completion."

    return (
        f"# {icon} Task Status\n"
        "\n"
        "| Field | Value |\n"
        "|-------|-------|\n"
        f"| Task ID | `{short_id(task.session_id)}` |\n"
        f"| Description | {task.description} |\n"
        f"| Agent | {task.agent} |\n"
        f"| Status | {icon} **{task.status}** |\n"
        f"| Duration | {task_duration(task)} |{progress_section}\n"
        f"{status_note}\n"
        "## Original Prompt\n"
        "\n"
        "```\n"
        f"{truncate_text(task.prompt, PROMPT_PREVIEW_CHARS)}\n"
        "```"
    )


def _result_header(task: Task) -> str:
    return (
        "✓ **Task Completed**\n"
        "\n"
        "| Field | Value |\n"
        "|-------|-------|\n"
        f"| Task ID | `{short_id(task.session_id)}` |\n"
        f"| Description | {task.description} |\n"
        f"| Duration | {task_duration(task)} |\n"
        "\n"
        "---\n"
        "\n"
    )


def format_task_result(task: Task, messages: list[SessionMessage]) -> str:
    """Last assistant message text of a finished task."""
    if not messages:
        return _result_header(task) + "(No messages found)"

    assistant = [m for m in messages if m.role == "assistant"]
    if not assistant:
        return _result_header(task) + "(No assistant response found)"

    return _result_header(task) + (assistant[-1].text_content() or "(No text output)")


def format_task_result_error(task: Task, error: str) -> str:
    return (
        "Task Result\n"
        "\n"
        f"Task ID: {short_id(task.session_id)}\n"
        f"Description: {task.description}\n"
        f"Duration: {task_duration(task)}\n"
        "\n"
        "---\n"
        "\n"
        f"Error fetching messages: {error}"
    )


def format_task_list(tasks: list[Task]) -> str:
    """Table of tasks (caller sorts) with per-status totals."""
    lines = [
        "# Background Tasks",
        "",
        "| Task ID | Description | Agent | Status | Duration |",
        "|---------|-------------|-------|--------|----------|",
    ]
    for task in tasks:
        desc = task.description
        if len(desc) > LIST_DESCRIPTION_CHARS:
            desc = f"{desc[:LIST_DESCRIPTION_CHARS - 3]}..."
        resumed = " (resumed)" if task.resume_count > 0 else ""
        icon = status_icon(task.status)
        lines.append(
            f"| `{short_id(task.session_id)}{resumed}` | {desc} | {task.agent} "
            f"| {icon} {task.status} | {task_duration(task)} |"
        )

    def count(status: str) -> int:
        return sum(1 for t in tasks if t.status == status)

    lines.append("")
    lines.append("---")
    lines.append(
        f"**Total: {len(tasks)}** | ⏳ {count(RUNNING)} running | ✓ {count(COMPLETED)} completed"
        f" | ✗ {count(ERROR)} error | ⊘ {count(CANCELLED)} cancelled"
    )
    return "\n".join(lines)


def format_block_result(statuses: list[tuple[str, Task | None]], timed_out: bool) -> str:
    """Summary for a multi-task wait: ``statuses`` pairs each requested id with its task."""
    lines: list[str] = []
    if timed_out:
        lines.append("# ⏱️ Block Timeout\n")
        lines.append("Some tasks did not complete within the timeout period.\n")
    else:
        lines.append("# ✓ All Tasks Completed\n")

    lines.append("| Task ID | Status | Description |")
    lines.append("|---------|--------|-------------|")

    for requested_id, task in statuses:
        if task is None:
            lines.append(f"| `{requested_id}` | ❓ Not found | - |")
            continue
        icon = status_icon(task.status)
        status = f"{icon} {task.status}"
        if task.is_active():
            status += " (still running)"
        lines.append(f"| `{requested_id}` | {status} | {task.description} |")

    finished = [task for _, task in statuses if task and task.status in (COMPLETED, ERROR)]
    if finished:
        lines.append("\n## Task Details\n")
        for task in finished:
            lines.append(f"### {short_id(task.session_id)}\n")
            lines.append(format_task_status(task))
            lines.append("")

    return "\n".join(lines)

"""Batch progress aggregation and the live progress toast."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from superagents import messages
from superagents.formatting import format_duration, toast_id
from superagents.models import COMPLETED, ERROR, Task
from superagents.timeutil import now_utc, parse_iso

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
BAR_LENGTH = 10
MAX_VISIBLE_COMPLETED = 10


@dataclass
class BatchProgress:
    batch_id: str
    total: int
    finished: int
    running: int
    percent: int
    bar: str
    tool_calls: int

    def summary(self) -> str:
        return (
            f"[{self.bar}] {self.finished}/{self.total} agents ({self.percent}%) "
            f"| {self.tool_calls} tool calls"
        )


@dataclass
class ProgressToast:
    title: str
    message: str
    variant: str


def render_bar(finished: int, total: int, length: int = BAR_LENGTH) -> str:
    filled = int(round(finished / max(total, 1) * length))
    filled = max(0, min(length, filled))
    return "█" * filled + "░" * (length - filled)


def compute_batch_progress(tasks: list[Task], batch_id: str) -> BatchProgress:
    """Aggregate every task sharing ``batch_id``; ``running`` counts active tasks."""
    batch = [t for t in tasks if t.batch_id == batch_id]
    total = len(batch)
    finished = sum(1 for t in batch if t.is_terminal())
    running = sum(1 for t in batch if t.is_active())
    percent = int(round(finished / total * 100)) if total else 0
    return BatchProgress(
        batch_id=batch_id,
        total=total,
        finished=finished,
        running=running,
        percent=percent,
        bar=render_bar(finished, total),
        tool_calls=sum(t.progress.tool_calls for t in batch),
    )


def _completed_at(task: Task) -> float:
    return parse_iso(task.completed_at).timestamp() if task.completed_at else 0.0


def _recently_completed(task: Task, now: datetime, display_seconds: float) -> bool:
    if not task.completed_at:
        return False
    return (now - parse_iso(task.completed_at)).total_seconds() <= display_seconds


def _tools_suffix(task: Task) -> str:
    tools = task.progress.last_tools[-3:]
    if not tools:
        return ""
    *previous, last = tools
    if previous:
        return f" - {' > '.join(previous)} > ｢{last}｣"
    return f" - ｢{last}｣"


def build_progress_toast(
    tasks: list[Task],
    frame: int,
    display_seconds: float = 10.0,
    now: datetime | None = None,
) -> ProgressToast | None:
    """Spinner toast for the live batch, or ``None`` when nothing is worth showing."""
    if not tasks:
        return None
    now = now or now_utc()

    active = [t for t in tasks if t.is_active()]
    finished = [t for t in tasks if t.is_terminal()]
    recent = finished if active else [
        t for t in finished if _recently_completed(t, now, display_seconds)
    ]
    visible = active + recent
    if not visible:
        return None

    batch_id = visible[0].batch_id
    progress = compute_batch_progress(tasks, batch_id)
    spinner = SPINNER_FRAMES[frame % len(SPINNER_FRAMES)]

    lines: list[str] = []
    batch_active = [t for t in active if t.batch_id == batch_id]
    for task in batch_active:
        lines.append(
            f"{spinner} [{toast_id(task.session_id)}] {task.agent}: {task.description} "
            f"({format_duration(task.started_at, now)}){_tools_suffix(task)}"
        )

    batch_finished = sorted(
        (t for t in tasks if t.batch_id == batch_id and t.is_terminal()),
        key=_completed_at,
        reverse=True,
    )
    shown = batch_finished[:MAX_VISIBLE_COMPLETED]
    for task in shown:
        icon = "✓" if task.status == COMPLETED else "✗" if task.status == ERROR else "⊘"
        lines.append(
            f"{icon} [{toast_id(task.session_id)}] {task.agent}: {task.description} "
            f"({format_duration(task.started_at, task.completed_at)})"
        )
    hidden = len(batch_finished) - len(shown)
    if hidden > 0:
        lines.append(messages.and_more_finished(hidden))

    if batch_active:
        title = messages.toast_background_tasks_running(spinner)
        variant = "info"
    else:
        title = messages.TOAST_TASKS_COMPLETE
        variant = "success"

    return ProgressToast(
        title=title,
        message="\n".join(lines) + "\n\n" + progress.summary(),
        variant=variant,
    )

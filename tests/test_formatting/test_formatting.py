from superagents.formatting import (
    format_block_result,
    format_duration,
    format_task_list,
    format_task_result,
    format_task_result_error,
    format_task_status,
    toast_id,
    truncate_text,
)
from superagents.models import COMPLETED, ERROR, RUNNING, SessionMessage, Task


def _task(**overrides) -> Task:
    values = {
        "session_id": "ses_41e080918ffeyhQtX6E4vERe4O",
        "parent_session_id": "ses_parent",
        "description": "Map the auth flow",
        "agent": "explore",
        "prompt": "Trace every login path",
        "started_at": "2026-05-01T12:00:00+00:00",
    }
    values.update(overrides)
    return Task(**values)


def test_format_duration():
    start = "2026-05-01T12:00:00+00:00"
    assert format_duration(start, "2026-05-01T12:00:42+00:00") == "42s"
    assert format_duration(start, "2026-05-01T12:03:05+00:00") == "3m 5s"
    assert format_duration(start, "2026-05-01T14:01:02+00:00") == "2h 1m 2s"
    assert format_duration(start, "2026-05-01T11:00:00+00:00") == "0s"


def test_truncate_and_toast_id():
    assert truncate_text("abcdef", 3) == "abc..."
    assert truncate_text("abc", 3) == "abc"
    assert toast_id("ses_41e080918ffeyhQtX6E4vERe4O") == "E4vERe4O"


def test_status_of_running_task():
    task = _task()
    task.progress.last_tools = ["glob", "read"]

    text = format_task_status(task)

    assert text.startswith("# ⏳ Task Status")
    assert "| Task ID | `ses_41e08091` |" in text
    assert "| Last tools | glob → read |" in text
    assert "Task is still in progress" in text
    assert "Trace every login path" in text


def test_status_of_failed_task():
    task = _task(status=ERROR, error="Agent crashed", completed_at="2026-05-01T12:00:10+00:00")

    text = format_task_status(task)

    assert "> ✗ **Failed**: Agent crashed" in text
    assert "| Duration | 10s |" in text


def test_result_uses_last_assistant_text():
    task = _task(status=COMPLETED, completed_at="2026-05-01T12:01:00+00:00")
    history = [
        SessionMessage(role="user", parts=[{"type": "text", "text": "go"}]),
        SessionMessage(role="assistant", parts=[{"type": "text", "text": "draft"}]),
        SessionMessage(
            role="assistant",
            parts=[{"type": "tool", "tool": "read"}, {"type": "text", "text": "final answer"}],
        ),
    ]

    text = format_task_result(task, history)

    assert text.startswith("✓ **Task Completed**")
    assert "| Duration | 1m 0s |" in text
    assert text.endswith("final answer")


def test_result_without_messages():
    task = _task(status=COMPLETED, completed_at="2026-05-01T12:01:00+00:00")

    assert format_task_result(task, []).endswith("(No messages found)")
    user_only = [SessionMessage(role="user", parts=[{"type": "text", "text": "go"}])]
    assert format_task_result(task, user_only).endswith("(No assistant response found)")
    tool_only = [SessionMessage(role="assistant", parts=[{"type": "tool", "tool": "read"}])]
    assert format_task_result(task, tool_only).endswith("(No text output)")
    assert format_task_result_error(task, "timeout").endswith("Error fetching messages: timeout")


def test_task_list_truncates_descriptions_and_marks_resumed():
    long_desc = "A description that is clearly longer than thirty characters"
    tasks = [
        _task(description=long_desc, resume_count=1, status=COMPLETED, completed_at="2026-05-01T12:00:05+00:00"),
        _task(session_id="ses_9999999999", description="short"),
    ]

    text = format_task_list(tasks)

    assert "| `ses_41e08091 (resumed)` | A description that is clear... |" in text
    assert "| `ses_99999999` | short | explore | ⏳ running |" in text
    assert text.endswith(
        "**Total: 2** | ⏳ 1 running | ✓ 1 completed | ✗ 0 error | ⊘ 0 cancelled"
    )


def test_block_result_details_only_for_finished_tasks():
    done = _task(status=COMPLETED, completed_at="2026-05-01T12:00:05+00:00")
    busy = _task(session_id="ses_busy0000000", description="busy", status=RUNNING)

    text = format_block_result([("ses_41e", done), ("ses_busy", busy), ("ses_gone", None)], timed_out=True)

    assert text.startswith("# ⏱️ Block Timeout")
    assert "| `ses_41e` | ✓ completed | Map the auth flow |" in text
    assert "| `ses_busy` | ⏳ running (still running) | busy |" in text
    assert "| `ses_gone` | ❓ Not found | - |" in text
    assert "### ses_41e08091" in text
    assert "### ses_busy0000" not in text

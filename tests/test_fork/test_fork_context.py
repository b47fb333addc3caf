from superagents.config import ForkConfig
from superagents.fork import (
    build_forked_prompt,
    estimate_tokens,
    format_messages_as_context,
    process_messages_for_fork,
    truncate_tool_result,
)
from superagents.models import SessionMessage


def _text(role: str, text: str) -> SessionMessage:
    return SessionMessage(role=role, parts=[{"type": "text", "text": text}])


def test_estimate_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcdefgh") == 2


def test_truncate_tool_result_marks_original_size():
    text, truncated = truncate_tool_result("x" * 20, 5)

    assert truncated is True
    assert text == "xxxxx\n[Tool result truncated - original 20 chars]"
    assert truncate_tool_result("short", 5) == ("short", False)


def test_long_tool_results_are_truncated():
    settings = ForkConfig(tool_result_limit=10)
    messages = [
        SessionMessage(role="assistant", parts=[{"type": "tool_result", "text": "y" * 50}]),
        _text("assistant", "z" * 50),
    ]

    processed, stats = process_messages_for_fork(messages, settings)

    assert stats.truncated_results == 1
    assert processed[0].parts[0]["text"].startswith("y" * 10 + "\n[Tool result truncated")
    assert processed[1].parts[0]["text"] == "z" * 50
    assert messages[0].parts[0]["text"] == "y" * 50


def test_oldest_messages_dropped_to_fit_budget():
    settings = ForkConfig(max_tokens=10)
    messages = [_text("user", "a" * 40), _text("assistant", "b" * 20), _text("user", "c" * 20)]

    processed, stats = process_messages_for_fork(messages, settings)

    assert [m.text_content()[0] for m in processed] == ["b", "c"]
    assert stats.removed_messages == 1
    assert stats.original_count == 3
    assert stats.final_count == 2
    assert stats.total_tokens == 10


def test_newest_message_always_kept():
    processed, stats = process_messages_for_fork([_text("user", "q" * 400)], ForkConfig(max_tokens=1))

    assert len(processed) == 1
    assert stats.removed_messages == 0


def test_context_block_labels_roles_and_tools():
    messages = [
        _text("user", "Where is the config loaded?"),
        SessionMessage(
            role="assistant",
            parts=[
                {"type": "tool", "tool": "grep", "state": {"input": {"pattern": "load"}}},
                {"type": "text", "text": "In config.py"},
            ],
        ),
    ]

    context = format_messages_as_context(messages)

    assert context.startswith("<inherited_context>")
    assert context.endswith("</inherited_context>")
    assert "\nUser:\nWhere is the config loaded?" in context
    assert '[Tool: grep] {"pattern": "load"}' in context
    assert "\nAgent:" in context


def test_tool_params_are_shortened():
    part = {"type": "tool", "tool": "write", "state": {"input": {"content": "w" * 100}}}
    message = SessionMessage(role="assistant", parts=[part])
    context = format_messages_as_context([message], ForkConfig(tool_params_limit=10))

    assert '[Tool: write] {"content"...' in context


def test_forked_prompt_without_history_is_plain_prompt():
    assert build_forked_prompt([], "Do it") == "Do it"
    prompt = build_forked_prompt([_text("user", "hi")], "Do it")
    assert prompt.endswith("</inherited_context>\n\nDo it")

"""Parent-history injection for forked launches on servers without native fork."""

from __future__ import annotations

import json
from dataclasses import dataclass

from superagents.config import ForkConfig
from superagents.models import SessionMessage

ROLE_LABELS = {"user": "User", "assistant": "Agent"}


@dataclass
class ForkStats:
    original_count: int = 0
    final_count: int = 0
    total_tokens: int = 0
    truncated_results: int = 0
    removed_messages: int = 0


def estimate_tokens(text: str) -> int:
    return len(text) // 4


def message_tokens(message: SessionMessage) -> int:
    return estimate_tokens(message.text_content())


def truncate_tool_result(text: str, limit: int) -> tuple[str, bool]:
    if len(text) <= limit:
        return text, False
    return f"{text[:limit]}\n[Tool result truncated - original {len(text)} chars]", True


def _truncate_parts(message: SessionMessage, limit: int, stats: ForkStats) -> SessionMessage:
    parts = []
    for part in message.parts:
        kind = part.get("type")
        text = part.get("text")
        long_user_text = kind == "text" and message.role == "user"
        if text and (long_user_text or kind == "tool_result"):
            new_text, truncated = truncate_tool_result(str(text), limit)
            if truncated:
                stats.truncated_results += 1
                part = {**part, "text": new_text}
        parts.append(part)
    return SessionMessage(role=message.role, parts=parts)


def process_messages_for_fork(
    messages: list[SessionMessage],
    settings: ForkConfig | None = None,
) -> tuple[list[SessionMessage], ForkStats]:
    """Truncate long parts, then drop the oldest messages until the budget fits.

    The newest message is always kept.
    """
    settings = settings or ForkConfig()
    stats = ForkStats(original_count=len(messages), final_count=len(messages))

    processed = [_truncate_parts(m, settings.tool_result_limit, stats) for m in messages]
    counts = [message_tokens(m) for m in processed]
    total = sum(counts)

    start = 0
    while total > settings.max_tokens and start < len(processed) - 1:
        total -= counts[start]
        start += 1
        stats.removed_messages += 1

    result = processed[start:]
    stats.final_count = len(result)
    stats.total_tokens = total
    return result, stats


def _params_preview(part: dict, limit: int) -> str:
    state = part.get("state")
    params = state.get("input") if isinstance(state, dict) else None
    if not params:
        return ""
    raw = json.dumps(params, ensure_ascii=False)
    if len(raw) > limit:
        return f" {raw[:limit]}..."
    return f" {raw}"


def format_messages_as_context(
    messages: list[SessionMessage],
    settings: ForkConfig | None = None,
) -> str:
    if not messages:
        return ""
    settings = settings or ForkConfig()

    lines = ["<inherited_context>"]
    for message in messages:
        role = message.role or "unknown"
        lines.append(f"\n{ROLE_LABELS.get(role, role[:1].upper() + role[1:])}:")
        for part in message.parts:
            kind = part.get("type")
            if kind == "text" and part.get("text"):
                lines.append(str(part["text"]))
            elif kind == "tool" and part.get("tool"):
                lines.append(f"[Tool: {part['tool']}]{_params_preview(part, settings.tool_params_limit)}")
            elif kind == "tool_result" and part.get("text"):
                lines.append(f"[Tool result]\n{part['text']}")
    lines.append("\n</inherited_context>")
    return "\n".join(lines)


def build_forked_prompt(
    history: list[SessionMessage],
    prompt: str,
    settings: ForkConfig | None = None,
) -> str:
    """Prefix ``prompt`` with the processed parent history."""
    kept, _ = process_messages_for_fork(history, settings)
    context = format_messages_as_context(kept, settings)
    if not context:
        return prompt
    return f"{context}\n\n{prompt}"

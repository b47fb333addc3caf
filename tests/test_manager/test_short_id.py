import pytest

from superagents.formatting import short_id
from superagents.models import COMPLETED, PersistedTask, Task
from superagents.registry import TaskRegistry


def _task(session_id: str, started_at: str) -> Task:
    return Task(
        session_id=session_id,
        parent_session_id="ses_parent",
        description=session_id,
        agent="explore",
        started_at=started_at,
    )


@pytest.fixture
def registry() -> TaskRegistry:
    registry = TaskRegistry()
    registry.add(_task("ses_abc111", "2026-01-01T10:00:00+00:00"))
    registry.add(_task("ses_abc222", "2026-01-01T11:00:00+00:00"))
    return registry


def test_ambiguous_prefix_resolves_to_most_recent(registry):
    assert registry.resolve_id("ses_abc") == "ses_abc222"


def test_exact_match_beats_newer_prefix_match(registry):
    registry.add(_task("ses_abc", "2026-01-01T09:00:00+00:00"))
    assert registry.resolve_id("ses_abc") == "ses_abc"
    assert registry.resolve_id("ses_abc111") == "ses_abc111"


def test_unknown_or_blank_prefix_resolves_to_nothing(registry):
    assert registry.resolve_id("ses_zzz") is None
    assert registry.resolve_id("") is None
    assert registry.resolve_id("   ") is None


def test_short_id_keeps_eight_chars_after_prefix():
    assert short_id("ses_41e080918ffeyhQtX6E4vERe4O") == "ses_41e08091"
    assert short_id("abcdefghijklmnop") == "abcdefghijkl"


@pytest.mark.asyncio
async def test_store_fallback_prefers_newest_created(manager):
    await manager.store.save(
        {
            "ses_abc111": PersistedTask(
                description="older",
                agent="explore",
                parent_session_id="ses_parent",
                created_at="2026-01-01T10:00:00+00:00",
                status=COMPLETED,
            ),
            "ses_abc222": PersistedTask(
                description="newer",
                agent="explore",
                parent_session_id="ses_parent",
                created_at="2026-01-01T11:00:00+00:00",
                status=COMPLETED,
            ),
        }
    )
    try:
        task = await manager.resolve_with_fallback("ses_abc")
        assert task is not None
        assert task.session_id == "ses_abc222"
        assert task.description == "newer"
        assert manager.get("ses_abc222") is task
    finally:
        await manager.shutdown()

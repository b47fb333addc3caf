"""UTC timestamp helpers shared by the task engine."""

from __future__ import annotations

from datetime import UTC, datetime


def now_utc() -> datetime:
    """Return timezone-aware current UTC datetime."""
    return datetime.now(UTC)


def to_utc_iso(value: datetime) -> str:
    """Serialize datetime as UTC ISO string."""
    return value.astimezone(UTC).isoformat()


def now_iso() -> str:
    return to_utc_iso(now_utc())


def parse_iso(value: str) -> datetime:
    """Parse ISO datetime and normalize to UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def seconds_since(value: str, now: datetime | None = None) -> float:
    """Elapsed seconds between an ISO timestamp and ``now``."""
    reference = now or now_utc()
    return (reference - parse_iso(value)).total_seconds()


def epoch_ms(value: str) -> int:
    return int(parse_iso(value).timestamp() * 1000)

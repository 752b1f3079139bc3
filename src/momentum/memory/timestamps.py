from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a stored timestamp; naive values are taken as UTC. Returns None if unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def age_hours(value: str | None, *, now: datetime | None = None) -> float | None:
    then = parse_timestamp(value)
    if then is None:
        return None
    current = now or datetime.now(UTC)
    return max(0.0, (current - then).total_seconds() / 3600)


def time_ago(value: str | None, *, now: datetime | None = None) -> str:
    then = parse_timestamp(value)
    if then is None:
        return value or "unknown"
    current = now or datetime.now(UTC)
    minutes = int((current - then).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return then.date().isoformat()

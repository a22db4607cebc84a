"""Time utility helpers."""

from __future__ import annotations

from datetime import UTC, datetime

UPCOMING = "upcoming"
ACTIVE = "active"
COMPLETED = "completed"


def now_utc() -> datetime:
    """Return current timezone-aware UTC datetime."""
    return datetime.now(tz=UTC)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO timestamp as returned by PostgREST into aware UTC."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    normalized = value.replace("Z", "+00:00")
    return ensure_utc(datetime.fromisoformat(normalized))


def derive_status(
    start_date: str | datetime,
    end_date: str | datetime,
    now: datetime | None = None,
) -> str:
    """Return the election status for ``now`` within ``[start_date, end_date)``."""
    current = ensure_utc(now) if now is not None else now_utc()
    if current < parse_timestamp(start_date):
        return UPCOMING
    if current < parse_timestamp(end_date):
        return ACTIVE
    return COMPLETED

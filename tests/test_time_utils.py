"""Time helper tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from app.utils.time import ACTIVE, COMPLETED, UPCOMING, derive_status, parse_timestamp

START = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
END = datetime(2026, 3, 8, 9, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        (START - timedelta(seconds=1), UPCOMING),
        (START, ACTIVE),
        (END - timedelta(seconds=1), ACTIVE),
        (END, COMPLETED),
        (END + timedelta(days=30), COMPLETED),
    ],
)
def test_derive_status_uses_half_open_window(now: datetime, expected: str) -> None:
    """Status is upcoming before start, active in [start, end), completed from end."""
    assert derive_status(START, END, now=now) == expected


def test_derive_status_accepts_postgrest_strings() -> None:
    assert derive_status("2026-03-01T09:00:00Z", "2026-03-08T09:00:00+00:00", now=START) == ACTIVE


def test_parse_timestamp_treats_naive_values_as_utc() -> None:
    assert parse_timestamp("2026-03-01T09:00:00") == START
    assert parse_timestamp(datetime(2026, 3, 1, 9, 0)) == START

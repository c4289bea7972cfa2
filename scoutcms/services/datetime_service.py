"""Timestamps in the formats the public site expects."""

from __future__ import annotations

from datetime import UTC, date, datetime


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(UTC)


def format_iso_millis(dt: datetime) -> str:
    """Format as ISO 8601 UTC with millisecond precision and a ``Z`` suffix.

    Output: ``2024-05-01T09:30:00.000Z`` (the shape the site's front matter
    already uses for post dates).
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    dt = dt.astimezone(UTC)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def format_date(value: date | datetime) -> str:
    """Format as ``YYYY-MM-DD``."""
    if isinstance(value, datetime):
        value = value.astimezone(UTC).date() if value.tzinfo else value.date()
    return value.isoformat()

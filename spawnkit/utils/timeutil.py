from __future__ import annotations

"""Timestamp helpers.

All persisted timestamps are ISO-8601 UTC strings with millisecond precision
and a ``Z`` suffix, e.g. ``2024-05-01T12:00:00.000Z``.
"""

from datetime import date, datetime, timezone
import re
from zoneinfo import ZoneInfo

_TRAILING_TS = re.compile(r"\[([^\[\]]+)\]\s*$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(dt: datetime) -> str:
    """Render ``dt`` in UTC as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 string into an aware datetime, ``None`` on failure."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def trailing_timestamp(text: str) -> datetime | None:
    """Return the timestamp in a trailing ``[...]`` suffix of ``text``."""
    match = _TRAILING_TS.search(text)
    if not match:
        return None
    return parse_timestamp(match.group(1))


def local_date(dt: datetime, tz: str) -> date:
    return dt.astimezone(ZoneInfo(tz)).date()


def recency_label(then: datetime | None, now: datetime) -> str:
    """Describe how long ago ``then`` was: ``Just now``, ``5m ago``, ``3h ago``."""
    if then is None:
        return "Unknown"
    minutes = int((now - then).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    return f"{minutes // 60}h ago"

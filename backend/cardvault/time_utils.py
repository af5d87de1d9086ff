# Overview: UTC helpers; timestamps are stored naive-UTC and serialized with a trailing Z.

from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC 'now', the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse ISO-8601 input from API payloads and query strings.

    None or blank gives None. A bare date means midnight UTC, a naive
    datetime is taken as UTC, and an offset ("Z", "+02:00") is converted.
    Raises ValueError for anything else.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def end_of_day(dt: datetime) -> datetime:
    """Widen a bare date (midnight) to the last second of that day."""
    if dt.time() == time.min:
        return datetime.combine(dt.date(), time(23, 59, 59))
    return dt


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize to second precision, e.g. 2025-03-01T08:30:00Z."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"

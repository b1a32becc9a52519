# Overview: UTC time helpers for timestamps, ISO-8601 parsing and sale date filters.

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" or "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _is_date_only(value: str) -> bool:
    return len(value.strip()) == len("YYYY-MM-DD")


def inclusive_range(start_value: Optional[str], end_value: Optional[str]) -> tuple[Optional[datetime], Optional[datetime]]:
    """
    Turn inclusive start/end filters into a half-open [start, end) range.

    A date-only end ("2026-03-01") covers that whole day; a full timestamp
    end is inclusive of that instant. Raises ValueError on unparseable input
    or when end falls before start.
    """
    start = parse_iso_datetime(start_value)
    end = parse_iso_datetime(end_value)
    if end is not None:
        end += timedelta(days=1) if _is_date_only(str(end_value)) else timedelta(microseconds=1)
    if start is not None and end is not None and end <= start:
        raise ValueError("end is before start")
    return start, end


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with trailing 'Z'; naive values are treated as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")

"""Time and timestamp helpers for channel listings and transcripts."""

from __future__ import annotations

import calendar
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

_RELATIVE_PATTERN = re.compile(
    r"(\d+)\s+(second|minute|hour|day|week|month|year)s?\s+ago",
    re.IGNORECASE,
)

_FIXED_UNITS = {
    "second": timedelta(seconds=1),
    "minute": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
}

_DURATION_PATTERN = re.compile(
    r"P(?:(\d+)W)?(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$"
)


def format_rfc3339(dt: datetime) -> str:
    """Format datetimes as RFC3339 strings (UTC, 'Z' suffix)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def _subtract_months(dt: datetime, months: int) -> datetime:
    total = dt.year * 12 + (dt.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 date or datetime into an aware UTC datetime."""
    if not value:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", cleaned):
        cleaned = f"{cleaned}T00:00:00+00:00"
    if cleaned.endswith(("Z", "z")):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(cleaned)
    except ValueError:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_relative_time(text: Optional[str], now: Optional[datetime] = None) -> Optional[str]:
    """
    Convert a publish-time string into an ISO-8601 UTC timestamp.

    Accepts relative phrases such as "3 days ago" or "1 month ago" as well as
    absolute ISO dates. Returns None when the input cannot be interpreted; the
    caller treats that as an unknown publish date.
    """
    if not text:
        return None
    reference = now or datetime.now(timezone.utc)
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)

    match = _RELATIVE_PATTERN.search(text)
    if match:
        amount = int(match.group(1))
        unit = match.group(2).lower()
        try:
            if unit == "month":
                moment = _subtract_months(reference, amount)
            elif unit == "year":
                moment = _subtract_months(reference, amount * 12)
            else:
                moment = reference - _FIXED_UNITS[unit] * amount
        except (ValueError, OverflowError):
            # outside the datetime range
            return None
        return format_rfc3339(moment)

    parsed = parse_iso_datetime(text)
    if parsed is None:
        return None
    return format_rfc3339(parsed)


def published_sort_key(text: Optional[str], now: Optional[datetime] = None) -> float:
    """Sort key for newest-first ordering; unknown dates sort last."""
    iso = parse_relative_time(text, now=now)
    parsed = parse_iso_datetime(iso)
    if parsed is None:
        return math.inf
    return -parsed.timestamp()


def is_within_hours(text: Optional[str], hours: float, now: Optional[datetime] = None) -> bool:
    """Return True when the publish time falls inside the last `hours` hours."""
    reference = now or datetime.now(timezone.utc)
    iso = parse_relative_time(text, now=reference)
    parsed = parse_iso_datetime(iso)
    if parsed is None:
        return False
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)
    return parsed >= reference - timedelta(hours=hours)


def parse_iso8601_duration(duration_iso: Optional[str]) -> int:
    """Parse ISO 8601 duration string (e.g., 'PT1H5M10S', 'P0D') to total seconds."""
    if not duration_iso:
        return 0
    match = _DURATION_PATTERN.match(duration_iso.strip())
    if not match or duration_iso.strip() == "P":
        raise ValueError(f"Invalid ISO 8601 duration format: {duration_iso}")

    weeks, days, hours, minutes, seconds = match.groups()
    total = (
        int(weeks or 0) * 604800
        + int(days or 0) * 86400
        + int(hours or 0) * 3600
        + int(minutes or 0) * 60
        + float(seconds or 0)
    )
    return int(total)


__all__ = [
    "format_rfc3339",
    "parse_iso_datetime",
    "parse_relative_time",
    "published_sort_key",
    "is_within_hours",
    "parse_iso8601_duration",
]

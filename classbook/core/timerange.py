"""Time range primitives used by every conflict and availability check.

All instants handled by the services are timezone-aware UTC datetimes.
Wall-clock values (schedule start/end times, calendar dates) are only
turned into instants through :func:`local_instant`, which resolves the
UTC offset from the tenant's IANA zone for that specific date.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ValidationError

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def overlaps(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Return True iff ``[start_a, end_a)`` and ``[start_b, end_b)`` intersect.

    Zero-length ranges never overlap anything and ranges that only touch
    (``end_a == start_b``) do not overlap.
    """

    if start_a >= end_a or start_b >= end_b:
        return False
    return start_a < end_b and start_b < end_a


def generate_slots(
    start: datetime,
    end: datetime,
    duration: timedelta,
    step: timedelta | None = None,
) -> list[tuple[datetime, datetime]]:
    """Split ``[start, end)`` into consecutive ``duration`` long slots.

    ``step`` defaults to ``duration``; a smaller step yields staggered,
    overlapping candidates. Slots never extend past ``end``.
    """

    if duration <= timedelta(0):
        raise ValueError("duration must be positive")
    step = step or duration
    if step <= timedelta(0):
        raise ValueError("step must be positive")
    slots: list[tuple[datetime, datetime]] = []
    cursor = start
    while cursor + duration <= end:
        slots.append((cursor, cursor + duration))
        cursor += step
    return slots


def ensure_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone: {name}") from exc


def local_instant(day: date, wall_time: time, zone: ZoneInfo) -> datetime:
    """Resolve a local wall-clock time on ``day`` to a UTC instant."""

    return datetime.combine(day, wall_time, tzinfo=zone).astimezone(timezone.utc)


def local_date(instant: datetime, zone: ZoneInfo) -> date:
    return ensure_utc(instant).astimezone(zone).date()


def day_bounds(
    from_date: date, to_date: date, zone: ZoneInfo
) -> tuple[datetime, datetime]:
    """UTC instants covering the inclusive local date window."""

    start = local_instant(from_date, time(0, 0), zone)
    end = local_instant(to_date + timedelta(days=1), time(0, 0), zone)
    return start, end


def iter_dates(from_date: date, to_date: date) -> Iterator[date]:
    current = from_date
    while current <= to_date:
        yield current
        current += timedelta(days=1)


def parse_hhmm(value: str | time, field: str = "time") -> time:
    if isinstance(value, time):
        return value
    if not isinstance(value, str) or not _HHMM_RE.match(value):
        raise ValidationError(f"{field} must be in HH:MM format")
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def parse_date(value: str | date, field: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValidationError(f"{field} must be in YYYY-MM-DD format")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{field} is not a valid date") from exc


def parse_instant(
    value: str | datetime, zone: ZoneInfo, field: str = "datetime"
) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are read as ``zone`` local time."""

    if isinstance(value, datetime):
        parsed = value
    else:
        if not isinstance(value, str) or not value:
            raise ValidationError(f"{field} is required")
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError as exc:
            raise ValidationError(f"{field} is not a valid ISO-8601 timestamp") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    return parsed.astimezone(timezone.utc)


def require_ordered(start: datetime, end: datetime) -> None:
    if start >= end:
        raise ValidationError("End time must be after start time")


__all__ = [
    "overlaps",
    "generate_slots",
    "ensure_utc",
    "utc_now",
    "get_zone",
    "local_instant",
    "local_date",
    "day_bounds",
    "iter_dates",
    "parse_hhmm",
    "parse_date",
    "parse_instant",
    "require_ordered",
]

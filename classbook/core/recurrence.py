"""Recurring block occurrences.

Rules are RFC 5545 ``RRULE`` strings evaluated in the tenant's local zone,
so a weekly 12:00-13:00 block stays at 12:00 local time across DST changes.
"""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from dateutil.rrule import rrule, rrulestr

from .errors import ValidationError
from .timerange import ensure_utc, overlaps


def parse_rule(rule: str, dtstart: datetime, zone: ZoneInfo) -> rrule:
    try:
        parsed = rrulestr(rule, dtstart=ensure_utc(dtstart).astimezone(zone))
    except (ValueError, TypeError) as exc:
        raise ValidationError(f"Invalid recurrence rule: {exc}") from exc
    if not isinstance(parsed, rrule):
        raise ValidationError("Recurrence rule must contain a single RRULE")
    return parsed


def occurrences(
    starts_at: datetime,
    ends_at: datetime,
    rule: str | None,
    window_start: datetime,
    window_end: datetime,
    zone: ZoneInfo,
) -> list[tuple[datetime, datetime]]:
    """UTC ``(start, end)`` pairs of a (possibly recurring) range overlapping the window."""

    starts_at = ensure_utc(starts_at)
    ends_at = ensure_utc(ends_at)
    duration = ends_at - starts_at
    if not rule:
        if overlaps(starts_at, ends_at, window_start, window_end):
            return [(starts_at, ends_at)]
        return []
    parsed = parse_rule(rule, starts_at, zone)
    search_from = (window_start - duration).astimezone(zone)
    search_to = window_end.astimezone(zone)
    result = []
    for occurrence in parsed.between(search_from, search_to, inc=True):
        start = ensure_utc(occurrence)
        end = start + duration
        if overlaps(start, end, window_start, window_end):
            result.append((start, end))
    return result


__all__ = ["parse_rule", "occurrences"]

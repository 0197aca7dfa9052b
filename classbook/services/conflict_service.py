"""Conflict detection for a tenant's calendar.

The database narrows candidates with an interval predicate; the final
decision for every row goes through :func:`timerange.overlaps` so touching
ranges are treated identically everywhere.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..config import get_settings
from ..core import recurrence, timerange
from ..core.auth import AuthContext, tenant_scope
from ..core.errors import ValidationError
from ..db import models
from ..db.models.booking import ACTIVE_BOOKING_STATUSES
from ..db.models.class_session import EventType

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Conflict:
    conflict_type: str
    conflict_id: int
    conflict_starts_at: datetime
    conflict_ends_at: datetime
    conflict_details: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "conflict_type": self.conflict_type,
            "conflict_id": self.conflict_id,
            "conflict_starts_at": self.conflict_starts_at.isoformat(),
            "conflict_ends_at": self.conflict_ends_at.isoformat(),
            "conflict_details": self.conflict_details,
        }


def tenant_zone(tenant: models.Teacher | None) -> ZoneInfo:
    settings = get_settings()
    name = (tenant.timezone if tenant else None) or settings.timezone
    return timerange.get_zone(name)


def blocks_apply_to(event_type: EventType | None) -> bool:
    """Whether blocks make a slot of ``event_type`` unavailable."""

    if event_type == EventType.private:
        return not get_settings().private_sessions_override_blocks
    return True


def block_intervals(
    db: Session,
    tenant_id: int,
    window_start: datetime,
    window_end: datetime,
    *,
    exclude_block_id: int | None = None,
) -> list[tuple[models.Block, datetime, datetime]]:
    """Every block occurrence overlapping the window, recurring blocks expanded."""

    zone = tenant_zone(db.get(models.Teacher, tenant_id))
    stmt = (
        select(models.Block)
        .where(models.Block.tenant_id == tenant_id)
        .where(models.Block.starts_at < window_end)
        .order_by(models.Block.starts_at, models.Block.id)
    )
    if exclude_block_id is not None:
        stmt = stmt.where(models.Block.id != exclude_block_id)
    result = []
    for block in db.execute(stmt).scalars():
        rule = block.recurrence_rule if block.is_recurring else None
        if not rule and timerange.ensure_utc(block.ends_at) <= window_start:
            continue
        for start, end in recurrence.occurrences(
            block.starts_at, block.ends_at, rule, window_start, window_end, zone
        ):
            result.append((block, start, end))
    return result


def find_conflicts(
    db: Session,
    tenant_id: int,
    starts_at: datetime,
    ends_at: datetime,
    *,
    exclude_class_id: int | None = None,
    exclude_block_id: int | None = None,
    event_type: EventType | None = None,
) -> list[Conflict]:
    """Non-cancelled classes and block occurrences overlapping ``[starts_at, ends_at)``."""

    starts_at = timerange.ensure_utc(starts_at)
    ends_at = timerange.ensure_utc(ends_at)
    conflicts: list[Conflict] = []

    stmt = (
        select(models.ClassSession)
        .options(selectinload(models.ClassSession.class_type))
        .where(models.ClassSession.tenant_id == tenant_id)
        .where(models.ClassSession.is_cancelled.is_(False))
        .where(models.ClassSession.starts_at < ends_at)
        .where(models.ClassSession.ends_at > starts_at)
        .order_by(models.ClassSession.starts_at, models.ClassSession.id)
    )
    if exclude_class_id is not None:
        stmt = stmt.where(models.ClassSession.id != exclude_class_id)
    for session_class in db.execute(stmt).scalars():
        class_start = timerange.ensure_utc(session_class.starts_at)
        class_end = timerange.ensure_utc(session_class.ends_at)
        if not timerange.overlaps(starts_at, ends_at, class_start, class_end):
            continue
        conflicts.append(
            Conflict(
                conflict_type="class",
                conflict_id=session_class.id,
                conflict_starts_at=class_start,
                conflict_ends_at=class_end,
                conflict_details={
                    "class_type_id": session_class.class_type_id,
                    "class_type_name": session_class.class_type.name
                    if session_class.class_type
                    else None,
                    "event_type": session_class.event_type.value,
                },
            )
        )

    if blocks_apply_to(event_type):
        for block, block_start, block_end in block_intervals(
            db, tenant_id, starts_at, ends_at, exclude_block_id=exclude_block_id
        ):
            conflicts.append(
                Conflict(
                    conflict_type="block",
                    conflict_id=block.id,
                    conflict_starts_at=block_start,
                    conflict_ends_at=block_end,
                    conflict_details={"title": block.title, "reason": block.reason},
                )
            )

    if conflicts:
        logger.info(
            "Schedule conflicts detected",
            extra={"tenant_id": tenant_id, "count": len(conflicts)},
        )
    return conflicts


def find_blocking_bookings(
    db: Session,
    tenant_id: int,
    intervals: Iterable[tuple[datetime, datetime]],
) -> list[dict[str, Any]]:
    """Active bookings on live classes overlapping any of ``intervals``."""

    found: dict[int, dict[str, Any]] = {}
    for start, end in intervals:
        start = timerange.ensure_utc(start)
        end = timerange.ensure_utc(end)
        rows = (
            db.query(models.Booking, models.ClassSession)
            .join(models.ClassSession, models.Booking.class_id == models.ClassSession.id)
            .filter(models.ClassSession.tenant_id == tenant_id)
            .filter(models.ClassSession.is_cancelled.is_(False))
            .filter(models.ClassSession.starts_at < end)
            .filter(models.ClassSession.ends_at > start)
            .filter(models.Booking.status.in_(ACTIVE_BOOKING_STATUSES))
            .order_by(models.ClassSession.starts_at, models.Booking.id)
            .all()
        )
        for booking, session_class in rows:
            class_start = timerange.ensure_utc(session_class.starts_at)
            class_end = timerange.ensure_utc(session_class.ends_at)
            if not timerange.overlaps(start, end, class_start, class_end):
                continue
            found.setdefault(
                booking.id,
                {
                    "booking_id": booking.id,
                    "class_id": session_class.id,
                    "student_id": booking.student_id,
                    "status": booking.status.value,
                    "class_starts_at": class_start.isoformat(),
                    "class_ends_at": class_end.isoformat(),
                },
            )
    return list(found.values())


def check_conflicts(
    db: Session,
    ctx: AuthContext,
    *,
    starts_at: str | datetime,
    ends_at: str | datetime,
    exclude_class_id: int | None = None,
    exclude_block_id: int | None = None,
    event_type: str | None = None,
) -> list[Conflict]:
    tenant_id = tenant_scope(ctx)
    zone = tenant_zone(db.get(models.Teacher, tenant_id))
    start = timerange.parse_instant(starts_at, zone, "startsAt")
    end = timerange.parse_instant(ends_at, zone, "endsAt")
    timerange.require_ordered(start, end)
    return find_conflicts(
        db,
        tenant_id,
        start,
        end,
        exclude_class_id=exclude_class_id,
        exclude_block_id=exclude_block_id,
        event_type=parse_event_type(event_type),
    )


def parse_event_type(value: str | EventType | None) -> EventType | None:
    if value is None or isinstance(value, EventType):
        return value
    try:
        return EventType(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in EventType)
        raise ValidationError(f"Invalid eventType. Use: {allowed}") from exc


__all__ = [
    "Conflict",
    "tenant_zone",
    "blocks_apply_to",
    "block_intervals",
    "find_conflicts",
    "find_blocking_bookings",
    "check_conflicts",
    "parse_event_type",
]

"""Weekly schedules and their expansion into concrete calendar slots.

A schedule is only a template. :func:`expand_schedules` projects the
templates of one tenant onto a local date window, swaps in classes that were
already materialized from a template, adds directly created classes and marks
everything a block covers. Nothing is written while expanding.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..config import get_settings
from ..core import timerange
from ..core.auth import AuthContext, tenant_scope
from ..core.errors import ConflictError, NotFoundError, ValidationError
from ..db import models
from ..db.models.class_session import EventType
from ..db.models.schedule import DayOfWeek
from ..db.session import atomic
from . import conflict_service, dispatch_service

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Slot:
    starts_at: datetime
    ends_at: datetime
    class_type_id: int
    class_type_name: str
    max_students: int
    source_type: str
    event_type: EventType
    is_public: bool
    schedule_id: int | None = None
    class_id: int | None = None
    is_cancelled: bool = False
    is_blocked: bool = False

    @property
    def sort_key(self) -> tuple:
        return (self.starts_at, self.class_type_name, self.class_id or 0, self.schedule_id or 0)


def _parse_day_of_week(value: str | DayOfWeek) -> DayOfWeek:
    if isinstance(value, DayOfWeek):
        return value
    try:
        return DayOfWeek(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(day.value for day in DayOfWeek)
        raise ValidationError(f"dayOfWeek must be one of: {allowed}") from exc


def _get_class_type(db: Session, tenant_id: int, class_type_id: int) -> models.ClassType:
    class_type = (
        db.query(models.ClassType)
        .filter(models.ClassType.id == class_type_id)
        .filter(models.ClassType.tenant_id == tenant_id)
        .first()
    )
    if class_type is None:
        raise NotFoundError("Class type not found")
    return class_type


def _get_schedule(db: Session, tenant_id: int, schedule_id: int) -> models.Schedule:
    schedule = (
        db.query(models.Schedule)
        .filter(models.Schedule.id == schedule_id)
        .filter(models.Schedule.tenant_id == tenant_id)
        .first()
    )
    if schedule is None:
        raise NotFoundError("Schedule not found")
    return schedule


def list_schedules(db: Session, ctx: AuthContext) -> list[models.Schedule]:
    tenant_id = tenant_scope(ctx)
    return (
        db.query(models.Schedule)
        .filter(models.Schedule.tenant_id == tenant_id)
        .order_by(models.Schedule.id)
        .all()
    )


def create_schedule(
    db: Session,
    ctx: AuthContext,
    *,
    class_type_id: int,
    day_of_week: str | DayOfWeek,
    start_time: str,
    end_time: str,
    max_students: int | None = None,
    is_public: bool = False,
    valid_from: str | date | None = None,
    valid_until: str | date | None = None,
) -> models.Schedule:
    tenant_id = tenant_scope(ctx)
    day = _parse_day_of_week(day_of_week)
    start = timerange.parse_hhmm(start_time, "startTime")
    end = timerange.parse_hhmm(end_time, "endTime")
    if start >= end:
        raise ValidationError("End time must be after start time")
    first_day = timerange.parse_date(valid_from, "validFrom") if valid_from else None
    last_day = timerange.parse_date(valid_until, "validUntil") if valid_until else None
    if first_day and last_day and last_day < first_day:
        raise ValidationError("validUntil must not be before validFrom")
    if max_students is not None and max_students <= 0:
        raise ValidationError("maxStudents must be positive")

    class_type = _get_class_type(db, tenant_id, class_type_id)
    schedule = models.Schedule(
        tenant_id=tenant_id,
        class_type_id=class_type.id,
        day_of_week=day,
        start_time=start,
        end_time=end,
        max_students=max_students or class_type.max_students,
        valid_from=first_day,
        valid_until=last_day,
        is_public=is_public,
        is_active=True,
    )
    with atomic(db):
        db.add(schedule)
    db.refresh(schedule)
    dispatch_service.publish(
        db,
        tenant_id=tenant_id,
        action="schedule_created",
        entity_type="schedule",
        entity_id=schedule.id,
        actor=ctx,
        new_values={
            "class_type_id": schedule.class_type_id,
            "day_of_week": day,
            "start_time": start,
            "end_time": end,
            "max_students": schedule.max_students,
        },
    )
    return schedule


def delete_schedule(db: Session, ctx: AuthContext, schedule_id: int) -> None:
    """Hard delete. Materialized classes survive, detached from the template."""

    tenant_id = tenant_scope(ctx)
    schedule = _get_schedule(db, tenant_id, schedule_id)
    snapshot = {
        "class_type_id": schedule.class_type_id,
        "day_of_week": schedule.day_of_week,
        "start_time": schedule.start_time,
        "end_time": schedule.end_time,
    }
    with atomic(db):
        for session_class in schedule.classes:
            session_class.schedule_id = None
        db.delete(schedule)
    dispatch_service.publish(
        db,
        tenant_id=tenant_id,
        action="schedule_deleted",
        entity_type="schedule",
        entity_id=schedule_id,
        actor=ctx,
        old_values=snapshot,
    )


def expand_schedules(
    db: Session,
    tenant: models.Teacher,
    from_date: date,
    to_date: date,
    *,
    public_only: bool = False,
    schedule_ids: list[int] | None = None,
) -> list[Slot]:
    """Concrete slots of ``tenant`` for the inclusive local window ``[from_date, to_date]``.

    Schedules are expanded in the tenant's IANA zone, so a 09:00 slot stays at
    09:00 local time across DST changes. Slots covered by a block are kept and
    flagged ``is_blocked``. A class already materialized from a schedule for a
    given local date replaces the synthetic candidate. Classes created directly
    are included as they are. With ``public_only`` private sessions, non public
    schedules and non public class types are left out.
    """

    zone = conflict_service.tenant_zone(tenant)
    window_start, window_end = timerange.day_bounds(from_date, to_date, zone)

    schedule_stmt = (
        select(models.Schedule)
        .options(selectinload(models.Schedule.class_type))
        .where(models.Schedule.tenant_id == tenant.id)
        .where(models.Schedule.is_active.is_(True))
        .where(or_(models.Schedule.valid_from.is_(None), models.Schedule.valid_from <= to_date))
        .where(or_(models.Schedule.valid_until.is_(None), models.Schedule.valid_until >= from_date))
        .order_by(models.Schedule.id)
    )
    if schedule_ids is not None:
        schedule_stmt = schedule_stmt.where(models.Schedule.id.in_(schedule_ids))
    schedules = list(db.execute(schedule_stmt).scalars())

    class_stmt = (
        select(models.ClassSession)
        .options(
            selectinload(models.ClassSession.class_type),
            selectinload(models.ClassSession.schedule),
        )
        .where(models.ClassSession.tenant_id == tenant.id)
        .where(models.ClassSession.starts_at < window_end)
        .where(models.ClassSession.ends_at > window_start)
        .order_by(models.ClassSession.starts_at, models.ClassSession.id)
    )
    classes = list(db.execute(class_stmt).scalars())
    materialized = {
        (session_class.schedule_id, timerange.local_date(session_class.starts_at, zone)): session_class
        for session_class in classes
        if session_class.schedule_id is not None
    }
    blocks = conflict_service.block_intervals(db, tenant.id, window_start, window_end)

    def is_blocked(start: datetime, end: datetime, event_type: EventType) -> bool:
        if event_type == EventType.block:
            return True
        if not conflict_service.blocks_apply_to(event_type):
            return False
        return any(
            timerange.overlaps(start, end, block_start, block_end)
            for _, block_start, block_end in blocks
        )

    def class_slot(session_class: models.ClassSession) -> Slot:
        start = timerange.ensure_utc(session_class.starts_at)
        end = timerange.ensure_utc(session_class.ends_at)
        class_type = session_class.class_type
        visible = bool(class_type and class_type.is_public) and session_class.event_type != EventType.private
        if session_class.schedule is not None:
            visible = visible and session_class.schedule.is_public
        return Slot(
            starts_at=start,
            ends_at=end,
            class_type_id=session_class.class_type_id,
            class_type_name=class_type.name if class_type else "",
            max_students=session_class.max_students,
            source_type="class",
            event_type=session_class.event_type,
            is_public=visible,
            schedule_id=session_class.schedule_id,
            class_id=session_class.id,
            is_cancelled=session_class.is_cancelled,
            is_blocked=is_blocked(start, end, session_class.event_type),
        )

    slots: list[Slot] = []
    used_class_ids: set[int] = set()
    for schedule in schedules:
        if schedule.start_time >= schedule.end_time:
            logger.warning(
                "Skipping schedule with an empty time window",
                extra={"schedule_id": schedule.id, "tenant_id": tenant.id},
            )
            continue
        class_type = schedule.class_type
        if class_type is None or not class_type.is_active:
            continue
        weekday = schedule.day_of_week.weekday
        first_day = max(from_date, schedule.valid_from or from_date)
        last_day = min(to_date, schedule.valid_until or to_date)
        for day in timerange.iter_dates(first_day, last_day):
            if day.weekday() != weekday:
                continue
            existing = materialized.get((schedule.id, day))
            if existing is not None:
                used_class_ids.add(existing.id)
                slots.append(class_slot(existing))
                continue
            start = timerange.local_instant(day, schedule.start_time, zone)
            end = timerange.local_instant(day, schedule.end_time, zone)
            slots.append(
                Slot(
                    starts_at=start,
                    ends_at=end,
                    class_type_id=class_type.id,
                    class_type_name=class_type.name,
                    max_students=schedule.max_students or class_type.max_students,
                    source_type="schedule",
                    event_type=EventType.regular,
                    is_public=schedule.is_public and class_type.is_public,
                    schedule_id=schedule.id,
                    is_blocked=is_blocked(start, end, EventType.regular),
                )
            )

    if schedule_ids is None:
        for session_class in classes:
            if session_class.id in used_class_ids:
                continue
            slots.append(class_slot(session_class))

    if public_only:
        slots = [slot for slot in slots if slot.is_public]
    slots.sort(key=lambda slot: slot.sort_key)
    return slots


def _materialize(
    db: Session,
    tenant: models.Teacher,
    schedule: models.Schedule,
    from_date: date,
    to_date: date,
    *,
    actor: AuthContext | None,
) -> int:
    slots = expand_schedules(db, tenant, from_date, to_date, schedule_ids=[schedule.id])
    created: list[models.ClassSession] = []
    try:
        with atomic(db):
            for slot in slots:
                if slot.source_type != "schedule":
                    continue
                if slot.is_blocked:
                    continue
                conflicts = conflict_service.find_conflicts(
                    db, tenant.id, slot.starts_at, slot.ends_at, event_type=EventType.regular
                )
                if conflicts:
                    logger.info(
                        "Skipping conflicting schedule occurrence",
                        extra={"schedule_id": schedule.id, "starts_at": slot.starts_at.isoformat()},
                    )
                    continue
                session_class = models.ClassSession(
                    tenant_id=tenant.id,
                    class_type_id=slot.class_type_id,
                    schedule_id=schedule.id,
                    starts_at=slot.starts_at,
                    ends_at=slot.ends_at,
                    max_students=slot.max_students,
                    event_type=EventType.regular,
                    is_cancelled=False,
                    is_recurring=True,
                )
                db.add(session_class)
                db.flush()
                created.append(session_class)
    except IntegrityError as exc:
        raise ConflictError("Schedule occurrences were materialized concurrently") from exc

    if created:
        dispatch_service.publish(
            db,
            tenant_id=tenant.id,
            action="schedule_materialized",
            entity_type="schedule",
            entity_id=schedule.id,
            actor=actor,
            new_values={
                "from": from_date,
                "to": to_date,
                "class_ids": [session_class.id for session_class in created],
            },
        )
    return len(created)


def materialize_schedule(
    db: Session,
    ctx: AuthContext,
    schedule_id: int,
    from_date: str | date,
    to_date: str | date,
) -> int:
    """Turn the occurrences of one schedule into bookable classes. Idempotent."""

    tenant_id = tenant_scope(ctx)
    first_day = timerange.parse_date(from_date, "from")
    last_day = timerange.parse_date(to_date, "to")
    if last_day < first_day:
        raise ValidationError("to must not be before from")
    if (last_day - first_day).days + 1 > get_settings().availability_max_days:
        raise ValidationError("Date window is too large")
    schedule = _get_schedule(db, tenant_id, schedule_id)
    tenant = db.get(models.Teacher, tenant_id)
    return _materialize(db, tenant, schedule, first_day, last_day, actor=ctx)


def materialize_upcoming(db: Session, horizon_days: int | None = None) -> int:
    """Materialize every active schedule of every active tenant ``horizon_days`` ahead."""

    horizon_days = horizon_days or get_settings().materialize_horizon_days
    total = 0
    tenants = (
        db.query(models.Teacher)
        .filter(models.Teacher.is_active.is_(True))
        .order_by(models.Teacher.id)
        .all()
    )
    for tenant in tenants:
        zone = conflict_service.tenant_zone(tenant)
        today = timerange.local_date(timerange.utc_now(), zone)
        last_day = today + timedelta(days=horizon_days)
        schedules = (
            db.query(models.Schedule)
            .filter(models.Schedule.tenant_id == tenant.id)
            .filter(models.Schedule.is_active.is_(True))
            .order_by(models.Schedule.id)
            .all()
        )
        for schedule in schedules:
            try:
                total += _materialize(db, tenant, schedule, today, last_day, actor=None)
            except ConflictError:
                logger.warning(
                    "Schedule materialization raced, retrying next run",
                    extra={"schedule_id": schedule.id},
                )
    if total:
        logger.info("Materialized upcoming classes", extra={"created": total})
    return total


__all__ = [
    "Slot",
    "list_schedules",
    "create_schedule",
    "delete_schedule",
    "expand_schedules",
    "materialize_schedule",
    "materialize_upcoming",
]

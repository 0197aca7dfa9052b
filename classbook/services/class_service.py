from __future__ import annotations

from datetime import datetime
import logging

from sqlalchemy.orm import Session, selectinload

from ..core import timerange
from ..core.auth import AuthContext, tenant_scope
from ..core.constants import DEFAULT_CLASS_CANCEL_REASON
from ..core.errors import ConflictError, NotFoundError, ValidationError
from ..db import models
from ..db.models.booking import ACTIVE_BOOKING_STATUSES
from ..db.models.class_session import EventType
from ..db.session import atomic
from . import booking_service, conflict_service, dispatch_service

logger = logging.getLogger(__name__)


def get_class(db: Session, tenant_id: int, class_id: int) -> models.ClassSession:
    session_class = (
        db.query(models.ClassSession)
        .filter(models.ClassSession.id == class_id)
        .filter(models.ClassSession.tenant_id == tenant_id)
        .first()
    )
    if session_class is None:
        raise NotFoundError("Class not found")
    return session_class


def list_classes(
    db: Session,
    ctx: AuthContext,
    *,
    from_dt: datetime | None = None,
    to_dt: datetime | None = None,
    include_cancelled: bool = True,
) -> list[models.ClassSession]:
    tenant_id = tenant_scope(ctx)
    query = (
        db.query(models.ClassSession)
        .options(selectinload(models.ClassSession.class_type))
        .filter(models.ClassSession.tenant_id == tenant_id)
    )
    if from_dt:
        query = query.filter(models.ClassSession.starts_at >= timerange.ensure_utc(from_dt))
    if to_dt:
        query = query.filter(models.ClassSession.starts_at < timerange.ensure_utc(to_dt))
    if not include_cancelled:
        query = query.filter(models.ClassSession.is_cancelled.is_(False))
    classes = query.order_by(models.ClassSession.starts_at, models.ClassSession.id).all()
    counts = booking_service.count_active_bookings(db, [session_class.id for session_class in classes])
    for session_class in classes:
        booked = counts.get(session_class.id, 0)
        setattr(session_class, "booking_count", booked)
        setattr(session_class, "available_spots", max(session_class.max_students - booked, 0))
    return classes


def create_class(
    db: Session,
    ctx: AuthContext,
    *,
    class_type_id: int,
    starts_at: str | datetime,
    ends_at: str | datetime,
    max_students: int | None = None,
    event_type: str | EventType | None = None,
    notes: str | None = None,
) -> models.ClassSession:
    """Create a one-off class or private session; any overlap is a hard reject."""

    tenant_id = tenant_scope(ctx)
    zone = conflict_service.tenant_zone(db.get(models.Teacher, tenant_id))
    start = timerange.parse_instant(starts_at, zone, "startsAt")
    end = timerange.parse_instant(ends_at, zone, "endsAt")
    timerange.require_ordered(start, end)
    kind = conflict_service.parse_event_type(event_type) or EventType.regular
    if max_students is not None and max_students <= 0:
        raise ValidationError("maxStudents must be positive")

    class_type = (
        db.query(models.ClassType)
        .filter(models.ClassType.id == class_type_id)
        .filter(models.ClassType.tenant_id == tenant_id)
        .first()
    )
    if class_type is None:
        raise NotFoundError("Class type not found")

    conflicts = conflict_service.find_conflicts(db, tenant_id, start, end, event_type=kind)
    if conflicts:
        raise ConflictError(
            "Time conflict detected",
            conflicts=[conflict.as_dict() for conflict in conflicts],
        )

    session_class = models.ClassSession(
        tenant_id=tenant_id,
        class_type_id=class_type.id,
        starts_at=start,
        ends_at=end,
        max_students=max_students or class_type.max_students,
        event_type=kind,
        is_cancelled=False,
        is_recurring=False,
        notes=notes,
    )
    with atomic(db):
        db.add(session_class)
    db.refresh(session_class)
    dispatch_service.publish(
        db,
        tenant_id=tenant_id,
        action="class_created",
        entity_type="class",
        entity_id=session_class.id,
        actor=ctx,
        new_values={
            "class_type_id": class_type.id,
            "starts_at": start,
            "ends_at": end,
            "max_students": session_class.max_students,
            "event_type": kind,
        },
    )
    return session_class


def cancel_class(
    db: Session,
    ctx: AuthContext,
    class_id: int,
    *,
    reason: str | None = None,
) -> models.ClassSession:
    """Soft-cancel a class. Its bookings are kept; booked students get notified."""

    tenant_id = tenant_scope(ctx)
    session_class = get_class(db, tenant_id, class_id)
    if session_class.is_cancelled:
        return session_class

    session_class.is_cancelled = True
    session_class.cancelled_reason = reason or DEFAULT_CLASS_CANCEL_REASON
    recipients = [
        student_id
        for (student_id,) in db.query(models.Booking.student_id)
        .filter(models.Booking.class_id == session_class.id)
        .filter(models.Booking.status.in_(ACTIVE_BOOKING_STATUSES))
        .all()
    ]
    with atomic(db):
        db.add(session_class)
    db.refresh(session_class)
    logger.info(
        "Class cancelled",
        extra={"class_id": session_class.id, "students": len(recipients)},
    )
    dispatch_service.publish(
        db,
        tenant_id=tenant_id,
        action="class_cancelled",
        entity_type="class",
        entity_id=session_class.id,
        actor=ctx,
        old_values={"is_cancelled": False},
        new_values={
            "is_cancelled": True,
            "reason": session_class.cancelled_reason,
            "starts_at": timerange.ensure_utc(session_class.starts_at),
        },
        recipients=recipients,
        priority=1,
    )
    return session_class


__all__ = ["get_class", "list_classes", "create_class", "cancel_class"]

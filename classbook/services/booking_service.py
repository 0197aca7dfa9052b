"""Seat reservation under concurrent demand.

Every write that can change a class's occupancy runs while holding the
class's in-process lock, inside one transaction that first locks the class
row (``SELECT ... FOR UPDATE``), then re-counts pending and confirmed
bookings, then inserts or updates and commits. Occupancy is never cached.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, selectinload

from ..core import locks, timerange
from ..core.auth import AuthContext, resolve_student, tenant_scope
from ..core.constants import MIN_BULK_BOOKING_CLASSES
from ..core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from ..db import models
from ..db.models.booking import ACTIVE_BOOKING_STATUSES, BookingStatus
from ..db.models.class_session import EventType
from ..db.models.user_role import Role
from ..db.session import atomic
from . import conflict_service, dispatch_service

logger = logging.getLogger(__name__)

TEACHER_STATUSES = (
    BookingStatus.confirmed,
    BookingStatus.cancelled,
    BookingStatus.no_show,
    BookingStatus.completed,
)

TRANSITIONS: dict[BookingStatus, tuple[BookingStatus, ...]] = {
    BookingStatus.pending: (BookingStatus.confirmed, BookingStatus.cancelled),
    BookingStatus.confirmed: (
        BookingStatus.cancelled,
        BookingStatus.completed,
        BookingStatus.no_show,
    ),
    BookingStatus.cancelled: (),
    BookingStatus.completed: (),
    BookingStatus.no_show: (),
}


@dataclass(slots=True)
class BookingResult:
    booking: models.Booking
    status: BookingStatus
    available_spots: int


@dataclass(slots=True)
class StatusChange:
    booking: models.Booking
    old_status: BookingStatus
    new_status: BookingStatus


def count_active_bookings(db: Session, class_ids: list[int]) -> dict[int, int]:
    """Live occupancy of each class in ``class_ids``."""

    if not class_ids:
        return {}
    rows = (
        db.query(models.Booking.class_id, func.count(models.Booking.id))
        .filter(models.Booking.class_id.in_(class_ids))
        .filter(models.Booking.status.in_(ACTIVE_BOOKING_STATUSES))
        .group_by(models.Booking.class_id)
        .all()
    )
    return {class_id: int(count) for class_id, count in rows}


def _occupancy(db: Session, class_id: int, exclude_booking_id: int | None = None) -> int:
    stmt = select(func.count(models.Booking.id)).where(
        models.Booking.class_id == class_id,
        models.Booking.status.in_(ACTIVE_BOOKING_STATUSES),
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(models.Booking.id != exclude_booking_id)
    return int(db.scalar(stmt) or 0)


def _lock_class(db: Session, class_id: int) -> models.ClassSession:
    session_class = db.execute(
        select(models.ClassSession)
        .where(models.ClassSession.id == class_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if session_class is None:
        raise NotFoundError("Class not found", class_id=class_id)
    return session_class


def _lock_booking(db: Session, booking_id: int) -> models.Booking:
    return db.execute(
        select(models.Booking)
        .where(models.Booking.id == booking_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one()


def _ensure_bookable(db: Session, session_class: models.ClassSession, now: datetime) -> None:
    if session_class.is_cancelled:
        raise ConflictError("Class is cancelled", class_id=session_class.id)
    if session_class.event_type == EventType.block:
        raise ConflictError("Class is not bookable", class_id=session_class.id)
    starts_at = timerange.ensure_utc(session_class.starts_at)
    if starts_at <= now:
        raise ConflictError("Class has already started", class_id=session_class.id)
    if not conflict_service.blocks_apply_to(session_class.event_type):
        return
    ends_at = timerange.ensure_utc(session_class.ends_at)
    for block, block_start, block_end in conflict_service.block_intervals(
        db, session_class.tenant_id, starts_at, ends_at
    ):
        if timerange.overlaps(starts_at, ends_at, block_start, block_end):
            raise ConflictError("Class is blocked", class_id=session_class.id, block_id=block.id)


def _reserve(
    db: Session,
    session_class: models.ClassSession,
    student: models.Student,
    status: BookingStatus,
    notes: str | None,
    now: datetime,
) -> tuple[models.Booking, int]:
    duplicate = db.scalar(
        select(func.count(models.Booking.id)).where(
            models.Booking.class_id == session_class.id,
            models.Booking.student_id == student.id,
            models.Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
    )
    if duplicate:
        raise ConflictError("Already booked", class_id=session_class.id)
    occupancy = _occupancy(db, session_class.id)
    if occupancy >= session_class.max_students:
        raise ConflictError("No free seats", class_id=session_class.id)
    booking = models.Booking(
        tenant_id=session_class.tenant_id,
        class_id=session_class.id,
        student_id=student.id,
        status=status,
        notes=notes,
        booked_at=now,
    )
    db.add(booking)
    db.flush()
    return booking, session_class.max_students - (occupancy + 1)


def _get_tenant(db: Session, tenant_id: int) -> models.Teacher:
    tenant = db.get(models.Teacher, tenant_id)
    if tenant is None or not tenant.is_active:
        raise NotFoundError("Teacher not found")
    return tenant


def book_class(
    db: Session,
    ctx: AuthContext,
    class_id: int,
    *,
    notes: str | None = None,
) -> BookingResult:
    """Reserve one seat for the calling student.

    The booking is ``confirmed`` when the teacher has auto-approval enabled,
    ``pending`` otherwise. Losing the race for the last seat raises a
    :class:`ConflictError`, never an overbooked class.
    """

    session_class = db.get(models.ClassSession, class_id)
    if session_class is None:
        raise NotFoundError("Class not found")
    tenant = _get_tenant(db, session_class.tenant_id)
    student = resolve_student(db, ctx, tenant.id)
    status = BookingStatus.confirmed if tenant.auto_approval_enabled else BookingStatus.pending

    with locks.class_lock(class_id):
        try:
            with atomic(db):
                now = timerange.utc_now()
                locked = _lock_class(db, class_id)
                _ensure_bookable(db, locked, now)
                booking, available_spots = _reserve(db, locked, student, status, notes, now)
        except IntegrityError as exc:
            raise ConflictError("Already booked", class_id=class_id) from exc
        except OperationalError as exc:
            logger.exception("Booking storage unavailable", extra={"class_id": class_id})
            raise TransientError("Booking storage is temporarily unavailable") from exc
        except ConflictError as exc:
            logger.info(
                "Booking rejected",
                extra={"class_id": class_id, "student_id": student.id, "reason": exc.message},
            )
            raise

    logger.info(
        "Booking created",
        extra={"booking_id": booking.id, "class_id": class_id, "status": status.value},
    )
    dispatch_service.publish(
        db,
        tenant_id=tenant.id,
        action="booking_created",
        entity_type="booking",
        entity_id=booking.id,
        actor=ctx,
        new_values={"class_id": class_id, "status": status, "notes": notes},
        recipients=[student.id],
    )
    return BookingResult(booking=booking, status=status, available_spots=available_spots)


def book_classes_bulk(
    db: Session,
    ctx: AuthContext,
    class_ids: list[int],
    *,
    notes: str | None = None,
) -> list[models.Booking]:
    """Book several classes at once, all or nothing.

    Bulk bookings are always ``pending``. If any class cannot be booked,
    nothing is written and the :class:`ConflictError` lists the failure of
    every class that was rejected.
    """

    if len(class_ids) < MIN_BULK_BOOKING_CLASSES:
        raise ValidationError(
            f"At least {MIN_BULK_BOOKING_CLASSES} classes are required for bulk booking"
        )
    if len(set(class_ids)) != len(class_ids):
        raise ValidationError("classIds must be unique")

    classes = (
        db.query(models.ClassSession)
        .filter(models.ClassSession.id.in_(class_ids))
        .all()
    )
    found = {session_class.id for session_class in classes}
    missing = [class_id for class_id in class_ids if class_id not in found]
    if missing:
        raise NotFoundError("Class not found", class_ids=missing)
    tenant_ids = {session_class.tenant_id for session_class in classes}
    if len(tenant_ids) > 1:
        raise ValidationError("All classes must belong to the same teacher")
    tenant = _get_tenant(db, tenant_ids.pop())
    student = resolve_student(db, ctx, tenant.id)

    bookings: list[models.Booking] = []
    with locks.class_locks(class_ids):
        try:
            with atomic(db):
                now = timerange.utc_now()
                errors = []
                for class_id in sorted(class_ids):
                    try:
                        locked = _lock_class(db, class_id)
                        _ensure_bookable(db, locked, now)
                        booking, _ = _reserve(
                            db, locked, student, BookingStatus.pending, notes, now
                        )
                    except ConflictError as exc:
                        errors.append({"class_id": class_id, "error": exc.message})
                        continue
                    bookings.append(booking)
                if errors:
                    raise ConflictError("Bulk booking failed", errors=errors)
        except IntegrityError as exc:
            raise ConflictError("Already booked") from exc
        except OperationalError as exc:
            logger.exception("Booking storage unavailable", extra={"class_ids": class_ids})
            raise TransientError("Booking storage is temporarily unavailable") from exc
        except ConflictError as exc:
            logger.info(
                "Bulk booking rejected",
                extra={"student_id": student.id, "errors": exc.details.get("errors")},
            )
            raise

    dispatch_service.publish(
        db,
        tenant_id=tenant.id,
        action="bookings_created",
        entity_type="booking",
        entity_id=None,
        actor=ctx,
        new_values={
            "booking_ids": [booking.id for booking in bookings],
            "class_ids": class_ids,
            "status": BookingStatus.pending,
        },
        recipients=[student.id],
    )
    return bookings


def _parse_teacher_status(value: str | BookingStatus) -> BookingStatus:
    try:
        status = BookingStatus(value)
    except ValueError:
        status = None
    if status not in TEACHER_STATUSES:
        allowed = ", ".join(item.value for item in TEACHER_STATUSES)
        raise ValidationError(f"Invalid status. Use: {allowed}")
    return status


def update_booking_status(
    db: Session,
    ctx: AuthContext,
    booking_id: int,
    new_status: str | BookingStatus,
    *,
    reason: str | None = None,
) -> StatusChange:
    """Teacher-driven transition; approving a pending booking re-checks capacity."""

    target = _parse_teacher_status(new_status)
    if ctx.is_admin:
        tenant_id = None
    elif ctx.role == Role.teacher:
        tenant_id = tenant_scope(ctx)
    else:
        raise AuthorizationError("Teacher or admin access required")

    booking = db.get(models.Booking, booking_id)
    if booking is None or (tenant_id is not None and booking.tenant_id != tenant_id):
        raise NotFoundError("Booking not found")

    with locks.class_lock(booking.class_id):
        try:
            with atomic(db):
                locked_class = _lock_class(db, booking.class_id)
                booking = _lock_booking(db, booking_id)
                old_status = booking.status
                if target not in TRANSITIONS.get(old_status, ()):
                    raise ConflictError(
                        f"Cannot change status from {old_status.value} to {target.value}",
                        old_status=old_status.value,
                        new_status=target.value,
                    )
                if target == BookingStatus.confirmed:
                    if locked_class.is_cancelled:
                        raise ConflictError("Class is cancelled", class_id=locked_class.id)
                    others = _occupancy(db, locked_class.id, exclude_booking_id=booking.id)
                    if others >= locked_class.max_students:
                        raise ConflictError("No free seats", class_id=locked_class.id)
                booking.status = target
                if target == BookingStatus.cancelled:
                    booking.cancelled_at = timerange.utc_now()
                    booking.cancelled_by = ctx.actor_label
                    booking.cancellation_reason = reason
                elif target == BookingStatus.completed:
                    booking.attended = True
                elif target == BookingStatus.no_show:
                    booking.attended = False
        except OperationalError as exc:
            logger.exception("Booking storage unavailable", extra={"booking_id": booking_id})
            raise TransientError("Booking storage is temporarily unavailable") from exc

    logger.info(
        "Booking status changed",
        extra={"booking_id": booking.id, "old": old_status.value, "new": target.value},
    )
    dispatch_service.publish(
        db,
        tenant_id=booking.tenant_id,
        action="booking_status_changed",
        entity_type="booking",
        entity_id=booking.id,
        actor=ctx,
        old_values={"status": old_status},
        new_values={"status": target, "reason": reason},
        recipients=[booking.student_id],
    )
    return StatusChange(booking=booking, old_status=old_status, new_status=target)


def cancel_booking_by_student(
    db: Session,
    ctx: AuthContext,
    booking_id: int,
    *,
    reason: str | None = None,
) -> models.Booking:
    if ctx.role != Role.student:
        raise AuthorizationError("Student access required")
    booking = (
        db.query(models.Booking)
        .join(models.Student, models.Booking.student_id == models.Student.id)
        .filter(models.Booking.id == booking_id)
        .filter(models.Student.profile_id == ctx.profile_id)
        .first()
    )
    if booking is None:
        raise NotFoundError("Booking not found or not yours")

    with locks.class_lock(booking.class_id):
        try:
            with atomic(db):
                booking = _lock_booking(db, booking_id)
                if booking.status not in ACTIVE_BOOKING_STATUSES:
                    raise ConflictError(
                        f"Cannot cancel a {booking.status.value} booking",
                        status=booking.status.value,
                    )
                old_status = booking.status
                booking.status = BookingStatus.cancelled
                booking.cancelled_at = timerange.utc_now()
                booking.cancelled_by = ctx.actor_label
                booking.cancellation_reason = reason
        except OperationalError as exc:
            logger.exception("Booking storage unavailable", extra={"booking_id": booking_id})
            raise TransientError("Booking storage is temporarily unavailable") from exc

    dispatch_service.publish(
        db,
        tenant_id=booking.tenant_id,
        action="booking_cancelled",
        entity_type="booking",
        entity_id=booking.id,
        actor=ctx,
        old_values={"status": old_status},
        new_values={"status": BookingStatus.cancelled, "reason": reason},
        recipients=[booking.student_id],
    )
    return booking


def _annotate(bookings: list[models.Booking]) -> list[models.Booking]:
    for booking in bookings:
        session_class = booking.class_session
        setattr(booking, "class_starts_at", timerange.ensure_utc(session_class.starts_at))
        setattr(booking, "class_ends_at", timerange.ensure_utc(session_class.ends_at))
        setattr(
            booking,
            "class_type_name",
            session_class.class_type.name if session_class.class_type else None,
        )
        setattr(booking, "student_name", booking.student.name if booking.student else None)
    return bookings


def _booking_query(db: Session):
    return db.query(models.Booking).options(
        selectinload(models.Booking.student),
        selectinload(models.Booking.class_session).selectinload(
            models.ClassSession.class_type
        ),
    )


def list_student_bookings(db: Session, ctx: AuthContext) -> list[models.Booking]:
    if ctx.role != Role.student:
        raise AuthorizationError("Student access required")
    bookings = (
        _booking_query(db)
        .join(models.Student, models.Booking.student_id == models.Student.id)
        .filter(models.Student.profile_id == ctx.profile_id)
        .order_by(models.Booking.booked_at.desc(), models.Booking.id.desc())
        .all()
    )
    return _annotate(bookings)


def list_tenant_bookings(
    db: Session,
    ctx: AuthContext,
    *,
    status: str | None = None,
    class_id: int | None = None,
) -> tuple[list[models.Booking], int]:
    """Bookings of the teacher's tenant plus the number still awaiting approval."""

    tenant_id = tenant_scope(ctx)
    query = _booking_query(db).filter(models.Booking.tenant_id == tenant_id)
    if status:
        try:
            query = query.filter(models.Booking.status == BookingStatus(status))
        except ValueError as exc:
            raise ValidationError("Invalid status filter") from exc
    if class_id:
        query = query.filter(models.Booking.class_id == class_id)
    bookings = query.order_by(models.Booking.booked_at.desc(), models.Booking.id.desc()).all()
    pending_count = (
        db.query(func.count(models.Booking.id))
        .filter(models.Booking.tenant_id == tenant_id)
        .filter(models.Booking.status == BookingStatus.pending)
        .scalar()
    )
    return _annotate(bookings), int(pending_count or 0)


__all__ = [
    "BookingResult",
    "StatusChange",
    "TRANSITIONS",
    "count_active_bookings",
    "book_class",
    "book_classes_bulk",
    "update_booking_status",
    "cancel_booking_by_student",
    "list_student_bookings",
    "list_tenant_bookings",
]

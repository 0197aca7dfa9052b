from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from ...api import deps
from ...core.auth import AuthContext
from ...core.errors import SchedulingError
from ...db.session import get_db
from ...db import models, schemas
from ...services import booking_service

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("", response_model=list[schemas.Booking])
def list_my_bookings(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("student")),
):
    return booking_service.list_student_bookings(db, ctx)


@router.get("/teacher", response_model=schemas.TeacherBookingList)
def list_teacher_bookings(
    status_filter: str | None = None,
    class_id: int | None = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("teacher")),
):
    try:
        bookings, pending_count = booking_service.list_tenant_bookings(
            db, ctx, status=status_filter, class_id=class_id
        )
    except SchedulingError as exc:
        raise deps.as_http_error(exc) from exc
    return schemas.TeacherBookingList(
        bookings=[schemas.Booking.model_validate(booking) for booking in bookings],
        pending_count=pending_count,
    )


@router.post("", response_model=schemas.BookingCreated, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: schemas.BookingCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("student")),
):
    try:
        result = booking_service.book_class(db, ctx, payload.class_id, notes=payload.notes)
    except SchedulingError as exc:
        raise deps.as_http_error(exc) from exc
    message = (
        "Booking confirmed"
        if result.status == models.BookingStatus.confirmed
        else "Booking request sent, awaiting teacher approval"
    )
    return schemas.BookingCreated(
        booking_id=result.booking.id,
        status=result.status.value,
        available_spots=result.available_spots,
        message=message,
    )


@router.post("/bulk", response_model=schemas.BulkBookingCreated, status_code=status.HTTP_201_CREATED)
def create_bulk_booking(
    payload: schemas.BulkBookingCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("student")),
):
    try:
        bookings = booking_service.book_classes_bulk(
            db, ctx, payload.class_ids, notes=payload.notes
        )
    except SchedulingError as exc:
        raise deps.as_http_error(exc) from exc
    return schemas.BulkBookingCreated(
        booking_ids=[booking.id for booking in bookings],
        status="pending",
        message=f"{len(bookings)} booking requests sent, awaiting teacher approval",
        errors=[],
    )


@router.patch("/{booking_id}/status", response_model=schemas.BookingStatusChanged)
def update_booking_status(
    booking_id: int,
    payload: schemas.BookingStatusUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("teacher", "admin")),
):
    try:
        change = booking_service.update_booking_status(
            db, ctx, booking_id, payload.status, reason=payload.reason
        )
    except SchedulingError as exc:
        raise deps.as_http_error(exc) from exc
    return schemas.BookingStatusChanged(
        booking_id=change.booking.id,
        old_status=change.old_status.value,
        new_status=change.new_status.value,
    )


@router.post("/{booking_id}/cancel", response_model=schemas.BookingCancelled)
def cancel_booking(
    booking_id: int,
    payload: schemas.BookingCancel,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("student")),
):
    try:
        booking = booking_service.cancel_booking_by_student(
            db, ctx, booking_id, reason=payload.reason
        )
    except SchedulingError as exc:
        raise deps.as_http_error(exc) from exc
    return schemas.BookingCancelled(booking_id=booking.id, message="Booking cancelled")

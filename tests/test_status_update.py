import pytest

from classbook.core.auth import AuthContext
from classbook.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from classbook.db import models
from classbook.services import booking_service
from factories import create_teacher_context, create_tenant


def book(db_session, make_student, session_class, name="Student"):
    _, ctx = make_student(name)
    return booking_service.book_class(db_session, ctx, session_class.id).booking


def test_teacher_confirms_pending_booking(db_session, teacher_ctx, make_student, make_class):
    booking = book(db_session, make_student, make_class())

    change = booking_service.update_booking_status(db_session, teacher_ctx, booking.id, "confirmed")

    assert change.old_status == models.BookingStatus.pending
    assert change.new_status == models.BookingStatus.confirmed
    assert change.booking.status == models.BookingStatus.confirmed


@pytest.mark.parametrize(
    "path, attended",
    [
        (["confirmed", "completed"], True),
        (["confirmed", "no_show"], False),
    ],
)
def test_attendance_outcomes(db_session, teacher_ctx, make_student, make_class, path, attended):
    booking = book(db_session, make_student, make_class())

    for status in path:
        change = booking_service.update_booking_status(db_session, teacher_ctx, booking.id, status)

    assert change.booking.attended is attended


@pytest.mark.parametrize(
    "path, illegal",
    [
        (["cancelled"], "confirmed"),
        (["confirmed", "completed"], "cancelled"),
        (["confirmed", "no_show"], "completed"),
        ([], "completed"),
        ([], "no_show"),
        (["confirmed"], "confirmed"),
    ],
)
def test_illegal_transitions_are_rejected(
    db_session, teacher_ctx, make_student, make_class, path, illegal
):
    booking = book(db_session, make_student, make_class())
    for status in path:
        booking_service.update_booking_status(db_session, teacher_ctx, booking.id, status)

    with pytest.raises(ConflictError) as exc_info:
        booking_service.update_booking_status(db_session, teacher_ctx, booking.id, illegal)

    assert exc_info.value.details["new_status"] == illegal


def test_unknown_status_is_a_validation_error(db_session, teacher_ctx, make_student, make_class):
    booking = book(db_session, make_student, make_class())

    for status in ("pending", "approved"):
        with pytest.raises(ValidationError):
            booking_service.update_booking_status(db_session, teacher_ctx, booking.id, status)


def test_approval_rechecks_capacity(db_session, teacher_ctx, make_student, make_class):
    session_class = make_class(max_students=2)
    first = book(db_session, make_student, session_class, "First")
    book(db_session, make_student, session_class, "Second")
    session_class.max_students = 1
    db_session.commit()

    with pytest.raises(ConflictError, match="No free seats"):
        booking_service.update_booking_status(db_session, teacher_ctx, first.id, "confirmed")

    db_session.refresh(first)
    assert first.status == models.BookingStatus.pending


def test_rejection_records_reason(db_session, teacher_ctx, make_student, make_class):
    booking = book(db_session, make_student, make_class())

    change = booking_service.update_booking_status(
        db_session, teacher_ctx, booking.id, "cancelled", reason="Class is for advanced level"
    )

    assert change.booking.cancellation_reason == "Class is for advanced level"
    assert change.booking.cancelled_by == teacher_ctx.actor_label
    assert change.booking.cancelled_at is not None


def test_teacher_cannot_touch_foreign_bookings(db_session, make_student, make_class):
    booking = book(db_session, make_student, make_class())
    other_ctx = create_teacher_context(db_session, create_tenant(db_session, slug="other"))

    with pytest.raises(NotFoundError):
        booking_service.update_booking_status(db_session, other_ctx, booking.id, "confirmed")


def test_admin_may_update_any_booking(db_session, make_student, make_class):
    booking = book(db_session, make_student, make_class())
    admin = AuthContext(profile_id=999, role=models.Role.admin)

    change = booking_service.update_booking_status(db_session, admin, booking.id, "confirmed")

    assert change.new_status == models.BookingStatus.confirmed


def test_students_cannot_update_status(db_session, make_student, make_class):
    session_class = make_class()
    _, ctx = make_student()
    booking = booking_service.book_class(db_session, ctx, session_class.id).booking

    with pytest.raises(AuthorizationError):
        booking_service.update_booking_status(db_session, ctx, booking.id, "confirmed")


def test_status_change_is_audited_and_notified(db_session, teacher_ctx, make_student, make_class):
    booking = book(db_session, make_student, make_class())

    booking_service.update_booking_status(db_session, teacher_ctx, booking.id, "confirmed")

    audit = db_session.query(models.AuditLog).filter_by(action="booking_status_changed").one()
    assert audit.old_values == {"status": "pending"}
    assert audit.new_values["status"] == "confirmed"
    assert audit.actor_type == models.ActorType.teacher
    events = [job.payload["event"] for job in db_session.query(models.Job)]
    assert "booking_status_changed" in events

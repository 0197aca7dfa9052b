from datetime import datetime, timedelta, timezone

import pytest

from classbook.core.errors import ConflictError, NotFoundError, ValidationError
from classbook.db import models
from classbook.services import booking_service
from factories import create_class, create_class_type, create_student, create_tenant


def later(days, hours=10):
    base = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return base + timedelta(days=days, hours=hours)


def test_bulk_bookings_are_always_pending(db_session):
    tenant = create_tenant(db_session, slug="auto", auto_approve=True)
    class_type = create_class_type(db_session, tenant)
    classes = [create_class(db_session, tenant, class_type, starts_at=later(day)) for day in (2, 3, 4)]
    _, ctx = create_student(db_session, tenant)

    bookings = booking_service.book_classes_bulk(
        db_session, ctx, [session_class.id for session_class in classes], notes="Term"
    )

    assert len(bookings) == 3
    assert {booking.status for booking in bookings} == {models.BookingStatus.pending}
    assert [booking.class_id for booking in bookings] == [c.id for c in classes]


def test_bulk_booking_is_all_or_nothing(db_session, make_student, make_class):
    open_class = make_class(starts_at=later(2), max_students=2)
    full_class = make_class(starts_at=later(3), max_students=1)
    _, rival = make_student("Rival")
    booking_service.book_class(db_session, rival, full_class.id)
    _, ctx = make_student("Bulk")

    with pytest.raises(ConflictError) as exc_info:
        booking_service.book_classes_bulk(db_session, ctx, [open_class.id, full_class.id])

    assert exc_info.value.details["errors"] == [
        {"class_id": full_class.id, "error": "No free seats"}
    ]
    assert booking_service.count_active_bookings(db_session, [open_class.id]) == {}


def test_bulk_booking_reports_every_failure(db_session, make_student, make_class):
    past = make_class(starts_at=datetime.now(timezone.utc) - timedelta(days=1))
    cancelled = make_class(starts_at=later(3), is_cancelled=True)
    fine = make_class(starts_at=later(4))
    _, ctx = make_student()

    with pytest.raises(ConflictError) as exc_info:
        booking_service.book_classes_bulk(db_session, ctx, [past.id, cancelled.id, fine.id])

    failed = [error["class_id"] for error in exc_info.value.details["errors"]]
    assert failed == [past.id, cancelled.id]
    assert db_session.query(models.Booking).count() == 0


@pytest.mark.parametrize("class_ids", [[], [1], [1, 1]])
def test_bulk_booking_validates_class_ids(db_session, make_student, class_ids):
    _, ctx = make_student()

    with pytest.raises(ValidationError):
        booking_service.book_classes_bulk(db_session, ctx, class_ids)


def test_bulk_booking_unknown_class(db_session, make_student, make_class):
    session_class = make_class(starts_at=later(2))
    _, ctx = make_student()

    with pytest.raises(NotFoundError) as exc_info:
        booking_service.book_classes_bulk(db_session, ctx, [session_class.id, 4040])

    assert exc_info.value.details["class_ids"] == [4040]


def test_bulk_booking_cannot_span_teachers(db_session, make_student, make_class):
    other = create_tenant(db_session, slug="other")
    other_class = create_class(
        db_session, other, create_class_type(db_session, other), starts_at=later(3)
    )
    own_class = make_class(starts_at=later(2))
    _, ctx = make_student()

    with pytest.raises(ValidationError):
        booking_service.book_classes_bulk(db_session, ctx, [own_class.id, other_class.id])


def test_bulk_booking_locks_classes_in_id_order(db_session, make_student, make_class, monkeypatch):
    classes = [make_class(starts_at=later(day)) for day in (2, 3, 4)]
    _, ctx = make_student()
    locked = []
    lock_class = booking_service._lock_class

    def recording_lock(db, class_id):
        locked.append(class_id)
        return lock_class(db, class_id)

    monkeypatch.setattr(booking_service, "_lock_class", recording_lock)

    bookings = booking_service.book_classes_bulk(
        db_session, ctx, [session_class.id for session_class in reversed(classes)]
    )

    assert locked == sorted(session_class.id for session_class in classes)
    assert len(bookings) == 3

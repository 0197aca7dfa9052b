from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from classbook.core.errors import AuthorizationError, ConflictError, NotFoundError
from classbook.db import models
from classbook.db.session import Base
from classbook.services import availability_service, booking_service, class_service
from factories import (
    create_class,
    create_class_type,
    create_student,
    create_tenant,
)


def test_booking_is_pending_without_auto_approval(db_session, make_student, make_class):
    session_class = make_class(max_students=3)
    student, ctx = make_student()

    result = booking_service.book_class(db_session, ctx, session_class.id, notes="First time")

    assert result.status == models.BookingStatus.pending
    assert result.available_spots == 2
    assert result.booking.student_id == student.id
    assert result.booking.tenant_id == session_class.tenant_id
    assert result.booking.notes == "First time"


def test_booking_is_confirmed_with_auto_approval(db_session):
    tenant = create_tenant(db_session, slug="auto", auto_approve=True)
    class_type = create_class_type(db_session, tenant, max_students=2)
    session_class = create_class(db_session, tenant, class_type)
    _, ctx = create_student(db_session, tenant)

    result = booking_service.book_class(db_session, ctx, session_class.id)

    assert result.status == models.BookingStatus.confirmed
    assert result.available_spots == 1


def test_capacity_two_three_students(db_session, make_student, make_class):
    session_class = make_class(max_students=2)
    contexts = [make_student(f"Student {index}")[1] for index in range(3)]

    spots = [
        booking_service.book_class(db_session, ctx, session_class.id).available_spots
        for ctx in contexts[:2]
    ]
    with pytest.raises(ConflictError) as exc_info:
        booking_service.book_class(db_session, contexts[2], session_class.id)

    assert sorted(spots) == [0, 1]
    assert exc_info.value.message == "No free seats"
    assert booking_service.count_active_bookings(db_session, [session_class.id]) == {
        session_class.id: 2
    }


def test_duplicate_booking_is_rejected(db_session, make_student, make_class):
    session_class = make_class(max_students=5)
    _, ctx = make_student()

    booking_service.book_class(db_session, ctx, session_class.id)
    with pytest.raises(ConflictError) as exc_info:
        booking_service.book_class(db_session, ctx, session_class.id)

    assert exc_info.value.message == "Already booked"
    assert db_session.query(models.Booking).count() == 1


def test_rebooking_after_cancel_keeps_history(db_session, make_student, make_class):
    session_class = make_class(max_students=1)
    _, ctx = make_student()

    first = booking_service.book_class(db_session, ctx, session_class.id).booking
    booking_service.cancel_booking_by_student(db_session, ctx, first.id, reason="Sick")
    second = booking_service.book_class(db_session, ctx, session_class.id).booking

    assert second.id != first.id
    statuses = {booking.id: booking.status for booking in db_session.query(models.Booking)}
    assert statuses == {
        first.id: models.BookingStatus.cancelled,
        second.id: models.BookingStatus.pending,
    }


def test_cancelled_class_rejects_bookings(db_session, teacher_ctx, make_student, make_class):
    session_class = make_class()
    class_service.cancel_class(db_session, teacher_ctx, session_class.id)
    _, ctx = make_student()

    with pytest.raises(ConflictError, match="cancelled"):
        booking_service.book_class(db_session, ctx, session_class.id)


def test_past_class_rejects_bookings(db_session, make_student, make_class):
    session_class = make_class(starts_at=datetime.now(timezone.utc) - timedelta(hours=2))
    _, ctx = make_student()

    with pytest.raises(ConflictError, match="already started"):
        booking_service.book_class(db_session, ctx, session_class.id)


def test_unknown_class_is_not_found(db_session, make_student):
    _, ctx = make_student()

    with pytest.raises(NotFoundError):
        booking_service.book_class(db_session, ctx, 999)


def test_student_of_another_teacher_cannot_book(db_session, make_student, make_class):
    other = create_tenant(db_session, slug="elsewhere")
    session_class = make_class()
    _, ctx = make_student(owner=other)

    with pytest.raises(AuthorizationError):
        booking_service.book_class(db_session, ctx, session_class.id)


def test_cancel_class_keeps_bookings_and_notifies(db_session, teacher_ctx, make_student, make_class):
    session_class = make_class(max_students=3)
    booked = []
    for index in range(2):
        student, ctx = make_student(f"Student {index}")
        booking_service.book_class(db_session, ctx, session_class.id)
        booked.append(student.id)

    cancelled = class_service.cancel_class(db_session, teacher_ctx, session_class.id)
    again = class_service.cancel_class(db_session, teacher_ctx, session_class.id, reason="Ignored")

    assert cancelled.is_cancelled is True
    assert again.cancelled_reason == "Cancelled by teacher"
    assert db_session.query(models.Booking).filter(
        models.Booking.status == models.BookingStatus.pending
    ).count() == 2
    jobs = [
        job for job in db_session.query(models.Job) if job.payload["event"] == "class_cancelled"
    ]
    assert len(jobs) == 1
    assert jobs[0].payload["student_ids"] == sorted(booked)
    assert jobs[0].priority == 1


def add_block_over(db_session, session_class):
    block = models.Block(
        tenant_id=session_class.tenant_id,
        starts_at=session_class.starts_at - timedelta(hours=1),
        ends_at=session_class.ends_at + timedelta(hours=1),
        title="Vacation",
    )
    db_session.add(block)
    db_session.commit()
    return block


def test_blocked_class_rejects_bookings(db_session, tenant, make_student, make_class):
    session_class = make_class(max_students=3)
    block = add_block_over(db_session, session_class)
    _, ctx = make_student()

    slots = availability_service.get_availability_slots(
        db_session,
        tenant.id,
        session_class.starts_at.date(),
        session_class.starts_at.date(),
    )
    with pytest.raises(ConflictError, match="Class is blocked") as exc_info:
        booking_service.book_class(db_session, ctx, session_class.id)

    assert [slot.is_bookable for slot in slots] == [False]
    assert exc_info.value.details == {"class_id": session_class.id, "block_id": block.id}
    assert booking_service.count_active_bookings(db_session, [session_class.id]) == {}


def test_bulk_booking_rejects_blocked_class(db_session, make_student, make_class):
    first = make_class(starts_at=datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=2))
    blocked = make_class(starts_at=datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=5))
    add_block_over(db_session, blocked)
    _, ctx = make_student()

    with pytest.raises(ConflictError) as exc_info:
        booking_service.book_classes_bulk(db_session, ctx, [blocked.id, first.id])

    assert exc_info.value.details["errors"] == [{"class_id": blocked.id, "error": "Class is blocked"}]
    assert db_session.query(models.Booking).count() == 0


def test_touching_block_does_not_prevent_booking(db_session, make_student, make_class):
    session_class = make_class()
    db_session.add(
        models.Block(
            tenant_id=session_class.tenant_id,
            starts_at=session_class.ends_at,
            ends_at=session_class.ends_at + timedelta(hours=2),
        )
    )
    db_session.commit()
    _, ctx = make_student()

    result = booking_service.book_class(db_session, ctx, session_class.id)

    assert result.booking.status == models.BookingStatus.pending


@pytest.fixture()
def threaded_sessions(tmp_path):
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'bookings.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    SessionFactory = sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False
    )
    yield SessionFactory
    engine.dispose()


def test_concurrent_requests_for_last_seats(threaded_sessions):
    setup = threaded_sessions()
    tenant = create_tenant(setup, slug="race")
    class_type = create_class_type(setup, tenant, max_students=3)
    session_class = create_class(setup, tenant, class_type)
    contexts = [create_student(setup, tenant, name=f"Student {index}")[1] for index in range(12)]
    setup.close()

    barrier = threading.Barrier(len(contexts))

    def attempt(ctx):
        db = threaded_sessions()
        try:
            barrier.wait()
            booking_service.book_class(db, ctx, session_class.id)
            return "booked"
        except ConflictError as exc:
            return exc.message
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=len(contexts)) as pool:
        outcomes = list(pool.map(attempt, contexts))

    assert outcomes.count("booked") == 3
    assert outcomes.count("No free seats") == 9

    check = threaded_sessions()
    try:
        assert booking_service.count_active_bookings(check, [session_class.id]) == {
            session_class.id: 3
        }
    finally:
        check.close()


def test_concurrent_duplicate_submissions_book_once(threaded_sessions):
    setup = threaded_sessions()
    tenant = create_tenant(setup, slug="retry")
    class_type = create_class_type(setup, tenant, max_students=5)
    session_class = create_class(setup, tenant, class_type)
    _, ctx = create_student(setup, tenant)
    setup.close()

    barrier = threading.Barrier(6)

    def attempt(_):
        db = threaded_sessions()
        try:
            barrier.wait()
            booking_service.book_class(db, ctx, session_class.id)
            return "booked"
        except ConflictError as exc:
            return exc.message
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=6) as pool:
        outcomes = list(pool.map(attempt, range(6)))

    assert outcomes.count("booked") == 1
    assert outcomes.count("Already booked") == 5

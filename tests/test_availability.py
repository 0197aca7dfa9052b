from datetime import date, datetime, time, timedelta, timezone

import pytest

from classbook.core.errors import NotFoundError, ValidationError
from classbook.db import models
from classbook.db.models.class_session import EventType
from classbook.services import availability_service, booking_service


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


NOW = utc(2030, 1, 1, 12)


def add_monday_schedule(db_session, tenant, class_type, **kwargs):
    schedule = models.Schedule(
        tenant_id=tenant.id,
        class_type_id=class_type.id,
        day_of_week=models.DayOfWeek.monday,
        start_time=time(10, 0),
        end_time=time(11, 0),
        is_public=kwargs.pop("is_public", True),
        is_active=True,
        **kwargs,
    )
    db_session.add(schedule)
    db_session.commit()
    return schedule


def test_feed_reports_live_occupancy(db_session, tenant, make_student, make_class):
    session_class = make_class(starts_at=utc(2030, 1, 9, 18), max_students=2)
    _, ctx = make_student()
    booking_service.book_class(db_session, ctx, session_class.id)

    slots = availability_service.get_availability_slots(
        db_session, tenant.id, "2030-01-07", "2030-01-13", now=NOW
    )

    assert len(slots) == 1
    slot = slots[0]
    assert slot.class_id == session_class.id
    assert slot.current_bookings == 1
    assert slot.available_spots == 1
    assert slot.is_bookable is True
    assert slot.source_type == "class"
    assert slot.event_type == "class"


def test_cancelling_a_booking_frees_the_spot(db_session, tenant, make_student, make_class):
    session_class = make_class(starts_at=utc(2030, 1, 9, 18), max_students=1)
    _, ctx = make_student()
    booking = booking_service.book_class(db_session, ctx, session_class.id).booking

    full = availability_service.get_availability_slots(
        db_session, tenant.id, "2030-01-07", "2030-01-13", now=NOW
    )
    booking_service.cancel_booking_by_student(db_session, ctx, booking.id)
    freed = availability_service.get_availability_slots(
        db_session, tenant.id, "2030-01-07", "2030-01-13", now=NOW
    )

    assert (full[0].available_spots, full[0].is_bookable) == (0, False)
    assert (freed[0].available_spots, freed[0].is_bookable) == (1, True)


def test_schedule_candidates_are_bookable_until_they_start(db_session, tenant, class_type):
    add_monday_schedule(db_session, tenant, class_type)

    slots = availability_service.get_availability_slots(
        db_session, tenant.id, date(2030, 1, 7), date(2030, 1, 14), now=utc(2030, 1, 10)
    )

    assert [slot.slot_start for slot in slots] == [utc(2030, 1, 7, 10), utc(2030, 1, 14, 10)]
    assert [slot.is_bookable for slot in slots] == [False, True]
    assert slots[1].available_spots == class_type.max_students
    assert slots[1].class_id is None


def test_cancelled_and_blocked_slots_are_not_bookable(db_session, tenant, class_type, make_class):
    add_monday_schedule(db_session, tenant, class_type)
    make_class(starts_at=utc(2030, 1, 9, 18), is_cancelled=True)
    db_session.add(
        models.Block(tenant_id=tenant.id, starts_at=utc(2030, 1, 7, 9), ends_at=utc(2030, 1, 7, 12))
    )
    db_session.commit()

    slots = availability_service.get_availability_slots(
        db_session, tenant.id, "2030-01-07", "2030-01-13", now=NOW
    )

    assert [(slot.slot_start, slot.is_bookable) for slot in slots] == [
        (utc(2030, 1, 7, 10), False),
        (utc(2030, 1, 9, 18), False),
    ]


def test_public_feed_hides_private_sessions(db_session, tenant, make_class):
    make_class(starts_at=utc(2030, 1, 9, 18), event_type=EventType.private)
    shown = make_class(starts_at=utc(2030, 1, 10, 18))

    public = availability_service.get_availability_slots(
        db_session, tenant.id, "2030-01-07", "2030-01-13", now=NOW
    )
    own = availability_service.get_availability_slots(
        db_session, tenant.id, "2030-01-07", "2030-01-13", public_only=False, now=NOW
    )

    assert [slot.class_id for slot in public] == [shown.id]
    assert len(own) == 2


def test_output_is_expressed_in_requested_zone(db_session, tenant, make_class):
    make_class(starts_at=utc(2030, 1, 9, 18))

    slots = availability_service.get_availability_slots(
        db_session, tenant.id, "2030-01-07", "2030-01-13", "Asia/Tokyo", now=NOW
    )

    assert slots[0].slot_start.isoformat() == "2030-01-10T03:00:00+09:00"
    assert slots[0].slot_start == utc(2030, 1, 9, 18)


@pytest.mark.parametrize(
    "from_date, to_date, zone",
    [
        ("2030-01-07", "2030-01-01", None),
        ("2030/01/07", "2030-01-08", None),
        ("2030-01-01", "2030-12-31", None),
        ("2030-01-07", "2030-01-08", "Nowhere/Special"),
    ],
)
def test_invalid_queries(db_session, tenant, from_date, to_date, zone):
    with pytest.raises(ValidationError):
        availability_service.get_availability_slots(db_session, tenant.id, from_date, to_date, zone)


def test_unknown_or_inactive_teacher(db_session, tenant):
    with pytest.raises(NotFoundError):
        availability_service.get_availability_slots(db_session, 404, "2030-01-07", "2030-01-08")

    tenant.is_active = False
    db_session.commit()
    with pytest.raises(NotFoundError):
        availability_service.get_availability_slots(db_session, tenant.id, "2030-01-07", "2030-01-08")


def test_past_slots_are_not_bookable(db_session, tenant, make_class):
    session_class = make_class(starts_at=datetime.now(timezone.utc) - timedelta(hours=3))
    today = session_class.starts_at.date()

    slots = availability_service.get_availability_slots(
        db_session, tenant.id, today - timedelta(days=1), today + timedelta(days=1)
    )

    assert [slot.is_bookable for slot in slots] == [False]

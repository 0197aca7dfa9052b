"""Bookable availability feed: expanded slots overlaid with live occupancy."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
import logging

from sqlalchemy.orm import Session

from ..config import get_settings
from ..core import timerange
from ..core.errors import NotFoundError, ValidationError
from ..db import models
from . import booking_service, conflict_service, schedule_service

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AvailabilitySlot:
    slot_start: datetime
    slot_end: datetime
    class_type_id: int
    class_type_name: str
    max_students: int
    current_bookings: int
    available_spots: int
    is_bookable: bool
    source_type: str
    event_type: str
    class_id: int | None = None
    schedule_id: int | None = None


def get_availability_slots(
    db: Session,
    tenant_id: int,
    from_date: str | date,
    to_date: str | date,
    timezone: str | None = None,
    *,
    public_only: bool = True,
    now: datetime | None = None,
) -> list[AvailabilitySlot]:
    """Ordered availability of a tenant for the inclusive local date window.

    Dates are calendar dates in the tenant's zone; returned instants are
    expressed in ``timezone`` (the tenant's zone when omitted). Occupancy is
    counted on every call.
    """

    first_day = timerange.parse_date(from_date, "from")
    last_day = timerange.parse_date(to_date, "to")
    if last_day < first_day:
        raise ValidationError("to must not be before from")
    if (last_day - first_day).days + 1 > get_settings().availability_max_days:
        raise ValidationError("Date window is too large")

    tenant = db.get(models.Teacher, tenant_id)
    if tenant is None or not tenant.is_active:
        raise NotFoundError("Teacher not found")
    output_zone = (
        timerange.get_zone(timezone) if timezone else conflict_service.tenant_zone(tenant)
    )
    now = timerange.ensure_utc(now) if now else timerange.utc_now()

    slots = schedule_service.expand_schedules(
        db, tenant, first_day, last_day, public_only=public_only
    )
    counts = booking_service.count_active_bookings(
        db, [slot.class_id for slot in slots if slot.class_id is not None]
    )

    feed = []
    for slot in slots:
        booked = counts.get(slot.class_id, 0) if slot.class_id is not None else 0
        available = max(slot.max_students - booked, 0)
        feed.append(
            AvailabilitySlot(
                slot_start=slot.starts_at.astimezone(output_zone),
                slot_end=slot.ends_at.astimezone(output_zone),
                class_type_id=slot.class_type_id,
                class_type_name=slot.class_type_name,
                max_students=slot.max_students,
                current_bookings=booked,
                available_spots=available,
                is_bookable=(
                    available > 0
                    and not slot.is_cancelled
                    and not slot.is_blocked
                    and slot.starts_at > now
                ),
                source_type=slot.source_type,
                event_type=slot.event_type.value,
                class_id=slot.class_id,
                schedule_id=slot.schedule_id,
            )
        )
    logger.debug(
        "Availability projected",
        extra={"tenant_id": tenant_id, "slots": len(feed), "public_only": public_only},
    )
    return feed


__all__ = ["AvailabilitySlot", "get_availability_slots"]

from datetime import datetime
from pydantic import BaseModel


class AvailabilitySlot(BaseModel):
    slot_start: datetime
    slot_end: datetime
    class_type_id: int
    class_type_name: str
    max_students: int
    current_bookings: int
    available_spots: int
    is_bookable: bool
    class_id: int | None = None
    schedule_id: int | None = None
    source_type: str
    event_type: str

    class Config:
        from_attributes = True


class AvailabilityFeed(BaseModel):
    slots: list[AvailabilitySlot]
    timezone: str

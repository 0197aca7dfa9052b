from datetime import datetime
from pydantic import BaseModel, Field


class BookingCreate(BaseModel):
    class_id: int = Field(alias="classId")
    notes: str | None = None

    class Config:
        populate_by_name = True


class BulkBookingCreate(BaseModel):
    class_ids: list[int] = Field(alias="classIds")
    notes: str | None = None

    class Config:
        populate_by_name = True


class BookingStatusUpdate(BaseModel):
    status: str
    reason: str | None = None


class BookingCancel(BaseModel):
    reason: str | None = None


class BookingCreated(BaseModel):
    booking_id: int
    status: str
    available_spots: int
    message: str


class BulkBookingCreated(BaseModel):
    booking_ids: list[int]
    status: str
    message: str
    errors: list[dict]


class BookingStatusChanged(BaseModel):
    booking_id: int
    old_status: str
    new_status: str


class BookingCancelled(BaseModel):
    booking_id: int
    message: str


class Booking(BaseModel):
    id: int
    tenant_id: int
    class_id: int
    student_id: int
    status: str
    attended: bool | None = None
    notes: str | None = None
    booked_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    class_starts_at: datetime | None = None
    class_ends_at: datetime | None = None
    class_type_name: str | None = None
    student_name: str | None = None

    class Config:
        from_attributes = True


class TeacherBookingList(BaseModel):
    bookings: list[Booking]
    pending_count: int

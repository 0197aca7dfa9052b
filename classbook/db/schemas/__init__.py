from .schedule import Schedule, ScheduleCreate, MaterializeRequest, MaterializeResult
from .class_session import ClassSession, ClassCreate, ClassCancel, Conflict, ConflictCheck, ConflictReport
from .block import Block, BlockCreate
from .availability import AvailabilitySlot, AvailabilityFeed
from .booking import (
    Booking,
    BookingCreate,
    BulkBookingCreate,
    BookingStatusUpdate,
    BookingCancel,
    BookingCreated,
    BulkBookingCreated,
    BookingStatusChanged,
    BookingCancelled,
    TeacherBookingList,
)

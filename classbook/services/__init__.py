from . import (
    availability_service,
    block_service,
    booking_service,
    class_service,
    conflict_service,
    dispatch_service,
    notification_service,
    schedule_service,
)
__all__ = [
    "availability_service",
    "block_service",
    "booking_service",
    "class_service",
    "conflict_service",
    "dispatch_service",
    "notification_service",
    "schedule_service",
]

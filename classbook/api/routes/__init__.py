from . import (
    schedules,
    classes,
    blocks,
    availability,
    bookings,
)

__all__ = [
    "schedules",
    "classes",
    "blocks",
    "availability",
    "bookings",
]

"""Common application-wide constants."""

from datetime import timedelta

# Retry delays for failed notification jobs, indexed by attempt number
JOB_RETRY_DELAYS = (
    timedelta(seconds=60),
    timedelta(seconds=300),
    timedelta(seconds=900),
)
JOB_MAX_ATTEMPTS = 3
SEND_NOTIFICATIONS_JOB = "send_notifications"

DEFAULT_CLASS_CANCEL_REASON = "Cancelled by teacher"

MIN_BULK_BOOKING_CLASSES = 2


__all__ = [
    "JOB_RETRY_DELAYS",
    "JOB_MAX_ATTEMPTS",
    "SEND_NOTIFICATIONS_JOB",
    "DEFAULT_CLASS_CANCEL_REASON",
    "MIN_BULK_BOOKING_CLASSES",
]

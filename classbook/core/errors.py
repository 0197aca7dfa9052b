"""Error taxonomy shared by the scheduling and booking services.

Every error carries a human readable message plus optional structured
details (conflicting entities, blocking bookings, per-class errors) that
the HTTP layer passes through to the caller unchanged.
"""

from __future__ import annotations

from typing import Any


class SchedulingError(Exception):
    status_code = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def as_dict(self) -> dict[str, Any]:
        return {"error": self.message, **self.details}


class ValidationError(SchedulingError):
    """Malformed input. Never retried, no state was written."""

    status_code = 400


class AuthorizationError(SchedulingError):
    status_code = 403


class NotFoundError(SchedulingError):
    status_code = 404


class ConflictError(SchedulingError):
    """Expected, user-facing outcome: overlap, capacity, duplicate or bad transition."""

    status_code = 409


class TransientError(SchedulingError):
    """Storage is unavailable. The caller may retry; the core never does."""

    status_code = 503


__all__ = [
    "SchedulingError",
    "ValidationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "TransientError",
]

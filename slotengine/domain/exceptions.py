"""
Domain-specific exception hierarchy for the scheduling engine.
"""

from __future__ import annotations

from datetime import datetime


class SchedulingError(Exception):
    """Base class for all application-level errors."""


class InvalidTimezone(SchedulingError, ValueError):
    """Raised when a timezone name is not a known IANA zone."""

    def __init__(self, name: str):
        super().__init__(f"Unknown timezone: '{name}'")
        self.name = name


class InvalidScheduleConfig(SchedulingError, ValueError):
    """Raised when a schedule update would store an inconsistent schedule."""


class TimezoneConversionError(InvalidScheduleConfig):
    """Raised when a local wall-clock time cannot be mapped to a UTC instant."""


class PractitionerNotFound(SchedulingError):
    """Raised when no schedule exists for the requested practitioner."""

    def __init__(self, practitioner_id: str):
        super().__init__(f"Practitioner '{practitioner_id}' not found")
        self.practitioner_id = practitioner_id


class ReservationError(SchedulingError):
    """Base class for errors returned by a reservation attempt."""

    code = "RESERVATION_ERROR"


class ReservationConflict(ReservationError):
    """
    Raised when the requested window overlaps an existing reservation.

    Recoverable: the caller should re-query available slots and pick another
    time.
    """

    code = "TIME_SLOT_CONFLICT"

    def __init__(self, start: datetime, end: datetime):
        super().__init__(
            f"Time slot conflict: {start.isoformat()} - {end.isoformat()} is not available"
        )
        self.start = start
        self.end = end


class ReservationInvalid(ReservationError):
    """Raised when a reservation request can never succeed as submitted."""

    code = "INVALID_TIME_SLOT"

    def __init__(self, reason: str):
        super().__init__(f"Invalid time slot: {reason}")
        self.reason = reason

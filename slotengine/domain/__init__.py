"""
Domain layer - Pure business logic without external dependencies.
"""

from .busy_intervals import aggregate_busy_intervals
from .exceptions import (
    InvalidScheduleConfig,
    InvalidTimezone,
    PractitionerNotFound,
    ReservationConflict,
    ReservationError,
    ReservationInvalid,
    SchedulingError,
    TimezoneConversionError,
)
from .models import (
    Break,
    CandidateSlot,
    ExistingBooking,
    Reservation,
    ReservationRequest,
    ReservationStatus,
    ScheduleConfig,
    ServiceInfo,
    TimeRange,
    WorkInterval,
)
from .schedule import update_schedule, validate_schedule
from .slot_calculator import SlotCalculator, compress_slots
from .timezones import local_to_utc, utc_to_local

__all__ = [
    "Break",
    "CandidateSlot",
    "ExistingBooking",
    "InvalidScheduleConfig",
    "InvalidTimezone",
    "PractitionerNotFound",
    "Reservation",
    "ReservationConflict",
    "ReservationError",
    "ReservationInvalid",
    "ReservationRequest",
    "ReservationStatus",
    "ScheduleConfig",
    "SchedulingError",
    "ServiceInfo",
    "SlotCalculator",
    "TimeRange",
    "TimezoneConversionError",
    "WorkInterval",
    "aggregate_busy_intervals",
    "compress_slots",
    "local_to_utc",
    "update_schedule",
    "utc_to_local",
    "validate_schedule",
]

"""
Domain models for schedules, bookings and slot calculations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from enum import Enum
from typing import Dict, List, Optional

import pendulum
from pendulum import DateTime


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range ``[start, end)``.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def contains(self, other: "TimeRange") -> bool:
        """Check if another range lies completely inside this one."""
        return self.start <= other.start and other.end <= self.end


@dataclass(frozen=True)
class WorkInterval:
    """A working window on one weekday, in the practitioner's wall-clock time."""
    start: time
    end: time

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Work interval start {self.start} must be before end {self.end}")


@dataclass(frozen=True)
class Break:
    """A non-bookable window, repeated on every working day."""
    start: time
    end: time
    reason: Optional[str] = None

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Break start {self.start} must be before end {self.end}")


@dataclass(frozen=True)
class ScheduleConfig:
    """
    A practitioner's recurring schedule.

    ``work_intervals`` maps weekday numbers (0=Monday, 6=Sunday) to the
    intervals worked on that day. Breaks apply to every day.
    """
    work_intervals: Dict[int, List[WorkInterval]]
    breaks: List[Break] = field(default_factory=list)
    buffer_minutes: int = 15
    slot_step_minutes: int = 15
    min_service_duration_minutes: int = 15
    timezone: str = "Europe/Moscow"
    auto_buffer: bool = False
    slot_compression: bool = False

    def intervals_for(self, weekday: int) -> List[WorkInterval]:
        """Return the work intervals configured for a weekday, sorted by start."""
        return sorted(self.work_intervals.get(weekday, []), key=lambda wi: wi.start)


@dataclass(frozen=True)
class ServiceInfo:
    """
    Duration and buffer metadata of a bookable service.

    ``buffer_minutes`` of ``None`` means no buffer is configured for the
    service and the schedule default applies; ``0`` means no buffer at all.
    """
    id: str
    duration_minutes: int
    buffer_minutes: Optional[int] = None
    name: str = ""

    def buffer_or(self, default_minutes: int) -> int:
        """Return the service buffer, falling back to the schedule default."""
        if self.buffer_minutes is None:
            return default_minutes
        return self.buffer_minutes

    def total_minutes(self, default_buffer_minutes: int) -> int:
        """Return duration plus buffer."""
        return self.duration_minutes + self.buffer_or(default_buffer_minutes)


@dataclass(frozen=True)
class ExistingBooking:
    """A committed reservation as seen by the slot calculation."""
    start: DateTime
    end: DateTime
    service_id: Optional[str] = None


@dataclass(frozen=True)
class CandidateSlot:
    """
    A start instant at which the requested services can be booked.

    The visible end excludes the trailing buffer.
    """
    start: DateTime
    duration_minutes: int
    timezone: str = "UTC"

    @property
    def end(self) -> DateTime:
        return self.start.add(minutes=self.duration_minutes)

    def format_display(self, timezone: Optional[str] = None) -> str:
        """
        Format the slot for display, by default in the practitioner's timezone.
        Format: Weekday, YYYY-MM-DD | HH:mm - HH:mm (N min)
        """
        zone = timezone or self.timezone
        start = self.start.in_timezone(zone)
        end = self.end.in_timezone(zone)

        weekday_names = {
            0: "Monday",
            1: "Tuesday",
            2: "Wednesday",
            3: "Thursday",
            4: "Friday",
            5: "Saturday",
            6: "Sunday"
        }

        weekday = weekday_names[start.weekday()]
        date_str = start.format("YYYY-MM-DD")
        time_str = f"{start.format('HH:mm')} - {end.format('HH:mm')}"

        return f"{weekday}, {date_str} | {time_str} ({self.duration_minutes} min)"


class ReservationStatus(str, Enum):
    """Lifecycle states of a reservation."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def blocks_time(self) -> bool:
        """Whether a reservation in this state keeps its window occupied."""
        return self is not ReservationStatus.CANCELLED


ACTIVE_STATUSES = [status for status in ReservationStatus if status.blocks_time]


@dataclass(frozen=True)
class ReservationRequest:
    """A validated reservation attempt handed to the store."""
    practitioner_id: str
    service_id: str
    start: DateTime
    end: DateTime
    client_id: Optional[str] = None

    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)


@dataclass(frozen=True)
class Reservation:
    """A reservation created by a successful arbiter call."""
    id: str
    practitioner_id: str
    service_id: str
    start: DateTime
    end: DateTime
    status: ReservationStatus = ReservationStatus.PENDING
    client_id: Optional[str] = None
    created_at: DateTime = field(default_factory=lambda: pendulum.now("UTC"))

    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    def as_booking(self) -> ExistingBooking:
        """Return the reservation as input for future slot calculations."""
        return ExistingBooking(start=self.start, end=self.end, service_id=self.service_id)

"""
Core business logic for calculating available appointment slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O).
"""

import logging
import math
from datetime import date
from typing import Dict, List, Optional, Sequence

import pendulum
from pendulum import DateTime

from .busy_intervals import aggregate_busy_intervals
from .intervals import overlaps, subtract
from .models import ExistingBooking, ScheduleConfig, ServiceInfo, TimeRange
from .timezones import local_to_utc, to_utc

logger = logging.getLogger(__name__)


def round_up_to_step(instant: DateTime, step_minutes: int) -> DateTime:
    """
    Round an instant up to the next multiple of ``step_minutes``.

    Seconds count: 10:00:30 with a 15 minute step becomes 10:15:00. An
    instant already on the grid is returned unchanged.
    """
    step_seconds = step_minutes * 60
    rounded = math.ceil(instant.timestamp() / step_seconds) * step_seconds
    return pendulum.from_timestamp(rounded, tz="UTC")


def compress_slots(slots: Sequence[DateTime], step_minutes: int) -> List[DateTime]:
    """
    Keep only the first and the last slot of every run of consecutive slots.

    Example with a 15 minute step:
    [09:00, 09:15, 09:30, 11:00, 13:00, 13:15] -> [09:00, 09:30, 11:00, 13:00, 13:15]
    """
    ordered = sorted(slots)
    if len(ordered) <= 2:
        return ordered

    runs: List[List[DateTime]] = [[ordered[0]]]
    for previous, current in zip(ordered, ordered[1:]):
        if (current - previous).total_seconds() == step_minutes * 60:
            runs[-1].append(current)
        else:
            runs.append([current])

    compressed: List[DateTime] = []
    for run in runs:
        compressed.append(run[0])
        if len(run) > 1:
            compressed.append(run[-1])

    return compressed


class SlotCalculator:
    """
    Calculates the start times at which a new appointment can begin.

    Algorithm:
    1. Convert the day's work intervals to UTC
    2. Aggregate bookings, buffers and breaks into merged busy intervals
    3. Subtract busy time from each work interval to get free intervals
    4. Walk each free interval in fixed steps from the (rounded) present
    5. Drop candidates that would leave an unusable sliver before the end of
       the free interval
    """

    def __init__(self, schedule: ScheduleConfig):
        self.schedule = schedule

    def find_available_slots(
        self,
        day: date,
        service_ids: Sequence[str],
        bookings: Sequence[ExistingBooking],
        services: Sequence[ServiceInfo],
        now: Optional[DateTime] = None
    ) -> List[DateTime]:
        """
        Find all start instants for booking ``service_ids`` on ``day``.

        Args:
            day: Local calendar date in the practitioner's timezone
            service_ids: Services booked in one visit
            bookings: Existing reservations of the practitioner
            services: Service metadata (requested services and services of
                existing bookings)
            now: Current instant, defaults to the wall clock

        Returns:
            Sorted list of UTC start instants, empty when nothing is free
        """
        total_minutes = self.max_total_duration(service_ids, services)

        return self._enumerate(
            day=day,
            total_minutes=total_minutes,
            bookings=bookings,
            services=services,
            now=now
        )

    def find_alternative_slots(
        self,
        day: date,
        service_ids: Sequence[str],
        bookings: Sequence[ExistingBooking],
        services: Sequence[ServiceInfo],
        now: Optional[DateTime] = None
    ) -> Dict[str, List[DateTime]]:
        """
        Find slots for every requested service considered on its own.

        Useful when a multi-service request has no availability: the client
        can be offered the services that still fit. Unknown services and
        services without any slot are left out.
        """
        alternatives: Dict[str, List[DateTime]] = {}

        for service in services:
            if service.id not in service_ids:
                continue

            slots = self._enumerate(
                day=day,
                total_minutes=service.total_minutes(self.schedule.buffer_minutes),
                bookings=bookings,
                services=services,
                now=now
            )
            if slots:
                alternatives[service.id] = slots

        return alternatives

    def max_total_duration(
        self,
        service_ids: Sequence[str],
        services: Sequence[ServiceInfo]
    ) -> int:
        """
        Return the longest duration + buffer among the requested services.

        Services booked together must each fit the slot on their own; the
        durations are not summed. Falls back to the minimum service duration
        plus the default buffer when no requested service is known.
        """
        services_by_id = {service.id: service for service in services}
        totals = [
            services_by_id[service_id].total_minutes(self.schedule.buffer_minutes)
            for service_id in service_ids
            if service_id in services_by_id
        ]

        if not totals:
            return self.schedule.min_service_duration_minutes + self.schedule.buffer_minutes

        return max(totals)

    def max_service_duration(
        self,
        service_ids: Sequence[str],
        services: Sequence[ServiceInfo]
    ) -> int:
        """Return the longest visible duration (buffer excluded) among the requested services."""
        durations = [
            service.duration_minutes
            for service in services
            if service.id in service_ids
        ]

        if not durations:
            return self.schedule.min_service_duration_minutes

        return max(durations)

    def work_windows(self, day: date) -> List[TimeRange]:
        """Return the day's work intervals as UTC ranges."""
        windows: List[TimeRange] = []

        for interval in self.schedule.intervals_for(day.weekday()):
            start = local_to_utc(day, interval.start, self.schedule.timezone)
            end = local_to_utc(day, interval.end, self.schedule.timezone)
            if start < end:
                windows.append(TimeRange(start=start, end=end))

        return windows

    def _enumerate(
        self,
        day: date,
        total_minutes: int,
        bookings: Sequence[ExistingBooking],
        services: Sequence[ServiceInfo],
        now: Optional[DateTime]
    ) -> List[DateTime]:
        """Enumerate slot starts for a fixed occupied duration."""
        windows = self.work_windows(day)

        if not windows:
            return []

        current = to_utc(now) if now is not None else pendulum.now("UTC")

        busy = aggregate_busy_intervals(
            bookings=bookings,
            breaks=self.schedule.breaks,
            config=self.schedule,
            day=day,
            services=services
        )

        slots: List[DateTime] = []

        for window in windows:
            # Interval already over
            if window.end <= current:
                continue

            for free in subtract(window, busy):
                slots.extend(
                    self._slots_in_free_interval(free, total_minutes, busy, current)
                )

        slots.sort()

        logger.debug(
            "Found %d slots of %d minutes on %s", len(slots), total_minutes, day.isoformat()
        )

        return slots

    def _slots_in_free_interval(
        self,
        free: TimeRange,
        total_minutes: int,
        busy: Sequence[TimeRange],
        now: DateTime
    ) -> List[DateTime]:
        """
        Walk one free interval in fixed steps.

        A candidate is kept when it fits the free interval, leaves a tail that
        is either empty or long enough for the shortest service, and does not
        touch any busy interval.
        """
        step = self.schedule.slot_step_minutes
        min_tail = self.schedule.min_service_duration_minutes

        # Rounding up never lands before either bound
        cursor = round_up_to_step(max(free.start, now), step)

        slots: List[DateTime] = []

        while cursor.add(minutes=total_minutes) <= free.end:
            slot_end = cursor.add(minutes=total_minutes)

            tail_minutes = (free.end - slot_end).total_seconds() / 60
            if 0 < tail_minutes < min_tail:
                cursor = cursor.add(minutes=step)
                continue

            candidate = TimeRange(start=cursor, end=slot_end)
            if not any(overlaps(candidate, interval) for interval in busy):
                slots.append(cursor)

            cursor = cursor.add(minutes=step)

        return slots

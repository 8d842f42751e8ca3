"""
Application service for finding bookable slots.

The service coordinates reading the schedule, the services and the existing
bookings via collaborator protocols and delegates the actual calculation to
the domain-level ``SlotCalculator``. This keeps the CLI thin and lets tests
plug in simple stubs.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List, Optional, Sequence

from pendulum import DateTime

from ..domain.exceptions import PractitionerNotFound
from ..domain.models import CandidateSlot, ExistingBooking, ScheduleConfig, ServiceInfo, TimeRange
from ..domain.slot_calculator import SlotCalculator, compress_slots
from ..domain.timezones import local_day_bounds
from .protocols import BookingSource, ScheduleProvider, ServiceCatalog

logger = logging.getLogger(__name__)


class AvailabilityService:
    """
    Orchestrates collaborator reads and slot calculation.

    Dependency inversion toward protocols makes it easy to plug in the SQL
    store, the in-memory store or test stubs.
    """

    def __init__(
        self,
        schedules: ScheduleProvider,
        bookings: BookingSource,
        services: ServiceCatalog,
    ) -> None:
        self._schedules = schedules
        self._bookings = bookings
        self._services = services

    def find_slots(
        self,
        *,
        practitioner_id: str,
        day: date,
        service_ids: Sequence[str],
        now: Optional[DateTime] = None,
    ) -> List[CandidateSlot]:
        """
        Return the bookable slots of a practitioner on a local calendar day.

        Consecutive slots are compressed to the first and last of each run
        when the practitioner's schedule asks for it.
        """
        schedule = self._require_schedule(practitioner_id)
        bookings = self.fetch_bookings(practitioner_id=practitioner_id, day=day, schedule=schedule)
        services = self._fetch_services(service_ids, bookings)

        calculator = SlotCalculator(schedule)
        starts = calculator.find_available_slots(
            day=day,
            service_ids=service_ids,
            bookings=bookings,
            services=services,
            now=now,
        )

        if schedule.slot_compression:
            starts = compress_slots(starts, schedule.slot_step_minutes)

        duration = calculator.max_service_duration(service_ids, services)

        logger.info(
            "Practitioner %s has %d slots on %s for %s",
            practitioner_id, len(starts), day.isoformat(), ", ".join(service_ids) or "default duration"
        )

        return [
            CandidateSlot(start=start, duration_minutes=duration, timezone=schedule.timezone)
            for start in starts
        ]

    def find_alternatives(
        self,
        *,
        practitioner_id: str,
        day: date,
        service_ids: Sequence[str],
        now: Optional[DateTime] = None,
    ) -> Dict[str, List[CandidateSlot]]:
        """Return slots for each requested service booked on its own."""
        schedule = self._require_schedule(practitioner_id)
        bookings = self.fetch_bookings(practitioner_id=practitioner_id, day=day, schedule=schedule)
        services = self._fetch_services(service_ids, bookings)

        calculator = SlotCalculator(schedule)
        alternatives = calculator.find_alternative_slots(
            day=day,
            service_ids=service_ids,
            bookings=bookings,
            services=services,
            now=now,
        )

        durations = {service.id: service.duration_minutes for service in services}
        result: Dict[str, List[CandidateSlot]] = {}

        for service_id, starts in alternatives.items():
            if schedule.slot_compression:
                starts = compress_slots(starts, schedule.slot_step_minutes)
            result[service_id] = [
                CandidateSlot(start=start, duration_minutes=durations[service_id], timezone=schedule.timezone)
                for start in starts
            ]

        return result

    def fetch_bookings(
        self,
        *,
        practitioner_id: str,
        day: date,
        schedule: ScheduleConfig,
    ) -> List[ExistingBooking]:
        """
        Fetch the bookings that can affect a local calendar day.

        The window starts a day early so that a late booking whose buffer runs
        past midnight is still seen.
        """
        bounds = local_day_bounds(day, schedule.timezone)
        window = TimeRange(start=bounds.start.subtract(days=1), end=bounds.end)

        return self._bookings.list_bookings(practitioner_id, window)

    def _require_schedule(self, practitioner_id: str) -> ScheduleConfig:
        schedule = self._schedules.get_schedule(practitioner_id)
        if schedule is None:
            raise PractitionerNotFound(practitioner_id)
        return schedule

    def _fetch_services(
        self,
        service_ids: Sequence[str],
        bookings: Sequence[ExistingBooking],
    ) -> List[ServiceInfo]:
        """Fetch metadata for the requested services and the services of existing bookings."""
        wanted: List[str] = list(service_ids)

        for booking in bookings:
            if booking.service_id is not None and booking.service_id not in wanted:
                wanted.append(booking.service_id)

        return self._services.get_services(wanted)

"""
The single write path for reservations.

Slots shown to a client are only suggestions; between showing a slot and
booking it another client may take it. The arbiter validates the request and
hands it to the store, whose atomic check-then-insert decides the winner.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import pendulum
from pendulum import DateTime

from ..domain.booking_rules import check_booking_window
from ..domain.exceptions import ReservationConflict, ReservationInvalid
from ..domain.models import Reservation, ReservationRequest, ScheduleConfig, ServiceInfo, TimeRange
from ..domain.timezones import to_utc
from .protocols import ReservationStore, ScheduleProvider, ServiceCatalog

logger = logging.getLogger(__name__)


class ReservationArbiter:
    """
    Validates reservation attempts and commits them through the store.

    Attempts are never retried here: a conflict is reported to the caller,
    who decides whether to pick another slot.
    """

    def __init__(
        self,
        store: ReservationStore,
        schedules: ScheduleProvider,
        services: ServiceCatalog,
    ) -> None:
        self._store = store
        self._schedules = schedules
        self._services = services

    def reserve(
        self,
        practitioner_id: str,
        service_id: str,
        start: datetime,
        client_id: Optional[str] = None,
        now: Optional[DateTime] = None,
    ) -> Reservation:
        """
        Attempt to reserve ``[start, start + service duration)``.

        Args:
            practitioner_id: Practitioner to book
            service_id: Booked service
            start: Timezone-aware start instant
            client_id: Optional id of the client booking
            now: Current instant, defaults to the wall clock

        Returns:
            The committed reservation

        Raises:
            ReservationInvalid: If the request can never succeed as submitted
            ReservationConflict: If an overlapping reservation exists
        """
        start_utc = self._normalize_start(start)
        schedule = self._require_schedule(practitioner_id)
        service = self._require_service(service_id)

        self._check_window(schedule, service, start_utc, now)

        request = ReservationRequest(
            practitioner_id=practitioner_id,
            service_id=service_id,
            start=start_utc,
            end=start_utc.add(minutes=service.duration_minutes),
            client_id=client_id,
        )

        reservation = self._store.insert_if_free(request)

        if reservation is None:
            logger.warning(
                "Reservation conflict for practitioner %s at %s",
                practitioner_id, request.start.to_iso8601_string()
            )
            raise ReservationConflict(request.start, request.end)

        logger.info(
            "Reservation %s committed for practitioner %s at %s",
            reservation.id, practitioner_id, reservation.start.to_iso8601_string()
        )

        return reservation

    def reschedule(
        self,
        reservation_id: str,
        practitioner_id: str,
        new_start: datetime,
        now: Optional[DateTime] = None,
    ) -> Reservation:
        """
        Move an existing reservation to ``new_start``, keeping its service.

        The reservation itself is ignored by the overlap check.

        Raises:
            ReservationInvalid: If the reservation is unknown, belongs to another
                practitioner or the new time is not bookable
            ReservationConflict: If the new window overlaps another reservation
        """
        start_utc = self._normalize_start(new_start)

        current = self._store.get(reservation_id)
        if current is None:
            raise ReservationInvalid(f"reservation '{reservation_id}' does not exist")
        if current.practitioner_id != practitioner_id:
            raise ReservationInvalid(
                f"reservation '{reservation_id}' does not belong to practitioner '{practitioner_id}'"
            )
        if not current.status.blocks_time:
            raise ReservationInvalid(f"reservation '{reservation_id}' is {current.status.value}")

        schedule = self._require_schedule(practitioner_id)
        service = self._require_service(current.service_id)

        self._check_window(schedule, service, start_utc, now)

        window = TimeRange(start=start_utc, end=start_utc.add(minutes=service.duration_minutes))
        moved = self._store.move_if_free(reservation_id, window)

        if moved is None:
            logger.warning(
                "Reschedule conflict for reservation %s at %s",
                reservation_id, window.start.to_iso8601_string()
            )
            raise ReservationConflict(window.start, window.end)

        logger.info("Reservation %s moved to %s", reservation_id, moved.start.to_iso8601_string())

        return moved

    @staticmethod
    def _normalize_start(start: datetime) -> DateTime:
        try:
            return to_utc(start)
        except ValueError as exc:
            raise ReservationInvalid(str(exc)) from exc

    def _require_schedule(self, practitioner_id: str) -> ScheduleConfig:
        schedule = self._schedules.get_schedule(practitioner_id)
        if schedule is None:
            raise ReservationInvalid(f"practitioner '{practitioner_id}' does not exist")
        return schedule

    def _require_service(self, service_id: str) -> ServiceInfo:
        found = self._services.get_services([service_id])
        if not found:
            raise ReservationInvalid(f"service '{service_id}' does not exist")
        return found[0]

    @staticmethod
    def _check_window(
        schedule: ScheduleConfig,
        service: ServiceInfo,
        start: DateTime,
        now: Optional[DateTime],
    ) -> None:
        current = to_utc(now) if now is not None else pendulum.now("UTC")

        reason = check_booking_window(
            config=schedule,
            start=start,
            duration_minutes=service.duration_minutes,
            buffer_minutes=service.buffer_or(schedule.buffer_minutes),
            now=current,
        )

        if reason is not None:
            logger.warning("Rejected reservation at %s: %s", start.to_iso8601_string(), reason)
            raise ReservationInvalid(reason)

"""
Protocols describing the collaborators the scheduling core depends on.

The YAML-backed ``AppConfig`` implements the schedule and service protocols;
the stores in ``slotengine.adapters`` implement the booking and reservation
protocols.
"""

from typing import List, Optional, Protocol, Sequence

from ..domain.models import (
    ExistingBooking,
    Reservation,
    ReservationRequest,
    ScheduleConfig,
    ServiceInfo,
    TimeRange,
)


class ScheduleProvider(Protocol):
    """Read access to practitioner schedules."""

    def get_schedule(self, practitioner_id: str) -> Optional[ScheduleConfig]:
        """Return the schedule of a practitioner, or None if unknown."""


class ServiceCatalog(Protocol):
    """Read access to service metadata."""

    def get_services(self, service_ids: Sequence[str]) -> List[ServiceInfo]:
        """Return the known services among ``service_ids``."""


class BookingSource(Protocol):
    """Read access to committed bookings."""

    def list_bookings(self, practitioner_id: str, window: TimeRange) -> List[ExistingBooking]:
        """Return active bookings of a practitioner overlapping ``window``."""


class ReservationStore(BookingSource, Protocol):
    """
    Persistence with an atomic check-then-insert.

    ``insert_if_free`` and ``move_if_free`` must run the overlap check and the
    write as one atomic unit and return None when an active reservation of
    the same practitioner overlaps the requested window.
    """

    def insert_if_free(self, request: ReservationRequest) -> Optional[Reservation]:
        """Store a new reservation, or return None on conflict."""

    def move_if_free(self, reservation_id: str, window: TimeRange) -> Optional[Reservation]:
        """Move a reservation, or return None on conflict or unknown id."""

    def get(self, reservation_id: str) -> Optional[Reservation]:
        """Return a reservation by id."""

    def list_reservations(self, practitioner_id: str, window: TimeRange) -> List[Reservation]:
        """Return active reservations of a practitioner overlapping ``window``."""

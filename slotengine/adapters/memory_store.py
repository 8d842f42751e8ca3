"""
In-memory reservation store for tests and local experiments.
"""

import threading
import uuid
from dataclasses import replace
from typing import Dict, List, Optional

import pendulum

from ..domain.intervals import overlaps
from ..domain.models import ExistingBooking, Reservation, ReservationRequest, TimeRange


class InMemoryReservationStore:
    """
    Reservation store backed by a dictionary.

    A single lock spans the overlap check and the insert, which gives the
    same guarantee a transactional database provides within one process:
    of two overlapping attempts exactly one is stored.
    """

    def __init__(self, reservations: Optional[List[Reservation]] = None):
        self._lock = threading.Lock()
        self._reservations: Dict[str, Reservation] = {
            reservation.id: reservation for reservation in reservations or []
        }

    def insert_if_free(self, request: ReservationRequest) -> Optional[Reservation]:
        """Store the reservation unless it overlaps an active one; None signals a conflict."""
        with self._lock:
            if self._find_overlapping(request.practitioner_id, request.time_range()):
                return None

            reservation = Reservation(
                id=str(uuid.uuid4()),
                practitioner_id=request.practitioner_id,
                service_id=request.service_id,
                start=request.start,
                end=request.end,
                client_id=request.client_id,
                created_at=pendulum.now("UTC"),
            )
            self._reservations[reservation.id] = reservation
            return reservation

    def move_if_free(self, reservation_id: str, window: TimeRange) -> Optional[Reservation]:
        """Move a reservation unless the new window overlaps another active one."""
        with self._lock:
            current = self._reservations.get(reservation_id)
            if current is None:
                return None

            if self._find_overlapping(current.practitioner_id, window, exclude_id=reservation_id):
                return None

            moved = replace(current, start=window.start, end=window.end)
            self._reservations[reservation_id] = moved
            return moved

    def get(self, reservation_id: str) -> Optional[Reservation]:
        with self._lock:
            return self._reservations.get(reservation_id)

    def list_reservations(self, practitioner_id: str, window: TimeRange) -> List[Reservation]:
        """Return active reservations of a practitioner overlapping ``window``."""
        with self._lock:
            found = self._find_overlapping(practitioner_id, window)
        return sorted(found, key=lambda r: r.start)

    def list_bookings(self, practitioner_id: str, window: TimeRange) -> List[ExistingBooking]:
        return [
            reservation.as_booking()
            for reservation in self.list_reservations(practitioner_id, window)
        ]

    def _find_overlapping(
        self,
        practitioner_id: str,
        window: TimeRange,
        exclude_id: Optional[str] = None
    ) -> List[Reservation]:
        return [
            reservation
            for reservation in self._reservations.values()
            if reservation.practitioner_id == practitioner_id
            and reservation.id != exclude_id
            and reservation.status.blocks_time
            and overlaps(reservation.time_range(), window)
        ]

"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability import AvailabilityService
from .protocols import BookingSource, ReservationStore, ScheduleProvider, ServiceCatalog
from .reservation_arbiter import ReservationArbiter

__all__ = [
    "AvailabilityService",
    "BookingSource",
    "ReservationArbiter",
    "ReservationStore",
    "ScheduleProvider",
    "ServiceCatalog",
]

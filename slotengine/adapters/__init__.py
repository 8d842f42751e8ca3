"""
Adapters layer - Persistence of reservations.
"""

from .memory_store import InMemoryReservationStore
from .sql_store import ReservationRecord, SqlReservationStore

__all__ = ["InMemoryReservationStore", "ReservationRecord", "SqlReservationStore"]

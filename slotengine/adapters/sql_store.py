"""
SQLAlchemy-backed reservation store.

The overlap check and the insert run in one transaction that is serialised
per practitioner by the database itself, so two overlapping attempts coming
from different workers can never both commit:

* SQLite: every transaction starts with ``BEGIN IMMEDIATE`` and takes the
  database write lock before the overlap query runs.
* PostgreSQL: a transaction-scoped advisory lock keyed on the practitioner id
  is taken before the overlap query runs.

Datetimes are stored as naive UTC.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import List, Optional

import pendulum
from pendulum import DateTime
from sqlalchemy import DateTime as SqlDateTime
from sqlalchemy import Engine, Index, String, create_engine, event, select, text
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from ..domain.models import (
    ACTIVE_STATUSES,
    ExistingBooking,
    Reservation,
    ReservationRequest,
    ReservationStatus,
    TimeRange,
)

logger = logging.getLogger(__name__)

SUPPORTED_DIALECTS = ("sqlite", "postgresql")


class Base(DeclarativeBase):
    pass


class ReservationRecord(Base):
    """Row of the ``reservations`` table."""

    __tablename__ = "reservations"
    __table_args__ = (
        Index("ix_reservations_practitioner_window", "practitioner_id", "start_at", "end_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    practitioner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    service_id: Mapped[str] = mapped_column(String(64), nullable=False)
    client_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    start_at: Mapped[datetime] = mapped_column(SqlDateTime(), nullable=False)
    end_at: Mapped[datetime] = mapped_column(SqlDateTime(), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(SqlDateTime(), nullable=False)

    def to_domain(self) -> Reservation:
        return Reservation(
            id=self.id,
            practitioner_id=self.practitioner_id,
            service_id=self.service_id,
            client_id=self.client_id,
            start=_from_db(self.start_at),
            end=_from_db(self.end_at),
            status=ReservationStatus(self.status),
            created_at=_from_db(self.created_at),
        )


def _to_db(value: datetime) -> datetime:
    """Convert an aware datetime to the naive UTC representation stored in the table."""
    utc = pendulum.instance(value).in_timezone("UTC")
    return datetime(utc.year, utc.month, utc.day, utc.hour, utc.minute, utc.second, utc.microsecond)


def _from_db(value: datetime) -> DateTime:
    """Read a stored datetime back as a UTC instant."""
    if value.tzinfo is None:
        return pendulum.instance(value, tz="UTC")
    return pendulum.instance(value).in_timezone("UTC")


def _sqlite_on_connect(dbapi_connection, connection_record) -> None:
    # Let SQLAlchemy emit BEGIN itself instead of the driver's deferred one
    dbapi_connection.isolation_level = None


def _sqlite_on_begin(connection) -> None:
    connection.exec_driver_sql("BEGIN IMMEDIATE")


class SqlReservationStore:
    """
    Reservation store for SQLite and PostgreSQL.

    Writers for one practitioner are serialised with `BEGIN IMMEDIATE` on
    SQLite and a transaction-scoped advisory lock on PostgreSQL. Other
    dialects have no such lock and are rejected.

    Example:
        store = SqlReservationStore.from_url("sqlite:///slotengine.db")
    """

    def __init__(self, engine: Engine, create_schema: bool = True):
        if engine.dialect.name not in SUPPORTED_DIALECTS:
            raise ValueError(
                f"Unsupported database dialect '{engine.dialect.name}', expected one of {SUPPORTED_DIALECTS}"
            )

        self.engine = engine

        if engine.dialect.name == "sqlite":
            event.listen(engine, "connect", _sqlite_on_connect)
            event.listen(engine, "begin", _sqlite_on_begin)

        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

        if create_schema:
            Base.metadata.create_all(engine)

    @classmethod
    def from_url(cls, database_url: str, **engine_options) -> "SqlReservationStore":
        """Create a store from a SQLAlchemy database URL."""
        if database_url.startswith("sqlite"):
            engine_options.setdefault("connect_args", {"timeout": 30, "check_same_thread": False})
        return cls(create_engine(database_url, **engine_options))

    def insert_if_free(self, request: ReservationRequest) -> Optional[Reservation]:
        """
        Insert the reservation unless an active one overlaps it.

        Returns:
            The stored reservation, or None when the window is taken
        """
        with self._session_factory() as session, session.begin():
            self._lock_practitioner(session, request.practitioner_id)

            if self._has_overlap(session, request.practitioner_id, request.time_range()):
                logger.debug(
                    "Overlap found for practitioner %s at %s",
                    request.practitioner_id, request.start.to_iso8601_string()
                )
                return None

            record = ReservationRecord(
                id=str(uuid.uuid4()),
                practitioner_id=request.practitioner_id,
                service_id=request.service_id,
                client_id=request.client_id,
                start_at=_to_db(request.start),
                end_at=_to_db(request.end),
                status=ReservationStatus.PENDING.value,
                created_at=_to_db(pendulum.now("UTC")),
            )
            session.add(record)

        return record.to_domain()

    def move_if_free(self, reservation_id: str, window: TimeRange) -> Optional[Reservation]:
        """Move a reservation to ``window`` unless another active one overlaps it."""
        with self._session_factory() as session, session.begin():
            record = session.get(ReservationRecord, reservation_id)
            if record is None:
                return None

            self._lock_practitioner(session, record.practitioner_id)

            if self._has_overlap(session, record.practitioner_id, window, exclude_id=reservation_id):
                return None

            record.start_at = _to_db(window.start)
            record.end_at = _to_db(window.end)

        return record.to_domain()

    def get(self, reservation_id: str) -> Optional[Reservation]:
        with self._session_factory() as session:
            record = session.get(ReservationRecord, reservation_id)
            return record.to_domain() if record is not None else None

    def list_reservations(self, practitioner_id: str, window: TimeRange) -> List[Reservation]:
        """Return active reservations of a practitioner overlapping ``window``."""
        with self._session_factory() as session:
            records = session.scalars(
                self._overlap_query(practitioner_id, window).order_by(ReservationRecord.start_at)
            ).all()
            return [record.to_domain() for record in records]

    def list_bookings(self, practitioner_id: str, window: TimeRange) -> List[ExistingBooking]:
        return [
            reservation.as_booking()
            for reservation in self.list_reservations(practitioner_id, window)
        ]

    def _lock_practitioner(self, session: Session, practitioner_id: str) -> None:
        """Serialise writers for one practitioner until the transaction ends."""
        if self.engine.dialect.name == "postgresql":
            session.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                {"key": practitioner_id},
            )

    def _has_overlap(
        self,
        session: Session,
        practitioner_id: str,
        window: TimeRange,
        exclude_id: Optional[str] = None
    ) -> bool:
        query = self._overlap_query(practitioner_id, window)
        if exclude_id is not None:
            query = query.where(ReservationRecord.id != exclude_id)
        return session.scalars(query.limit(1)).first() is not None

    @staticmethod
    def _overlap_query(practitioner_id: str, window: TimeRange):
        return select(ReservationRecord).where(
            ReservationRecord.practitioner_id == practitioner_id,
            ReservationRecord.status.in_([status.value for status in ACTIVE_STATUSES]),
            ReservationRecord.start_at < _to_db(window.end),
            ReservationRecord.end_at > _to_db(window.start),
        )

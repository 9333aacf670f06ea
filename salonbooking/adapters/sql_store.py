"""
SQLAlchemy-backed appointment store with conflict-safe booking.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from datetime import date as Date
from datetime import time
from typing import Iterable, List, Optional

import pendulum
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date as SqlDate,
    DateTime,
    String,
    Text,
    Time,
    UniqueConstraint,
    create_engine,
    event,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..domain.exceptions import AppointmentNotFoundError, SlotConflictError
from ..domain.models import Appointment, AppointmentStatus, BookingRequest

logger = logging.getLogger(__name__)

Base = declarative_base()

SALON_WIDE = ""


class AppointmentRecord(Base):
    """Appointments table. ``slot_claim`` is True while the row is active."""

    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(64), nullable=False, index=True)
    salon_id = Column(String(64), nullable=False, index=True)
    service_id = Column(String(64), nullable=False)
    stylist_key = Column(String(64), nullable=False, default=SALON_WIDE)
    date = Column(SqlDate, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String(20), nullable=False, default=AppointmentStatus.PENDING.value)
    slot_claim = Column(Boolean, nullable=True, default=True)
    notes = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "salon_id", "stylist_key", "date", "start_time", "slot_claim",
            name="uq_active_slot",
        ),
        CheckConstraint("end_time > start_time", name="check_end_after_start"),
    )

    def to_domain(self) -> Appointment:
        created_at = None
        if self.created_at is not None:
            created_at = pendulum.instance(self.created_at, tz="UTC")
        return Appointment(
            id=self.id,
            user_id=self.user_id,
            salon_id=self.salon_id,
            service_id=self.service_id,
            stylist_id=self.stylist_key or None,
            date=self.date,
            start_time=self.start_time,
            end_time=self.end_time,
            status=AppointmentStatus(self.status),
            notes=self.notes or "",
            created_at=created_at,
        )


def _claim_for(status: AppointmentStatus) -> Optional[bool]:
    # NULLs never collide in a unique constraint, so inactive rows release the slot
    return True if status.is_active else None


def create_store_engine(database_url: str) -> Engine:
    """
    Create an engine whose write transactions serialize against each other.

    SQLite transactions are started with BEGIN IMMEDIATE so that the
    overlap check and the insert happen under the database write lock.
    Other backends run at SERIALIZABLE isolation.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True, isolation_level="SERIALIZABLE")

    kwargs = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


class SqlAppointmentStore:
    """
    Appointment store on top of a relational database.

    ``create_appointment`` is an atomic "insert if no overlap": the overlap
    check and the insert run in one write transaction, and a unique
    constraint on the active slot start rejects anything that still slips
    through. With a stylist, that stylist's bookings and salon-wide bookings
    conflict; without one, every active booking of the salon does.
    """

    def __init__(self, database_url: str = "sqlite://", engine: Optional[Engine] = None):
        self.engine = engine or create_store_engine(database_url)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._lock = threading.Lock()
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    # Async protocol surface

    async def fetch_appointments(
        self,
        salon_id: str,
        date: Date,
        stylist_id: Optional[str] = None,
    ) -> List[Appointment]:
        return await asyncio.to_thread(self.fetch_appointments_sync, salon_id, date, stylist_id)

    async def list_appointments(
        self,
        salon_id: Optional[str] = None,
        dates: Optional[Iterable[Date]] = None,
        statuses: Optional[Iterable[AppointmentStatus]] = None,
    ) -> List[Appointment]:
        return await asyncio.to_thread(self.list_appointments_sync, salon_id, dates, statuses)

    async def get_appointment(self, appointment_id: str) -> Appointment:
        return await asyncio.to_thread(self.get_appointment_sync, appointment_id)

    async def create_appointment(self, request: BookingRequest) -> Appointment:
        return await asyncio.to_thread(self.create_appointment_sync, request)

    async def update_status(self, appointment_id: str, status: AppointmentStatus) -> Appointment:
        return await asyncio.to_thread(self.update_status_sync, appointment_id, status)

    # Synchronous implementation

    def fetch_appointments_sync(
        self,
        salon_id: str,
        date: Date,
        stylist_id: Optional[str] = None,
    ) -> List[Appointment]:
        stmt = (
            select(AppointmentRecord)
            .where(AppointmentRecord.salon_id == salon_id)
            .where(AppointmentRecord.date == date)
            .order_by(AppointmentRecord.start_time)
        )
        if stylist_id:
            stmt = stmt.where(AppointmentRecord.stylist_key.in_([stylist_id, SALON_WIDE]))

        with self._lock, self._session_factory() as session, session.begin():
            return [record.to_domain() for record in session.scalars(stmt)]

    def list_appointments_sync(
        self,
        salon_id: Optional[str] = None,
        dates: Optional[Iterable[Date]] = None,
        statuses: Optional[Iterable[AppointmentStatus]] = None,
    ) -> List[Appointment]:
        stmt = select(AppointmentRecord).order_by(
            AppointmentRecord.date, AppointmentRecord.start_time
        )
        if salon_id:
            stmt = stmt.where(AppointmentRecord.salon_id == salon_id)
        if dates is not None:
            stmt = stmt.where(AppointmentRecord.date.in_(list(dates)))
        if statuses is not None:
            stmt = stmt.where(AppointmentRecord.status.in_([s.value for s in statuses]))

        with self._lock, self._session_factory() as session, session.begin():
            return [record.to_domain() for record in session.scalars(stmt)]

    def get_appointment_sync(self, appointment_id: str) -> Appointment:
        with self._lock, self._session_factory() as session, session.begin():
            return self._get_record(session, appointment_id).to_domain()

    def create_appointment_sync(self, request: BookingRequest) -> Appointment:
        record = AppointmentRecord(
            id=str(uuid.uuid4()),
            user_id=request.user_id,
            salon_id=request.salon_id,
            service_id=request.service_id,
            stylist_key=request.stylist_id or SALON_WIDE,
            date=request.date,
            start_time=request.start_time,
            end_time=request.end_time,
            status=AppointmentStatus.PENDING.value,
            slot_claim=True,
            notes=request.notes,
            created_at=pendulum.now("UTC"),
        )

        try:
            with self._lock, self._session_factory() as session, session.begin():
                conflict = self._find_overlap(
                    session,
                    salon_id=request.salon_id,
                    stylist_key=record.stylist_key,
                    day=request.date,
                    start_time=request.start_time,
                    end_time=request.end_time,
                )
                if conflict is not None:
                    raise SlotConflictError(
                        f"{request.date} {request.start_time.strftime('%H:%M')}-"
                        f"{request.end_time.strftime('%H:%M')} overlaps appointment {conflict.id}",
                        request=request,
                    )
                session.add(record)
        except IntegrityError as exc:
            raise SlotConflictError(
                f"Slot {request.date} {request.start_time.strftime('%H:%M')} is already booked",
                request=request,
            ) from exc

        logger.debug("Inserted appointment %s", record.id)
        return record.to_domain()

    def update_status_sync(self, appointment_id: str, status: AppointmentStatus) -> Appointment:
        try:
            with self._lock, self._session_factory() as session, session.begin():
                record = self._get_record(session, appointment_id)
                reactivating = status.is_active and not AppointmentStatus(record.status).is_active

                if reactivating:
                    conflict = self._find_overlap(
                        session,
                        salon_id=record.salon_id,
                        stylist_key=record.stylist_key,
                        day=record.date,
                        start_time=record.start_time,
                        end_time=record.end_time,
                        exclude_id=record.id,
                    )
                    if conflict is not None:
                        raise SlotConflictError(
                            f"Appointment {appointment_id} can no longer be restored: "
                            f"its slot is taken by {conflict.id}"
                        )

                record.status = status.value
                record.slot_claim = _claim_for(status)
        except IntegrityError as exc:
            raise SlotConflictError(
                f"Appointment {appointment_id} can no longer be restored: its slot is taken"
            ) from exc

        return record.to_domain()

    @staticmethod
    def _get_record(session: Session, appointment_id: str) -> AppointmentRecord:
        record = session.get(AppointmentRecord, appointment_id)
        if record is None:
            raise AppointmentNotFoundError(f"Appointment not found: {appointment_id}")
        return record

    @staticmethod
    def _find_overlap(
        session: Session,
        *,
        salon_id: str,
        stylist_key: str,
        day: Date,
        start_time: time,
        end_time: time,
        exclude_id: Optional[str] = None,
    ) -> Optional[AppointmentRecord]:
        stmt = (
            select(AppointmentRecord)
            .where(AppointmentRecord.salon_id == salon_id)
            .where(AppointmentRecord.date == day)
            .where(AppointmentRecord.slot_claim.is_(True))
            .where(AppointmentRecord.start_time < end_time)
            .where(AppointmentRecord.end_time > start_time)
        )
        if stylist_key != SALON_WIDE:
            # salon-wide bookings block every stylist
            stmt = stmt.where(AppointmentRecord.stylist_key.in_([stylist_key, SALON_WIDE]))
        if exclude_id is not None:
            stmt = stmt.where(AppointmentRecord.id != exclude_id)
        return session.scalars(stmt.limit(1)).first()

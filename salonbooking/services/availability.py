"""
Application services for computing bookable slots.

The service coordinates fetching a day's appointments via an appointment
store adapter and delegates the actual availability calculation to the
domain-level ``SlotAvailabilityCalculator``. Collaborators are plain
protocols so the SQL store, the hosted backend client or a test stub can be
plugged in.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date as Date
from typing import Callable, Dict, Iterable, List, Optional, Protocol

from pendulum import DateTime

from ..domain.exceptions import StaleSelectionError
from ..domain.models import (
    Appointment,
    AppointmentStatus,
    BookingRequest,
    CandidateSlot,
    ExistingAppointment,
    Service,
)
from ..domain.slot_calculator import SlotAvailabilityCalculator

logger = logging.getLogger(__name__)


class AppointmentStoreProtocol(Protocol):
    """Protocol describing the appointment persistence needed by the services."""

    async def fetch_appointments(
        self,
        salon_id: str,
        date: Date,
        stylist_id: Optional[str] = None,
    ) -> List[Appointment]:
        """Return the salon's appointments on a day, optionally for one stylist."""

    async def list_appointments(
        self,
        salon_id: Optional[str] = None,
        dates: Optional[Iterable[Date]] = None,
        statuses: Optional[Iterable[AppointmentStatus]] = None,
    ) -> List[Appointment]:
        """Return appointments matching the filters, ordered by date and start."""

    async def get_appointment(self, appointment_id: str) -> Appointment:
        """Return one appointment or raise AppointmentNotFoundError."""

    async def create_appointment(self, request: BookingRequest) -> Appointment:
        """Persist a pending appointment or raise SlotConflictError."""

    async def update_status(
        self, appointment_id: str, status: AppointmentStatus
    ) -> Appointment:
        """Change an appointment's status and return the updated record."""


def active_existing(appointments: Iterable[Appointment]) -> List[ExistingAppointment]:
    """Keep the appointments that still occupy their interval."""
    return [appointment.to_existing() for appointment in appointments if appointment.is_active]


class AvailabilityService:
    """
    Orchestrates appointment retrieval and slot calculation.

    ``select`` additionally guards against stale results: starting a new
    selection cancels the fetch of the previous one, and the superseded
    caller gets ``StaleSelectionError`` instead of outdated slots.
    """

    def __init__(
        self,
        store: AppointmentStoreProtocol,
        calculator_for: Callable[[str], SlotAvailabilityCalculator],
    ) -> None:
        self._store = store
        self._calculator_for = calculator_for
        self._inflight: Optional[asyncio.Task] = None

    @classmethod
    def with_calculators(
        cls,
        store: AppointmentStoreProtocol,
        calculators: Dict[str, SlotAvailabilityCalculator],
        default: Optional[SlotAvailabilityCalculator] = None,
    ) -> "AvailabilityService":
        """Build a service from a salon id -> calculator mapping."""
        fallback = default or SlotAvailabilityCalculator()
        return cls(store, lambda salon_id: calculators.get(salon_id, fallback))

    def calculator_for(self, salon_id: str) -> SlotAvailabilityCalculator:
        return self._calculator_for(salon_id)

    async def fetch_existing(
        self,
        *,
        salon_id: str,
        selected_date: Date,
        stylist_id: Optional[str] = None,
    ) -> List[ExistingAppointment]:
        """Fetch the active appointments that constrain a day's slots."""
        appointments = await self._store.fetch_appointments(
            salon_id=salon_id,
            date=selected_date,
            stylist_id=stylist_id,
        )
        return active_existing(appointments)

    async def get_slots(
        self,
        *,
        salon_id: str,
        service: Service,
        selected_date: Date,
        now: DateTime,
        stylist_id: Optional[str] = None,
    ) -> List[CandidateSlot]:
        """
        Retrieve the day's appointments and compute candidate slots.
        """
        existing = await self.fetch_existing(
            salon_id=salon_id,
            selected_date=selected_date,
            stylist_id=stylist_id,
        )

        return self._calculator_for(salon_id).compute_slots(
            service_duration_minutes=service.duration_minutes,
            selected_date=selected_date,
            existing_appointments=existing,
            now=now,
        )

    async def select(
        self,
        *,
        salon_id: str,
        service: Service,
        selected_date: Date,
        now: DateTime,
        stylist_id: Optional[str] = None,
    ) -> List[CandidateSlot]:
        """
        Compute slots for the latest selection, cancelling any earlier one.

        Raises:
            StaleSelectionError: If a newer selection started before this
                one resolved
        """
        previous = self._inflight
        if previous is not None and not previous.done():
            previous.cancel()

        task = asyncio.ensure_future(
            self.get_slots(
                salon_id=salon_id,
                service=service,
                selected_date=selected_date,
                now=now,
                stylist_id=stylist_id,
            )
        )
        self._inflight = task

        try:
            slots = await task
        except asyncio.CancelledError:
            if self._inflight is not task:
                logger.debug("Availability request for %s superseded", selected_date)
                raise StaleSelectionError(
                    f"Selection for {selected_date} was replaced by a newer one"
                ) from None
            raise

        if self._inflight is not task:
            raise StaleSelectionError(
                f"Selection for {selected_date} was replaced by a newer one"
            )

        return slots

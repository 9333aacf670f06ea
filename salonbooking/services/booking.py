"""
Booking lifecycle: turning a chosen slot into an appointment and moving
appointments through their statuses.

Availability computed from a snapshot is only a hint. The store performs
the authoritative "insert if no overlap" and rejects a booking with
``SlotConflictError`` when another one got there first; the caller is then
expected to re-fetch availability and let the user choose again.
"""

from __future__ import annotations

import logging
from typing import Callable, Collection, Optional

from pendulum import DateTime

from ..domain.exceptions import (
    BookingValidationError,
    InvalidTransitionError,
    SlotConflictError,
)
from ..domain.models import (
    Appointment,
    AppointmentStatus,
    BookingRequest,
    CandidateSlot,
    Service,
    combine,
)
from .availability import AppointmentStoreProtocol, AvailabilityService
from .history import ActionHistory, ActionKind, BookingAction

logger = logging.getLogger(__name__)


class BookingService:
    """Validates and persists bookings, and applies status transitions."""

    def __init__(
        self,
        store: AppointmentStoreProtocol,
        availability: AvailabilityService,
        history: Optional[ActionHistory] = None,
        stylists_for: Optional[Callable[[str], Collection[str]]] = None,
    ) -> None:
        self._store = store
        self._availability = availability
        self._stylists_for = stylists_for
        self.history = history if history is not None else ActionHistory()

    @staticmethod
    def request_for_slot(
        *,
        user_id: str,
        salon_id: str,
        service: Service,
        slot: CandidateSlot,
        stylist_id: Optional[str] = None,
        notes: str = "",
    ) -> BookingRequest:
        """Build the booking request for a computed slot."""
        return BookingRequest(
            user_id=user_id,
            salon_id=salon_id,
            service_id=service.id,
            stylist_id=stylist_id,
            date=slot.start.date(),
            start_time=slot.start.time(),
            end_time=slot.end.time(),
            notes=notes,
        )

    def validate(self, request: BookingRequest, service: Service, now: DateTime) -> None:
        """
        Check a request against the salon's hours, slot grid and the clock.

        Raises:
            BookingValidationError: If the request cannot be booked as is
        """
        if request.service_id != service.id:
            raise BookingValidationError(
                f"Request is for service '{request.service_id}', not '{service.id}'"
            )

        if request.stylist_id and self._stylists_for is not None:
            if request.stylist_id not in self._stylists_for(request.salon_id):
                raise BookingValidationError(
                    f"Unknown stylist '{request.stylist_id}' for salon '{request.salon_id}'"
                )

        calculator = self._availability.calculator_for(request.salon_id)
        tz = calculator.timezone
        requested = request.time_range(tz)

        if requested.duration_minutes() != service.duration_minutes:
            raise BookingValidationError(
                f"'{service.name}' takes {service.duration_minutes} minutes, "
                f"requested {requested.duration_minutes()}"
            )

        hours = calculator.hours_for(request.date)
        if hours is None or not hours.is_valid:
            raise BookingValidationError(f"Salon is closed on {request.date}")

        opens_at = combine(request.date, hours.open, tz)
        closes_at = combine(request.date, hours.close, tz)
        if requested.start < opens_at or requested.end > closes_at:
            raise BookingValidationError(
                f"Appointment must be within business hours "
                f"{hours.open.strftime('%H:%M')}-{hours.close.strftime('%H:%M')}"
            )

        offset = int((requested.start - opens_at).total_seconds() // 60)
        if offset % calculator.slot_granularity_minutes != 0:
            raise BookingValidationError(
                f"Start time must be on the {calculator.slot_granularity_minutes}-minute grid"
            )

        if requested.start < now:
            raise BookingValidationError("Cannot book an appointment in the past")

    async def book(self, request: BookingRequest, service: Service, now: DateTime) -> Appointment:
        """
        Validate and persist a booking.

        Raises:
            BookingValidationError: If the request is not bookable
            SlotConflictError: If the interval was taken concurrently
        """
        self.validate(request, service, now)

        try:
            appointment = await self._store.create_appointment(request)
        except SlotConflictError:
            logger.warning(
                "Booking conflict for salon %s on %s at %s",
                request.salon_id, request.date, request.start_time,
            )
            raise

        logger.info(
            "Booked appointment %s for salon %s on %s %s-%s",
            appointment.id, appointment.salon_id, appointment.date,
            appointment.start_time, appointment.end_time,
        )
        self.history.record(
            BookingAction(
                kind=ActionKind.CREATED,
                appointment_id=appointment.id,
                description=f"Booked {service.name} on {appointment.date} at "
                            f"{appointment.start_time.strftime('%H:%M')}",
                new_status=appointment.status,
            )
        )
        return appointment

    async def confirm(self, appointment_id: str) -> Appointment:
        return await self._transition(appointment_id, AppointmentStatus.CONFIRMED)

    async def cancel(self, appointment_id: str) -> Appointment:
        return await self._transition(appointment_id, AppointmentStatus.CANCELLED)

    async def complete(self, appointment_id: str) -> Appointment:
        return await self._transition(appointment_id, AppointmentStatus.COMPLETED)

    async def _transition(self, appointment_id: str, new_status: AppointmentStatus) -> Appointment:
        current = await self._store.get_appointment(appointment_id)

        if not current.status.can_transition_to(new_status):
            raise InvalidTransitionError(
                f"Cannot move appointment {appointment_id} from "
                f"{current.status.value} to {new_status.value}"
            )

        updated = await self._store.update_status(appointment_id, new_status)
        logger.info(
            "Appointment %s: %s -> %s", appointment_id, current.status.value, new_status.value
        )
        self.history.record(
            BookingAction(
                kind=ActionKind.STATUS_CHANGED,
                appointment_id=appointment_id,
                description=f"Marked appointment {appointment_id} as {new_status.value}",
                previous_status=current.status,
                new_status=new_status,
            )
        )
        return updated

    async def undo(self, action_id: str) -> Appointment:
        """
        Revert a recorded action and drop it from the history.

        A creation is reverted by cancelling the appointment; a status change
        by restoring the previous status. Restoring an active status re-checks
        the slot, so undoing a cancellation can fail with SlotConflictError.

        Raises:
            KeyError: If the action is not in the history
        """
        action = self.history.get(action_id)
        if action is None:
            raise KeyError(f"Unknown action: {action_id}")

        if action.kind is ActionKind.CREATED:
            current = await self._store.get_appointment(action.appointment_id)
            if current.is_active:
                reverted = await self._store.update_status(
                    action.appointment_id, AppointmentStatus.CANCELLED
                )
            else:
                reverted = current
        else:
            reverted = await self._store.update_status(
                action.appointment_id, action.previous_status
            )

        self.history.remove(action_id)
        logger.info("Undid action %s on appointment %s", action_id, action.appointment_id)
        return reverted

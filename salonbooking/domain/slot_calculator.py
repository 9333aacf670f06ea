"""
Core business logic for calculating bookable appointment slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O).
"""

import logging
from datetime import date as Date
from typing import List, Optional, Sequence, Union

from pendulum import DateTime

from .models import (
    BusinessHours,
    BusinessHoursConfig,
    CandidateSlot,
    ExistingAppointment,
    TimeRange,
    combine,
)

logger = logging.getLogger(__name__)

DEFAULT_GRANULARITY_MINUTES = 30

HoursInput = Union[BusinessHours, BusinessHoursConfig, None]


def resolve_hours(business_hours: HoursInput, selected_date: Date) -> Optional[BusinessHours]:
    """Resolve the open/close bounds that apply to the selected day."""
    if business_hours is None:
        return None
    if isinstance(business_hours, BusinessHoursConfig):
        return business_hours.hours_for(selected_date)
    return business_hours


def overlapping(
    candidate: TimeRange,
    existing_appointments: Sequence[ExistingAppointment],
    timezone: str,
) -> List[ExistingAppointment]:
    """Return the existing appointments whose interval overlaps the candidate."""
    return [
        appointment for appointment in existing_appointments
        if candidate.overlaps(appointment.time_range(timezone))
    ]


def compute_slots(
    service_duration_minutes: int,
    selected_date: Date,
    business_hours: HoursInput,
    existing_appointments: Sequence[ExistingAppointment],
    now: DateTime,
    slot_granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
    timezone: str = "UTC",
) -> List[CandidateSlot]:
    """
    Compute the ordered candidate slots for one day.

    Algorithm:
    1. Step from opening time in fixed granularity increments while the
       slot still ends by closing time
    2. Each slot lasts the service duration, so consecutive slots may
       overlap each other
    3. Skip slots starting before ``now``
    4. Mark a slot unavailable when it overlaps any existing appointment
       (half-open intervals, touching is not a conflict)

    Malformed input (non-positive duration or granularity, inverted hours,
    closed day) yields an empty list instead of raising.
    """
    if service_duration_minutes <= 0 or slot_granularity_minutes <= 0:
        return []

    hours = resolve_hours(business_hours, selected_date)
    if hours is None or not hours.is_valid:
        return []

    day_open = combine(selected_date, hours.open, timezone)
    day_close = combine(selected_date, hours.close, timezone)
    busy_ranges = [appointment.time_range(timezone) for appointment in existing_appointments]

    slots: List[CandidateSlot] = []
    candidate_start = day_open

    while candidate_start.add(minutes=service_duration_minutes) <= day_close:
        candidate_end = candidate_start.add(minutes=service_duration_minutes)

        if candidate_start >= now:
            candidate = TimeRange(start=candidate_start, end=candidate_end)
            available = not any(candidate.overlaps(busy) for busy in busy_ranges)
            slots.append(
                CandidateSlot(start=candidate_start, end=candidate_end, available=available)
            )

        candidate_start = candidate_start.add(minutes=slot_granularity_minutes)

    logger.debug(
        "Computed %d slots for %s (%d min service, %d existing appointments)",
        len(slots), selected_date, service_duration_minutes, len(busy_ranges),
    )
    return slots


class SlotAvailabilityCalculator:
    """
    Calculates bookable slots for a salon from its business hours.

    Stateless: every call re-derives the result from its inputs and never
    mutates them, so identical inputs always give identical output.
    """

    def __init__(
        self,
        business_hours: HoursInput = None,
        slot_granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
        timezone: str = "UTC",
    ):
        self.business_hours = business_hours if business_hours is not None else BusinessHoursConfig.default()
        self.slot_granularity_minutes = slot_granularity_minutes
        self.timezone = timezone

    def compute_slots(
        self,
        service_duration_minutes: int,
        selected_date: Date,
        existing_appointments: Sequence[ExistingAppointment],
        now: DateTime,
    ) -> List[CandidateSlot]:
        """
        Compute candidate slots for the selected day.

        Args:
            service_duration_minutes: Length of each slot
            selected_date: Calendar day to compute slots for
            existing_appointments: Active appointments already booked that day
            now: Current moment; earlier slots are excluded

        Returns:
            Slots ordered by start time, unavailable ones included
        """
        return compute_slots(
            service_duration_minutes=service_duration_minutes,
            selected_date=selected_date,
            business_hours=self.business_hours,
            existing_appointments=existing_appointments,
            now=now,
            slot_granularity_minutes=self.slot_granularity_minutes,
            timezone=self.timezone,
        )

    def first_available(
        self,
        service_duration_minutes: int,
        selected_date: Date,
        existing_appointments: Sequence[ExistingAppointment],
        now: DateTime,
    ) -> Optional[CandidateSlot]:
        """Return the earliest available slot, or None."""
        for slot in self.compute_slots(
            service_duration_minutes, selected_date, existing_appointments, now
        ):
            if slot.available:
                return slot
        return None

    def hours_for(self, selected_date: Date) -> Optional[BusinessHours]:
        return resolve_hours(self.business_hours, selected_date)

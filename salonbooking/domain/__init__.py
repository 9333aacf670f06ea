"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import (
    Appointment,
    AppointmentStatus,
    BookingRequest,
    BusinessHours,
    BusinessHoursConfig,
    CandidateSlot,
    ExistingAppointment,
    Service,
    Stylist,
    TimeRange,
)
from .slot_calculator import SlotAvailabilityCalculator, compute_slots

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "BookingRequest",
    "BusinessHours",
    "BusinessHoursConfig",
    "CandidateSlot",
    "ExistingAppointment",
    "Service",
    "Stylist",
    "TimeRange",
    "SlotAvailabilityCalculator",
    "compute_slots",
]

"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability import AppointmentStoreProtocol, AvailabilityService
from .booking import BookingService
from .history import ActionHistory, ActionKind, BookingAction

__all__ = [
    "AppointmentStoreProtocol",
    "AvailabilityService",
    "BookingService",
    "ActionHistory",
    "ActionKind",
    "BookingAction",
]

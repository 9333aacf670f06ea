"""
Domain models for salon services, appointments and candidate slots.
"""

from dataclasses import dataclass, field
from datetime import date as Date
from datetime import time
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

import pendulum
from pendulum import DateTime


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """
        Check if this range overlaps with another.

        Ranges are half-open, so a range ending exactly when the other
        begins does not overlap it.
        """
        return self.start < other.end and self.end > other.start

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        return TimeRange(start=max(self.start, other.start), end=min(self.end, other.end))

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


def combine(day: Date, at: time, timezone: str) -> DateTime:
    """Build an aware DateTime for a calendar day and a time of day."""
    return pendulum.datetime(
        day.year, day.month, day.day, at.hour, at.minute, at.second, tz=timezone
    )


@dataclass(frozen=True)
class Service:
    """A bookable salon service. Its duration drives slot length."""
    id: str
    name: str
    duration_minutes: int
    price: Decimal = Decimal("0")
    salon_id: Optional[str] = None
    category: str = ""
    description: str = ""


@dataclass(frozen=True)
class Stylist:
    id: str
    name: str
    salon_id: Optional[str] = None


@dataclass(frozen=True)
class ExistingAppointment:
    """
    A committed reservation a new booking must not overlap.

    Invariant: start_time must be before end_time.
    """
    date: Date
    start_time: time
    end_time: time
    stylist_id: Optional[str] = None

    def __post_init__(self):
        if self.start_time >= self.end_time:
            raise ValueError(
                f"Appointment start {self.start_time} must be before end {self.end_time}"
            )

    def time_range(self, timezone: str) -> TimeRange:
        return TimeRange(
            start=combine(self.date, self.start_time, timezone),
            end=combine(self.date, self.end_time, timezone),
        )


@dataclass(frozen=True)
class CandidateSlot:
    """
    A computed, bookable-or-not interval. Regenerated on every query.
    """
    start: DateTime
    end: DateTime
    available: bool

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Weekday, YYYY-MM-DD | HH:mm - HH:mm
        """
        weekday = self.start.format("dddd")
        date_str = self.start.format("YYYY-MM-DD")
        return f"{weekday}, {date_str} | {self.start.format('HH:mm')} - {self.end.format('HH:mm')}"


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_active(self) -> bool:
        """Active appointments occupy their interval."""
        return self in ACTIVE_STATUSES

    def can_transition_to(self, new_status: "AppointmentStatus") -> bool:
        return new_status in ALLOWED_TRANSITIONS[self]


ACTIVE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, frozenset] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
}


@dataclass(frozen=True)
class BookingRequest:
    """
    A chosen (date, start_time, end_time) triple plus the identities needed
    to persist it.
    """
    user_id: str
    salon_id: str
    service_id: str
    date: Date
    start_time: time
    end_time: time
    stylist_id: Optional[str] = None
    notes: str = ""

    def __post_init__(self):
        if self.start_time >= self.end_time:
            raise ValueError(
                f"Booking start {self.start_time} must be before end {self.end_time}"
            )

    def time_range(self, timezone: str) -> TimeRange:
        return TimeRange(
            start=combine(self.date, self.start_time, timezone),
            end=combine(self.date, self.end_time, timezone),
        )


@dataclass
class Appointment:
    """A persisted appointment."""
    id: str
    user_id: str
    salon_id: str
    service_id: str
    date: Date
    start_time: time
    end_time: time
    status: AppointmentStatus = AppointmentStatus.PENDING
    stylist_id: Optional[str] = None
    notes: str = ""
    created_at: Optional[DateTime] = None

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def to_existing(self) -> ExistingAppointment:
        return ExistingAppointment(
            date=self.date,
            start_time=self.start_time,
            end_time=self.end_time,
            stylist_id=self.stylist_id,
        )

    def starts_at(self, timezone: str) -> DateTime:
        return combine(self.date, self.start_time, timezone)


@dataclass(frozen=True)
class BusinessHours:
    """Open/close bounds for one day."""
    open: time
    close: time

    @property
    def is_valid(self) -> bool:
        return self.open < self.close


DEFAULT_OPEN = time(9, 0)
DEFAULT_CLOSE = time(19, 0)
SUNDAY = 6


@dataclass
class BusinessHoursConfig:
    """
    Business hours per weekday (0=Monday, 6=Sunday). A missing or None
    entry means the salon is closed that day.
    """
    hours: Dict[int, Optional[BusinessHours]] = field(default_factory=dict)

    @classmethod
    def default(cls) -> "BusinessHoursConfig":
        """09:00-19:00 Monday to Saturday, closed on Sunday."""
        regular = BusinessHours(open=DEFAULT_OPEN, close=DEFAULT_CLOSE)
        return cls(hours={day: (None if day == SUNDAY else regular) for day in range(7)})

    @classmethod
    def uniform(cls, business_hours: BusinessHours, closed_days: List[int] = ()) -> "BusinessHoursConfig":
        return cls(
            hours={day: (None if day in closed_days else business_hours) for day in range(7)}
        )

    def hours_for(self, day: Date) -> Optional[BusinessHours]:
        """Get the business hours for a calendar day, or None when closed."""
        return self.hours.get(day.weekday())

    def is_open_on(self, day: Date) -> bool:
        return self.hours_for(day) is not None

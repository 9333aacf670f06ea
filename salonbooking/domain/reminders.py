"""
Selection of appointments that are due for a reminder.

Delivery (email, SMS) happens elsewhere; this module only decides who
should be reminded and what the message says.
"""

from typing import Iterable, List

from pendulum import DateTime

from .models import Appointment


def due_reminders(
    appointments: Iterable[Appointment],
    now: DateTime,
    window_days: int = 1,
    timezone: str = "UTC",
) -> List[Appointment]:
    """
    Return active appointments from today up to ``window_days`` ahead
    that have not started yet, ordered by date and start time.
    """
    local_now = now.in_timezone(timezone)
    first_day = local_now.date()
    last_day = first_day.add(days=max(window_days, 0))

    due = [
        appointment for appointment in appointments
        if appointment.is_active
        and first_day <= appointment.date <= last_day
        and appointment.starts_at(timezone) >= local_now
    ]
    return sorted(due, key=lambda a: (a.date, a.start_time))


def reminder_message(appointment: Appointment, salon_name: str, service_name: str) -> str:
    """Build the plain-text reminder body for an appointment."""
    day = appointment.date.strftime("%A, %d %B %Y")
    start = appointment.start_time.strftime("%H:%M")
    return (
        f"Reminder: your {service_name} appointment at {salon_name} "
        f"is on {day} at {start}."
    )

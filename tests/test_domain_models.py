"""
Tests for domain models.
"""

from datetime import time

import pendulum
import pytest

from salonbooking.domain.models import (
    Appointment,
    AppointmentStatus,
    BookingRequest,
    BusinessHours,
    BusinessHoursConfig,
    CandidateSlot,
    ExistingAppointment,
    TimeRange,
)


def _range(start: str, end: str) -> TimeRange:
    return TimeRange(
        start=pendulum.parse(f"2024-11-25 {start}", tz="Europe/Berlin"),
        end=pendulum.parse(f"2024-11-25 {end}", tz="Europe/Berlin"),
    )


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_create_valid_time_range(self):
        tr = _range("09:00", "17:00")

        assert tr.duration_minutes() == 480

    def test_invalid_time_range_raises_error(self):
        with pytest.raises(ValueError, match="Start time .* must be before end time"):
            _range("17:00", "09:00")

    def test_empty_time_range_raises_error(self):
        with pytest.raises(ValueError):
            _range("09:00", "09:00")

    def test_overlaps(self):
        assert _range("09:00", "12:00").overlaps(_range("11:00", "14:00"))
        assert _range("11:00", "14:00").overlaps(_range("09:00", "12:00"))
        assert _range("09:00", "12:00").overlaps(_range("10:00", "11:00"))

    def test_touching_ranges_do_not_overlap(self):
        assert not _range("09:00", "12:00").overlaps(_range("12:00", "14:00"))
        assert not _range("12:00", "14:00").overlaps(_range("09:00", "12:00"))

    def test_intersect(self):
        intersection = _range("09:00", "12:00").intersect(_range("11:00", "14:00"))

        assert intersection == _range("11:00", "12:00")

    def test_intersect_no_overlap(self):
        assert _range("09:00", "12:00").intersect(_range("14:00", "17:00")) is None


class TestExistingAppointment:
    def test_time_range_uses_timezone(self):
        existing = ExistingAppointment(
            date=pendulum.date(2024, 11, 25), start_time=time(10, 0), end_time=time(11, 0)
        )

        tr = existing.time_range("Europe/Berlin")

        assert tr.start == pendulum.datetime(2024, 11, 25, 10, 0, tz="Europe/Berlin")
        assert tr.duration_minutes() == 60

    def test_inverted_interval_rejected(self):
        with pytest.raises(ValueError):
            ExistingAppointment(
                date=pendulum.date(2024, 11, 25), start_time=time(11, 0), end_time=time(10, 0)
            )


class TestBookingRequest:
    def test_inverted_interval_rejected(self):
        with pytest.raises(ValueError):
            BookingRequest(
                user_id="u1",
                salon_id="s1",
                service_id="cut",
                date=pendulum.date(2024, 11, 25),
                start_time=time(12, 0),
                end_time=time(11, 30),
            )


class TestAppointmentStatus:
    @pytest.mark.parametrize(
        "current, target, allowed",
        [
            (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED, True),
            (AppointmentStatus.PENDING, AppointmentStatus.CANCELLED, True),
            (AppointmentStatus.PENDING, AppointmentStatus.COMPLETED, False),
            (AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED, True),
            (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED, True),
            (AppointmentStatus.CONFIRMED, AppointmentStatus.PENDING, False),
            (AppointmentStatus.CANCELLED, AppointmentStatus.CONFIRMED, False),
            (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, False),
        ],
    )
    def test_transitions(self, current, target, allowed):
        assert current.can_transition_to(target) is allowed

    def test_only_pending_and_confirmed_are_active(self):
        assert AppointmentStatus.PENDING.is_active
        assert AppointmentStatus.CONFIRMED.is_active
        assert not AppointmentStatus.CANCELLED.is_active
        assert not AppointmentStatus.COMPLETED.is_active

    def test_appointment_to_existing(self):
        appointment = Appointment(
            id="a1",
            user_id="u1",
            salon_id="s1",
            service_id="cut",
            stylist_id="anna",
            date=pendulum.date(2024, 11, 25),
            start_time=time(10, 0),
            end_time=time(10, 30),
        )

        existing = appointment.to_existing()

        assert existing.stylist_id == "anna"
        assert existing.start_time == time(10, 0)
        assert appointment.is_active


class TestBusinessHoursConfig:
    def test_default_closes_on_sunday(self):
        config = BusinessHoursConfig.default()

        assert config.hours_for(pendulum.date(2024, 11, 25)) == BusinessHours(time(9, 0), time(19, 0))
        assert config.hours_for(pendulum.date(2024, 11, 24)) is None
        assert not config.is_open_on(pendulum.date(2024, 11, 24))

    def test_uniform_with_closed_days(self):
        hours = BusinessHours(open=time(10, 0), close=time(18, 0))
        config = BusinessHoursConfig.uniform(hours, closed_days=[0, 6])

        assert config.hours_for(pendulum.date(2024, 11, 25)) is None  # Monday
        assert config.hours_for(pendulum.date(2024, 11, 26)) == hours

    def test_business_hours_validity(self):
        assert BusinessHours(time(9, 0), time(19, 0)).is_valid
        assert not BusinessHours(time(19, 0), time(9, 0)).is_valid


def test_candidate_slot_display():
    slot = CandidateSlot(
        start=pendulum.datetime(2024, 11, 25, 9, 30, tz="Europe/Berlin"),
        end=pendulum.datetime(2024, 11, 25, 10, 30, tz="Europe/Berlin"),
        available=True,
    )

    assert slot.format_display() == "Monday, 2024-11-25 | 09:30 - 10:30"
    assert slot.time_range.duration_minutes() == 60

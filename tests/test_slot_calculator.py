"""
Tests for slot availability calculator.
"""

from datetime import time

import pendulum

from salonbooking.domain.models import BusinessHours, BusinessHoursConfig, ExistingAppointment
from salonbooking.domain.slot_calculator import SlotAvailabilityCalculator, compute_slots

TZ = "Europe/Berlin"
MONDAY = pendulum.date(2024, 1, 1)
SUNDAY = pendulum.date(2024, 1, 7)
SALON_HOURS = BusinessHours(open=time(9, 0), close=time(19, 0))


def _at(text: str):
    return pendulum.parse(text, tz=TZ)


def _booked(start: time, end: time, day=MONDAY) -> ExistingAppointment:
    return ExistingAppointment(date=day, start_time=start, end_time=end)


def _by_start(slots):
    return {slot.start.format("HH:mm"): slot.available for slot in slots}


class TestSlotAvailabilityCalculator:
    """Tests for SlotAvailabilityCalculator."""

    def setup_method(self):
        self.calculator = SlotAvailabilityCalculator(
            business_hours=BusinessHoursConfig.default(),
            slot_granularity_minutes=30,
            timezone=TZ,
        )

    def test_free_day_generates_half_hour_grid(self):
        """A free day yields every 30-minute start that fits before closing."""
        slots = self.calculator.compute_slots(60, MONDAY, [], _at("2024-01-01 00:00"))

        assert len(slots) == 19  # 09:00 ... 18:00
        assert slots[0].start == _at("2024-01-01 09:00")
        assert slots[0].end == _at("2024-01-01 10:00")
        assert slots[-1].start == _at("2024-01-01 18:00")
        assert slots[-1].end == _at("2024-01-01 19:00")
        assert all(slot.available for slot in slots)

    def test_slots_are_strictly_ordered(self):
        existing = [_booked(time(12, 0), time(13, 30)), _booked(time(9, 0), time(9, 45))]

        slots = self.calculator.compute_slots(45, MONDAY, existing, _at("2024-01-01 00:00"))
        starts = [slot.start for slot in slots]

        assert starts == sorted(starts)
        assert len(set(starts)) == len(starts)

    def test_booked_hour_blocks_overlapping_slots(self):
        """Concrete scenario: one booking 10:00-11:00, 60-minute service."""
        existing = [_booked(time(10, 0), time(11, 0))]

        slots = self.calculator.compute_slots(60, MONDAY, existing, _at("2024-01-01 00:00"))
        availability = _by_start(slots)

        assert availability["09:00"] is True
        assert availability["09:30"] is False  # 09:30-10:30 overlaps
        assert availability["10:00"] is False
        assert availability["10:30"] is False
        assert availability["11:00"] is True
        assert availability["11:30"] is True

    def test_unavailable_slots_are_kept(self):
        existing = [_booked(time(9, 0), time(19, 0))]

        slots = self.calculator.compute_slots(30, MONDAY, existing, _at("2024-01-01 00:00"))

        assert len(slots) == 20
        assert not any(slot.available for slot in slots)

    def test_touching_boundaries_are_not_conflicts(self):
        """Slots ending at a booking's start or starting at its end stay free."""
        existing = [_booked(time(11, 0), time(12, 0))]

        slots = self.calculator.compute_slots(60, MONDAY, existing, _at("2024-01-01 00:00"))
        availability = _by_start(slots)

        assert availability["10:00"] is True  # ends 11:00
        assert availability["12:00"] is True  # starts 12:00
        assert availability["11:00"] is False

    def test_contained_booking_blocks_enclosing_slot(self):
        existing = [_booked(time(10, 15), time(10, 45))]

        slots = self.calculator.compute_slots(90, MONDAY, existing, _at("2024-01-01 00:00"))
        availability = _by_start(slots)

        assert availability["09:30"] is False
        assert availability["10:00"] is False
        assert availability["09:00"] is False  # 09:00-10:30
        assert availability["11:00"] is True

    def test_past_slots_are_excluded(self):
        """With now at noon, nothing before noon is offered."""
        now = _at("2024-01-01 12:00")

        slots = self.calculator.compute_slots(60, MONDAY, [], now)

        assert slots
        assert all(slot.start >= now for slot in slots)
        assert slots[0].start == now

    def test_future_day_ignores_time_of_now(self):
        slots = self.calculator.compute_slots(
            60, pendulum.date(2024, 1, 2), [], _at("2024-01-01 18:30")
        )

        assert slots[0].start == _at("2024-01-02 09:00")

    def test_past_day_yields_nothing(self):
        assert self.calculator.compute_slots(60, MONDAY, [], _at("2024-01-02 08:00")) == []

    def test_now_in_other_timezone_is_compared_as_instant(self):
        # 11:00 UTC is 12:00 in Berlin in winter
        now = pendulum.parse("2024-01-01 11:00", tz="UTC")

        slots = self.calculator.compute_slots(60, MONDAY, [], now)

        assert slots[0].start == _at("2024-01-01 12:00")

    def test_identical_inputs_give_identical_output(self):
        existing = [_booked(time(10, 0), time(11, 0))]
        now = _at("2024-01-01 08:00")

        first = self.calculator.compute_slots(45, MONDAY, existing, now)
        second = self.calculator.compute_slots(45, MONDAY, existing, now)

        assert first == second
        assert existing == [_booked(time(10, 0), time(11, 0))]

    def test_closed_day_yields_no_slots(self):
        assert self.calculator.compute_slots(30, SUNDAY, [], _at("2024-01-01 00:00")) == []

    def test_first_available(self):
        existing = [_booked(time(9, 0), time(10, 0))]

        slot = self.calculator.first_available(60, MONDAY, existing, _at("2024-01-01 00:00"))

        assert slot is not None
        assert slot.start == _at("2024-01-01 10:00")

    def test_first_available_none_when_fully_booked(self):
        existing = [_booked(time(9, 0), time(19, 0))]

        assert self.calculator.first_available(30, MONDAY, existing, _at("2024-01-01 00:00")) is None


class TestComputeSlotsMalformedInput:
    """Malformed input yields an empty result instead of raising."""

    now = _at("2024-01-01 00:00")

    def test_non_positive_duration(self):
        assert compute_slots(0, MONDAY, SALON_HOURS, [], self.now, timezone=TZ) == []
        assert compute_slots(-30, MONDAY, SALON_HOURS, [], self.now, timezone=TZ) == []

    def test_non_positive_granularity(self):
        assert compute_slots(30, MONDAY, SALON_HOURS, [], self.now, slot_granularity_minutes=0, timezone=TZ) == []

    def test_inverted_business_hours(self):
        inverted = BusinessHours(open=time(19, 0), close=time(9, 0))

        assert compute_slots(30, MONDAY, inverted, [], self.now, timezone=TZ) == []

    def test_empty_business_hours(self):
        empty = BusinessHours(open=time(9, 0), close=time(9, 0))

        assert compute_slots(30, MONDAY, empty, [], self.now, timezone=TZ) == []

    def test_service_longer_than_day(self):
        assert compute_slots(11 * 60, MONDAY, SALON_HOURS, [], self.now, timezone=TZ) == []

    def test_custom_granularity_and_hours(self):
        short_day = BusinessHours(open=time(10, 0), close=time(11, 0))

        slots = compute_slots(
            30, MONDAY, short_day, [], self.now, slot_granularity_minutes=15, timezone=TZ
        )

        assert [slot.start.format("HH:mm") for slot in slots] == ["10:00", "10:15", "10:30"]

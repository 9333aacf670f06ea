"""
Tests for the AvailabilityService orchestration layer.
"""

import asyncio
from datetime import time
from typing import Dict, List

import pendulum
import pytest

from salonbooking.domain.exceptions import StaleSelectionError
from salonbooking.domain.models import Appointment, AppointmentStatus, Service
from salonbooking.domain.slot_calculator import SlotAvailabilityCalculator
from salonbooking.services.availability import AvailabilityService

TZ = "Europe/Berlin"
MONDAY = pendulum.date(2024, 11, 25)
TUESDAY = pendulum.date(2024, 11, 26)
HAIRCUT = Service(id="haircut", name="Haircut", duration_minutes=60)


def _appointment(start: time, end: time, status=AppointmentStatus.PENDING, stylist_id=None, day=MONDAY):
    return Appointment(
        id=f"{day}-{start}",
        user_id="u1",
        salon_id="downtown",
        service_id="haircut",
        stylist_id=stylist_id,
        date=day,
        start_time=start,
        end_time=end,
        status=status,
    )


class StubStore:
    """Minimal stub matching the fetch part of AppointmentStoreProtocol."""

    def __init__(self, appointments: List[Appointment], delays: Dict = None):
        self._appointments = appointments
        self._delays = delays or {}
        self.calls: List[Dict] = []

    async def fetch_appointments(self, salon_id, date, stylist_id=None):
        self.calls.append({"salon_id": salon_id, "date": date, "stylist_id": stylist_id})
        delay = self._delays.get(date)
        if delay:
            await asyncio.sleep(delay)
        return [
            a for a in self._appointments
            if a.salon_id == salon_id
            and a.date == date
            and (stylist_id is None or a.stylist_id in (stylist_id, None))
        ]


def _build_service(store: StubStore) -> AvailabilityService:
    calculator = SlotAvailabilityCalculator(timezone=TZ)
    return AvailabilityService.with_calculators(store, {"downtown": calculator})


def test_get_slots_uses_store_data_and_calculator():
    store = StubStore([_appointment(time(10, 0), time(11, 0))])
    service = _build_service(store)

    slots = asyncio.run(
        service.get_slots(
            salon_id="downtown",
            service=HAIRCUT,
            selected_date=MONDAY,
            now=pendulum.datetime(2024, 11, 25, 0, 0, tz=TZ),
        )
    )

    availability = {slot.start.format("HH:mm"): slot.available for slot in slots}
    assert availability["10:00"] is False
    assert availability["11:00"] is True
    assert store.calls == [{"salon_id": "downtown", "date": MONDAY, "stylist_id": None}]


def test_inactive_appointments_do_not_block():
    store = StubStore([
        _appointment(time(10, 0), time(11, 0), status=AppointmentStatus.CANCELLED),
        _appointment(time(12, 0), time(13, 0), status=AppointmentStatus.COMPLETED),
        _appointment(time(14, 0), time(15, 0), status=AppointmentStatus.CONFIRMED),
    ])
    service = _build_service(store)

    existing = asyncio.run(service.fetch_existing(salon_id="downtown", selected_date=MONDAY))

    assert [e.start_time for e in existing] == [time(14, 0)]


def test_stylist_filter_is_passed_to_store():
    store = StubStore([
        _appointment(time(10, 0), time(11, 0), stylist_id="anna"),
        _appointment(time(12, 0), time(13, 0), stylist_id="ben"),
    ])
    service = _build_service(store)

    slots = asyncio.run(
        service.get_slots(
            salon_id="downtown",
            service=HAIRCUT,
            selected_date=MONDAY,
            now=pendulum.datetime(2024, 11, 25, 0, 0, tz=TZ),
            stylist_id="anna",
        )
    )

    availability = {slot.start.format("HH:mm"): slot.available for slot in slots}
    assert availability["10:00"] is False
    assert availability["12:00"] is True
    assert store.calls[0]["stylist_id"] == "anna"


def test_unknown_salon_falls_back_to_default_calculator():
    store = StubStore([])
    service = AvailabilityService.with_calculators(store, {})

    slots = asyncio.run(
        service.get_slots(
            salon_id="elsewhere",
            service=HAIRCUT,
            selected_date=MONDAY,
            now=pendulum.datetime(2024, 11, 25, 0, 0, tz="UTC"),
        )
    )

    assert slots[0].start == pendulum.datetime(2024, 11, 25, 9, 0, tz="UTC")


def test_newer_selection_supersedes_pending_one():
    """A selection still fetching when a new one starts must not deliver slots."""
    store = StubStore([], delays={MONDAY: 0.2})
    service = _build_service(store)
    now = pendulum.datetime(2024, 11, 25, 0, 0, tz=TZ)

    async def scenario():
        first = asyncio.ensure_future(
            service.select(salon_id="downtown", service=HAIRCUT, selected_date=MONDAY, now=now)
        )
        await asyncio.sleep(0.01)
        second = await service.select(
            salon_id="downtown", service=HAIRCUT, selected_date=TUESDAY, now=now
        )
        with pytest.raises(StaleSelectionError):
            await first
        return second

    slots = asyncio.run(scenario())

    assert slots
    assert all(slot.start.date() == TUESDAY for slot in slots)


def test_sequential_selections_both_resolve():
    store = StubStore([])
    service = _build_service(store)
    now = pendulum.datetime(2024, 11, 25, 0, 0, tz=TZ)

    async def scenario():
        monday = await service.select(salon_id="downtown", service=HAIRCUT, selected_date=MONDAY, now=now)
        tuesday = await service.select(salon_id="downtown", service=HAIRCUT, selected_date=TUESDAY, now=now)
        return monday, tuesday

    monday, tuesday = asyncio.run(scenario())

    assert monday[0].start.date() == MONDAY
    assert tuesday[0].start.date() == TUESDAY

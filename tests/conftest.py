"""
Shared fixtures: a small salon with one staff member working Monday mornings.
"""

import asyncio
import inspect

import pendulum
import pytest

from appointment_engine.adapters.memory_store import InMemorySchedulingStore
from appointment_engine.domain.models import Booking, BookingStatus, Service, WorkingWindow
from appointment_engine.domain.slot_generator import SlotGenerator
from appointment_engine.services.locks import StaffDayLocks
from appointment_engine.services.scheduling_service import SchedulingService

TZ = "Europe/Berlin"
MONDAY = pendulum.date(2024, 11, 25)


def at(hhmm: str, day: str = "2024-11-25"):
    return pendulum.parse(f"{day} {hhmm}", tz=TZ)


def make_booking(booking_id: str, start: str, duration: int = 60, status=BookingStatus.SCHEDULED, staff_id="ana") -> Booking:
    return Booking(
        id=booking_id,
        staff_id=staff_id,
        service_id="haircut",
        client_id="carla",
        start=at(start),
        duration_minutes=duration,
        status=status,
    )


@pytest.fixture
def store() -> InMemorySchedulingStore:
    store = InMemorySchedulingStore(timezone=TZ)
    store.add_staff("ana", "Ana Souza")
    store.add_staff("bruno", "Bruno Lima")
    store.add_working_window(WorkingWindow(staff_id="ana", day_of_week="monday", start_time="09:00", end_time="12:00"))
    store.add_working_window(WorkingWindow(staff_id="bruno", day_of_week="monday", start_time="10:00", end_time="14:00"))
    store.add_service(Service(id="haircut", duration_minutes=30, price="40.00", name="Haircut"))
    store.add_service(Service(id="treatment", duration_minutes=60, price="90.00", name="Treatment"))
    store.add_client("carla", "Carla Mendes")
    store.add_client("diego", "Diego Rocha")
    return store


@pytest.fixture
def service(store) -> SchedulingService:
    return SchedulingService(
        working_hours=store,
        bookings=store,
        services=store,
        statistics=store,
        slot_generator=SlotGenerator(timezone=TZ),
        locks=StaffDayLocks(timeout_seconds=1.0),
    )


class YieldingStore:
    """
    Delegates to a store but gives control back to the event loop before
    every async call, so concurrent requests really interleave.

    With ``exclusive=False`` inserts skip the store's overlap check, leaving
    the per-staff locks as the only guard.
    """

    def __init__(self, store, exclusive: bool = True):
        self._store = store
        self._exclusive = exclusive

    def __getattr__(self, name):
        attr = getattr(self._store, name)
        if not inspect.iscoroutinefunction(attr):
            return attr

        async def call(*args, **kwargs):
            await asyncio.sleep(0)
            return await attr(*args, **kwargs)

        return call

    async def insert_booking(self, booking):
        await asyncio.sleep(0)
        if self._exclusive:
            return await self._store.insert_booking(booking)
        self._store._bookings[booking.id] = booking
        return booking

"""
Protocols describing the external collaborators the engine depends on.

Persistence of staff hours, services, bookings and client records lives
outside the engine; anything that implements these protocols can be plugged
into ``SchedulingService`` (the in-memory store in ``adapters`` or a stub in
tests).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Protocol

from pendulum import DateTime

from ..domain.models import Booking, BookingStatus, ClientStatistics, Service, Weekday, WorkingWindow


class WorkingHoursProvider(Protocol):
    """Source of recurring weekly availability windows."""

    async def get_working_windows(self, staff_id: str, day_of_week: Weekday) -> List[WorkingWindow]:
        """Return the windows of one weekday, sorted by start time."""


class ServiceCatalog(Protocol):
    async def get_service(self, service_id: str) -> Service:
        """Return the service or raise ServiceNotFound."""


class BookingRepository(Protocol):
    """Booking storage. Writes must fail with ConflictOnCommit on overlap."""

    async def get_active_bookings(self, staff_id: str, day: date, timezone: str) -> List[Booking]:
        """Return the staff member's non-cancelled, non-no-show bookings overlapping the local ``day``."""

    async def get_booking(self, booking_id: str) -> Booking:
        """Return the booking or raise BookingNotFound."""

    async def insert_booking(self, booking: Booking) -> Booking:
        """Persist a new booking."""

    async def update_booking(self, booking: Booking) -> Booking:
        """Replace a stored booking with the same id."""

    async def delete_booking(self, booking_id: str) -> None:
        """Remove a booking permanently."""

    async def list_bookings(self, filters: "BookingFilter", page: int = 1, limit: int = 10) -> "BookingPage":
        """Return one page of bookings matching the filters."""


class ClientStatisticsStore(Protocol):
    async def update_client_statistics(
        self,
        client_id: str,
        last_visit: DateTime,
        amount_delta: Decimal,
    ) -> ClientStatistics:
        """Atomically set last visit, add the amount and count one visit."""

    async def get_client_statistics(self, client_id: str) -> ClientStatistics:
        """Return the current statistics or raise ClientNotFound."""


@dataclass
class BookingFilter:
    """Criteria for listing bookings; unset fields do not filter."""
    client_id: Optional[str] = None
    staff_id: Optional[str] = None
    service_id: Optional[str] = None
    status: Optional[BookingStatus] = None
    day: Optional[date] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    paid: Optional[bool] = None

    def matches(self, booking: Booking, timezone: str) -> bool:
        local_day = booking.start.in_timezone(timezone).date()
        checks = (
            self.client_id is None or booking.client_id == self.client_id,
            self.staff_id is None or booking.staff_id == self.staff_id,
            self.service_id is None or booking.service_id == self.service_id,
            self.status is None or booking.status == BookingStatus.parse(self.status),
            self.day is None or local_day == self.day,
            self.date_from is None or local_day >= self.date_from,
            self.date_to is None or local_day <= self.date_to,
            self.paid is None or booking.paid == self.paid,
        )
        return all(checks)


@dataclass
class BookingPage:
    items: List[Booking] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

"""
In-memory implementation of every repository port.

The store keeps staff working hours, services, client statistics and
bookings in dictionaries and can be seeded from (and dumped to) a JSON file,
which is what the CLI uses as its data file.

Writes enforce the same exclusion rule a database constraint on
``(staff_id, time range)`` would: an active booking may not overlap another
active booking of the same staff member. A violating write raises
``ConflictOnCommit``. All methods complete without awaiting, so each one is
atomic with respect to other coroutines on the same event loop.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import date, time
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..domain.exceptions import (
    BookingNotFound,
    ClientNotFound,
    ConflictOnCommit,
    InvalidInput,
    ServiceNotFound,
    StaffNotFound,
)
from ..domain.models import (
    Booking,
    BookingStatus,
    ClientStatistics,
    Service,
    Weekday,
    WorkingWindow,
    anchor,
    parse_time_of_day,
    to_amount,
    to_datetime,
)
from ..services.ports import BookingFilter, BookingPage

logger = logging.getLogger(__name__)


class InMemorySchedulingStore:
    """
    Dictionary-backed store for staff hours, services, clients and bookings.

    Implements WorkingHoursProvider, ServiceCatalog, BookingRepository and
    ClientStatisticsStore.
    """

    def __init__(self, timezone: str = "UTC") -> None:
        self.timezone = timezone
        self._staff: Dict[str, str] = {}
        self._windows: Dict[str, List[WorkingWindow]] = {}
        self._services: Dict[str, Service] = {}
        self._clients: Dict[str, ClientStatistics] = {}
        self._client_names: Dict[str, str] = {}
        self._bookings: Dict[str, Booking] = {}

    # -- staff and working hours ------------------------------------------

    def add_staff(self, staff_id: str, name: str = "") -> None:
        if not staff_id:
            raise InvalidInput("staff id is required")
        self._staff[staff_id] = name or staff_id
        self._windows.setdefault(staff_id, [])

    def staff_members(self) -> Dict[str, str]:
        return dict(self._staff)

    def add_working_window(self, window: WorkingWindow) -> WorkingWindow:
        """
        Register a recurring window.

        Raises:
            StaffNotFound: If the staff member is unknown
            InvalidInput: If the window overlaps another window of the same weekday
        """
        windows = self._require_staff(window.staff_id)
        clashing = [existing for existing in windows if existing.overlaps(window)]
        if clashing:
            raise InvalidInput(
                f"Working window {window.start_time}-{window.end_time} on "
                f"{window.day_of_week.label} overlaps {clashing[0].start_time}-{clashing[0].end_time}"
            )
        windows.append(window)
        windows.sort(key=lambda w: (w.day_of_week, w.start_time))
        return window

    def remove_working_window(self, staff_id: str, day_of_week, start_time) -> None:
        windows = self._require_staff(staff_id)
        weekday = Weekday.parse(day_of_week)
        start = parse_time_of_day(start_time)
        remaining = [w for w in windows if not (w.day_of_week == weekday and w.start_time == start)]
        if len(remaining) == len(windows):
            raise InvalidInput(f"No working window of {staff_id} on {weekday.label} starting at {start}")
        self._windows[staff_id] = remaining

    def list_working_windows(self, staff_id: str) -> List[WorkingWindow]:
        """All windows of a staff member, Monday first, then by start time."""
        return list(self._require_staff(staff_id))

    async def get_working_windows(self, staff_id: str, day_of_week: Weekday) -> List[WorkingWindow]:
        weekday = Weekday.parse(day_of_week)
        return [w for w in self._require_staff(staff_id) if w.day_of_week == weekday]

    # -- services -----------------------------------------------------------

    def add_service(self, service: Service) -> Service:
        self._services[service.id] = service
        return service

    def list_services(self) -> List[Service]:
        return sorted(self._services.values(), key=lambda s: s.id)

    async def get_service(self, service_id: str) -> Service:
        try:
            return self._services[service_id]
        except KeyError:
            raise ServiceNotFound(service_id) from None

    # -- clients ------------------------------------------------------------

    def add_client(self, client_id: str, name: str = "") -> ClientStatistics:
        if not client_id:
            raise InvalidInput("client id is required")
        stats = self._clients.setdefault(client_id, ClientStatistics(client_id=client_id))
        self._client_names[client_id] = name or client_id
        return replace(stats)

    def client_name(self, client_id: str) -> str:
        return self._client_names.get(client_id, client_id)

    async def get_client_statistics(self, client_id: str) -> ClientStatistics:
        return replace(self._require_client(client_id))

    async def update_client_statistics(
        self,
        client_id: str,
        last_visit,
        amount_delta: Decimal,
    ) -> ClientStatistics:
        stats = self._require_client(client_id)
        stats.last_visit = to_datetime(last_visit, self.timezone)
        stats.total_spent += to_amount(amount_delta) or Decimal("0")
        stats.visit_count += 1
        return replace(stats)

    # -- bookings -----------------------------------------------------------

    async def get_active_bookings(self, staff_id: str, day: date, timezone: Optional[str] = None) -> List[Booking]:
        """Active bookings of a staff member whose interval touches the local day, e.g. ones running past midnight."""
        tz = timezone or self.timezone
        day_start = anchor(day, time(0, 0), tz)
        day_end = day_start.add(days=1)
        found = [
            booking for booking in self._bookings.values()
            if booking.staff_id == staff_id
            and booking.is_active
            and booking.start < day_end
            and day_start < booking.end
        ]
        return sorted(found, key=lambda b: b.start)

    async def get_booking(self, booking_id: str) -> Booking:
        try:
            return self._bookings[booking_id]
        except KeyError:
            raise BookingNotFound(booking_id) from None

    async def insert_booking(self, booking: Booking) -> Booking:
        if booking.id in self._bookings:
            raise InvalidInput(f"Booking id already exists: {booking.id}")
        self._ensure_exclusive(booking)
        self._bookings[booking.id] = booking
        return booking

    async def update_booking(self, booking: Booking) -> Booking:
        if booking.id not in self._bookings:
            raise BookingNotFound(booking.id)
        self._ensure_exclusive(booking)
        self._bookings[booking.id] = booking
        return booking

    async def delete_booking(self, booking_id: str) -> None:
        if self._bookings.pop(booking_id, None) is None:
            raise BookingNotFound(booking_id)

    async def list_bookings(self, filters: BookingFilter, page: int = 1, limit: int = 10) -> BookingPage:
        """
        Page through bookings matching the filters.

        A staff member's agenda is listed oldest first; every other listing
        is newest first.
        """
        if page < 1 or limit < 1:
            raise InvalidInput(f"page and limit must be positive, got page={page} limit={limit}")

        matching = [b for b in self._bookings.values() if filters.matches(b, self.timezone)]
        newest_first = not (filters.staff_id and not filters.client_id)
        matching.sort(key=lambda b: b.start, reverse=newest_first)

        offset = (page - 1) * limit
        return BookingPage(
            items=matching[offset:offset + limit],
            total=len(matching),
            page=page,
            limit=limit,
        )

    def _ensure_exclusive(self, booking: Booking) -> None:
        if not booking.is_active:
            return
        conflicting = [
            other.id for other in self._bookings.values()
            if other.id != booking.id
            and other.staff_id == booking.staff_id
            and other.is_active
            and other.overlaps(booking)
        ]
        if conflicting:
            logger.warning(
                "Rejected write of booking %s: overlaps %s",
                booking.id, ", ".join(conflicting),
            )
            raise ConflictOnCommit(booking.staff_id, booking.id, conflicting)

    def _require_staff(self, staff_id: str) -> List[WorkingWindow]:
        if staff_id not in self._staff:
            raise StaffNotFound(staff_id)
        return self._windows[staff_id]

    def _require_client(self, client_id: str) -> ClientStatistics:
        try:
            return self._clients[client_id]
        except KeyError:
            raise ClientNotFound(client_id) from None

    # -- JSON seed / state file ----------------------------------------------

    @classmethod
    def from_seed(cls, data: Dict[str, Any], timezone: str = "UTC") -> "InMemorySchedulingStore":
        """
        Build a store from a seed mapping.

        Expected keys: ``staff`` (with nested ``working_hours``), ``services``,
        ``clients`` and ``bookings``; all optional.
        """
        store = cls(timezone=timezone)
        try:
            for entry in data.get("staff", []):
                store.add_staff(entry["id"], entry.get("name", ""))
                for hours in entry.get("working_hours", []):
                    store.add_working_window(WorkingWindow(
                        staff_id=entry["id"],
                        day_of_week=hours["day"],
                        start_time=hours["start"],
                        end_time=hours["end"],
                    ))

            for entry in data.get("services", []):
                store.add_service(Service(
                    id=entry["id"],
                    duration_minutes=int(entry["duration_minutes"]),
                    price=entry.get("price", "0"),
                    name=entry.get("name", ""),
                ))

            for entry in data.get("clients", []):
                store.add_client(entry["id"], entry.get("name", ""))
                stats = store._clients[entry["id"]]
                if entry.get("last_visit"):
                    stats.last_visit = to_datetime(entry["last_visit"], timezone)
                stats.total_spent = to_amount(entry.get("total_spent") or "0")
                stats.visit_count = int(entry.get("visit_count", 0))

            for entry in data.get("bookings", []):
                booking = _booking_from_dict(entry, timezone)
                store._bookings[booking.id] = booking
        except KeyError as exc:
            raise InvalidInput(f"Seed data entry is missing the field {exc}") from exc

        return store

    @classmethod
    def from_json_file(cls, path: Path, timezone: str = "UTC") -> "InMemorySchedulingStore":
        """
        Load a store from a JSON file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            InvalidInput: If the file is not valid seed data
        """
        if not path.exists():
            raise FileNotFoundError(f"Data file not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise InvalidInput(f"Invalid JSON in {path}: {exc}") from exc

        if not isinstance(data, dict):
            raise InvalidInput("Data file must contain an object at the root level.")

        return cls.from_seed(data, timezone=timezone)

    def to_seed(self) -> Dict[str, Any]:
        return {
            "staff": [
                {
                    "id": staff_id,
                    "name": name,
                    "working_hours": [
                        {
                            "day": w.day_of_week.name.lower(),
                            "start": w.start_time.strftime("%H:%M"),
                            "end": w.end_time.strftime("%H:%M"),
                        }
                        for w in self._windows[staff_id]
                    ],
                }
                for staff_id, name in self._staff.items()
            ],
            "services": [
                {
                    "id": s.id,
                    "name": s.name,
                    "duration_minutes": s.duration_minutes,
                    "price": str(s.price),
                }
                for s in self._services.values()
            ],
            "clients": [
                {
                    "id": c.client_id,
                    "name": self.client_name(c.client_id),
                    "last_visit": c.last_visit.to_iso8601_string() if c.last_visit else None,
                    "total_spent": str(c.total_spent),
                    "visit_count": c.visit_count,
                }
                for c in self._clients.values()
            ],
            "bookings": [_booking_to_dict(b) for b in self._bookings.values()],
        }

    def dump_json(self, path: Path) -> None:
        """Write the store to ``path`` atomically (temp file, then rename)."""
        temp_path = path.with_suffix(path.suffix + ".tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(self.to_seed(), f, indent=2, ensure_ascii=False)
        temp_path.replace(path)


def _booking_to_dict(booking: Booking) -> Dict[str, Any]:
    return {
        "id": booking.id,
        "staff_id": booking.staff_id,
        "service_id": booking.service_id,
        "client_id": booking.client_id,
        "start": booking.start.to_iso8601_string(),
        "duration_minutes": booking.duration_minutes,
        "status": booking.status.value,
        "paid": booking.paid,
        "paid_amount": str(booking.paid_amount) if booking.paid_amount is not None else None,
        "notes": booking.notes,
        "package_subscription_id": booking.package_subscription_id,
    }


def _booking_from_dict(entry: Dict[str, Any], timezone: str) -> Booking:
    return Booking(
        id=entry["id"],
        staff_id=entry["staff_id"],
        service_id=entry["service_id"],
        client_id=entry["client_id"],
        start=to_datetime(entry["start"], timezone),
        duration_minutes=int(entry["duration_minutes"]),
        status=BookingStatus.parse(entry.get("status", "scheduled")),
        paid=bool(entry.get("paid", False)),
        paid_amount=entry.get("paid_amount"),
        notes=entry.get("notes"),
        package_subscription_id=entry.get("package_subscription_id"),
    )

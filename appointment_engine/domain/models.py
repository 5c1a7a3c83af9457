"""
Domain models for working windows, bookings and slots.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum, IntEnum
from typing import FrozenSet, List, Optional

import pendulum
from pendulum import DateTime

from .exceptions import InvalidInput


class Weekday(IntEnum):
    """Day of week, 0=Monday .. 6=Sunday (Gregorian calendar, no locale)."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def from_date(cls, day: date) -> "Weekday":
        return cls(day.weekday())

    @classmethod
    def parse(cls, value) -> "Weekday":
        """Accept a Weekday, an int 0-6, a full English name or a 3-letter abbreviation."""
        if isinstance(value, Weekday):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            if 0 <= value <= 6:
                return cls(value)
            raise InvalidInput(f"Weekday number must be between 0 and 6, got {value}")
        if isinstance(value, str):
            key = value.strip().lower()
            if key.isdigit():
                return cls.parse(int(key))
            for day in cls:
                if key in (day.name.lower(), day.name.lower()[:3]):
                    return day
        raise InvalidInput(f"Unknown weekday: {value!r}")

    @property
    def label(self) -> str:
        return self.name.capitalize()


def parse_time_of_day(value) -> time:
    """
    Convert ``"HH:MM"`` / ``"HH:MM:SS"`` strings to ``datetime.time``.

    Raises:
        InvalidInput: If the value is not a valid time of day
    """
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise InvalidInput(f"Time of day must be a string like '09:30', got {value!r}")
    parts = value.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise InvalidInput(f"Malformed time of day: {value!r}")
    try:
        return time(*(int(p) for p in parts))
    except ValueError as exc:
        raise InvalidInput(f"Malformed time of day: {value!r}") from exc


def to_datetime(value, tz: str = "UTC") -> DateTime:
    """
    Normalise strings and datetimes into timezone-aware pendulum DateTimes.

    Naive values are interpreted in ``tz``.
    """
    if isinstance(value, DateTime):
        return value
    if isinstance(value, datetime):
        return pendulum.instance(value, tz=tz)
    if isinstance(value, str):
        try:
            parsed = pendulum.parse(value, tz=tz)
        except ValueError as exc:
            raise InvalidInput(f"Malformed date/time: {value!r}") from exc
        if not isinstance(parsed, DateTime):
            raise InvalidInput(f"Expected a date and time, got {value!r}")
        return parsed
    raise InvalidInput(f"Expected a date/time, got {value!r}")


def to_date(value) -> date:
    """Normalise ``YYYY-MM-DD`` strings, dates and datetimes into a pendulum Date."""
    if isinstance(value, datetime):
        return pendulum.date(value.year, value.month, value.day)
    if isinstance(value, date):
        return pendulum.date(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            parsed = pendulum.parse(value, exact=True)
        except ValueError as exc:
            raise InvalidInput(f"Malformed date: {value!r}") from exc
        if isinstance(parsed, DateTime):
            return parsed.date()
        if isinstance(parsed, pendulum.Date):
            return parsed
    raise InvalidInput(f"Expected a date, got {value!r}")


def to_amount(value) -> Optional[Decimal]:
    """Convert a money value to Decimal; ``None`` stays ``None``."""
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidInput(f"Malformed amount: {value!r}") from exc
    if amount < 0:
        raise InvalidInput(f"Amount must not be negative, got {value!r}")
    return amount


def anchor(day: date, moment: time, tz: str) -> DateTime:
    """Place a time of day on a calendar date in the given timezone."""
    return pendulum.datetime(
        day.year, day.month, day.day,
        moment.hour, moment.minute, moment.second,
        tz=tz,
    )


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range ``[start, end)``.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise InvalidInput(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other) -> bool:
        """
        Check if this range overlaps with another range (or booking).

        Ranges that only touch (one ends exactly where the other starts)
        do not overlap.
        """
        return self.start < other.end and other.start < self.end

    def contains(self, other) -> bool:
        return self.start <= other.start and other.end <= self.end

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class Slot(TimeRange):
    """A candidate booking interval; computed, never persisted."""

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Weekday, YYYY-MM-DD | HH:mm - HH:mm
        """
        weekday = Weekday.from_date(self.start).label
        return (
            f"{weekday}, {self.start.format('YYYY-MM-DD')} | "
            f"{self.start.format('HH:mm')} - {self.end.format('HH:mm')} "
            f"({self.duration_minutes()} min)"
        )


@dataclass(frozen=True)
class WorkingWindow:
    """
    A recurring weekly interval during which a staff member is available.

    Invariant: start_time < end_time.
    """
    staff_id: str
    day_of_week: Weekday
    start_time: time
    end_time: time

    def __post_init__(self):
        object.__setattr__(self, "day_of_week", Weekday.parse(self.day_of_week))
        object.__setattr__(self, "start_time", parse_time_of_day(self.start_time))
        object.__setattr__(self, "end_time", parse_time_of_day(self.end_time))
        if self.start_time >= self.end_time:
            raise InvalidInput(
                f"Working window start {self.start_time} must be before end {self.end_time}"
            )

    def on_date(self, day: date, tz: str) -> TimeRange:
        """Anchor the window on a concrete date."""
        return TimeRange(start=anchor(day, self.start_time, tz), end=anchor(day, self.end_time, tz))

    def overlaps(self, other: "WorkingWindow") -> bool:
        return (
            self.day_of_week == other.day_of_week
            and self.start_time < other.end_time
            and other.start_time < self.end_time
        )


@dataclass(frozen=True)
class Service:
    """Read-only service definition."""
    id: str
    duration_minutes: int
    price: Decimal = Decimal("0")
    name: str = ""

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise InvalidInput(
                f"Service {self.id} duration must be positive, got {self.duration_minutes}"
            )
        object.__setattr__(self, "price", to_amount(self.price))


class BookingStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @classmethod
    def parse(cls, value) -> "BookingStatus":
        if isinstance(value, BookingStatus):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            allowed = ", ".join(s.value for s in cls)
            raise InvalidInput(f"Unknown booking status {value!r} (allowed: {allowed})") from exc

    @property
    def is_terminal(self) -> bool:
        return self in (BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW)

    @property
    def occupies_time(self) -> bool:
        return self not in (BookingStatus.CANCELLED, BookingStatus.NO_SHOW)


ACTIVE_STATUSES: FrozenSet[BookingStatus] = frozenset(s for s in BookingStatus if s.occupies_time)


@dataclass(frozen=True)
class Booking:
    """
    A reserved interval of a staff member's time.

    Invariant: duration_minutes > 0. The id never changes; updates go
    through ``dataclasses.replace``.
    """
    id: str
    staff_id: str
    service_id: str
    client_id: str
    start: DateTime
    duration_minutes: int
    status: BookingStatus = BookingStatus.SCHEDULED
    paid: bool = False
    paid_amount: Optional[Decimal] = None
    notes: Optional[str] = None
    package_subscription_id: Optional[str] = None

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise InvalidInput(
                f"Booking {self.id} duration must be positive, got {self.duration_minutes}"
            )
        object.__setattr__(self, "start", to_datetime(self.start))
        object.__setattr__(self, "status", BookingStatus.parse(self.status))
        object.__setattr__(self, "paid_amount", to_amount(self.paid_amount))

    @classmethod
    def new(cls, **fields) -> "Booking":
        return cls(id=str(uuid.uuid4()), **fields)

    @property
    def end(self) -> DateTime:
        return self.start.add(minutes=self.duration_minutes)

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    @property
    def is_active(self) -> bool:
        return self.status.occupies_time

    def overlaps(self, other) -> bool:
        return self.start < other.end and other.start < self.end

    def with_changes(self, **changes) -> "Booking":
        return replace(self, **changes)


@dataclass(frozen=True)
class BookingRequest:
    """A request to book a staff member for a service."""
    staff_id: str
    service_id: str
    client_id: str
    start: DateTime
    notes: Optional[str] = None
    paid: bool = False
    paid_amount: Optional[Decimal] = None
    package_subscription_id: Optional[str] = None

    def __post_init__(self):
        for name in ("staff_id", "service_id", "client_id"):
            if not getattr(self, name):
                raise InvalidInput(f"{name} is required")
        object.__setattr__(self, "paid_amount", to_amount(self.paid_amount))


@dataclass(frozen=True)
class BookingChange:
    """Partial update of a booking; ``None`` leaves a field untouched."""
    staff_id: Optional[str] = None
    service_id: Optional[str] = None
    start: Optional[DateTime] = None
    notes: Optional[str] = None
    paid: Optional[bool] = None
    paid_amount: Optional[Decimal] = None
    package_subscription_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "paid_amount", to_amount(self.paid_amount))

    def touches_schedule(self, booking: Booking, timezone: str = "UTC") -> bool:
        """
        True if staff, service or start actually differ from the booking.

        A naive ``start`` is read in ``timezone`` before comparing.
        """
        return (
            (self.staff_id is not None and self.staff_id != booking.staff_id)
            or (self.service_id is not None and self.service_id != booking.service_id)
            or (self.start is not None and to_datetime(self.start, timezone) != booking.start)
        )

    def bookkeeping_fields(self) -> dict:
        values = {
            "notes": self.notes,
            "paid": self.paid,
            "paid_amount": self.paid_amount,
            "package_subscription_id": self.package_subscription_id,
        }
        return {key: value for key, value in values.items() if value is not None}


@dataclass
class ClientStatistics:
    client_id: str
    last_visit: Optional[DateTime] = None
    total_spent: Decimal = Decimal("0")
    visit_count: int = 0


@dataclass
class AvailabilityResult:
    """Free slots of one staff member for one service on one day."""
    is_available: bool
    slots: List[Slot] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def starts(self) -> List[DateTime]:
        return [slot.start for slot in self.slots]

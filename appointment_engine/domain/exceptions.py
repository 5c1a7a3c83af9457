"""
Domain-specific exception hierarchy for the appointment engine.

Every error a caller can receive from the engine derives from
``SchedulingError``. Only ``ConflictOnCommit`` is retryable; all other
errors are final for the request that raised them.
"""

from __future__ import annotations

from typing import Sequence


class SchedulingError(Exception):
    """Base class for all engine-level errors."""

    retryable = False


class InvalidInput(SchedulingError, ValueError):
    """Raised for non-positive durations, malformed times and similar input."""


class NotFound(SchedulingError):
    """Raised when a referenced record does not exist."""

    kind = "record"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"{self.kind.capitalize()} not found: {identifier}")


class StaffNotFound(NotFound):
    kind = "staff member"


class ServiceNotFound(NotFound):
    kind = "service"


class BookingNotFound(NotFound):
    kind = "booking"


class ClientNotFound(NotFound):
    kind = "client"


class RejectedNoWorkday(SchedulingError):
    """Raised when the staff member has no working window on the requested day."""

    def __init__(self, staff_id: str, weekday_name: str):
        self.staff_id = staff_id
        self.weekday_name = weekday_name
        super().__init__(
            f"Staff member {staff_id} does not work on {weekday_name}"
        )


class RejectedNoSlot(SchedulingError):
    """Raised when the requested start is not the start of a free slot."""

    def __init__(self, staff_id: str, requested_start, free_starts: Sequence = ()):
        self.staff_id = staff_id
        self.requested_start = requested_start
        self.free_starts = list(free_starts)
        if self.free_starts:
            offered = ", ".join(s.format("HH:mm") for s in self.free_starts)
            hint = f"free starts that day: {offered}"
        else:
            hint = "no free slots left that day"
        super().__init__(
            f"Requested start {requested_start.to_iso8601_string()} is not available "
            f"for staff member {staff_id} ({hint})"
        )


class ConflictOnCommit(SchedulingError):
    """
    Raised by a repository when a write would overlap an active booking.

    This is the race-lost signal: another writer committed an overlapping
    interval between validation and insert.
    """

    retryable = True

    def __init__(self, staff_id: str, booking_id: str, conflicting_ids: Sequence[str] = ()):
        self.staff_id = staff_id
        self.booking_id = booking_id
        self.conflicting_ids = list(conflicting_ids)
        super().__init__(
            f"Booking {booking_id} overlaps active booking(s) "
            f"{', '.join(self.conflicting_ids) or '?'} of staff member {staff_id}"
        )


class InvalidTransition(SchedulingError):
    """Raised when a booking status change is not allowed."""

    def __init__(self, booking_id: str, current, requested):
        self.booking_id = booking_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Booking {booking_id} cannot go from '{current.value}' to '{requested.value}'"
        )


class BookingTimeout(SchedulingError):
    """Raised when the per-staff lock could not be acquired in time."""

    def __init__(self, staff_id: str, day, timeout: float):
        self.staff_id = staff_id
        self.day = day
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout:g}s waiting for the schedule of "
            f"staff member {staff_id} on {day.isoformat()}"
        )

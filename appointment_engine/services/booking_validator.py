"""
Booking request validation and commit.

The validator combines slot generation and conflict detection to decide
whether a requested start time is bookable:

    Requested -> Accepted | RejectedNoWorkday | RejectedNoSlot

Accepted requests are committed while the per-(staff, date) lock is held, so
validation and the write form one critical section. Moves hold the locks of
both the old and the new staff day. A write that still loses
a race (``ConflictOnCommit`` from the repository) is re-validated against
fresh data and retried once before the conflict reaches the caller.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Tuple, TypeVar

from pendulum import DateTime

from ..domain.conflict_detector import ConflictDetector
from ..domain.exceptions import ConflictOnCommit, InvalidInput, RejectedNoSlot, RejectedNoWorkday
from ..domain.lifecycle import AppointmentLifecycle
from ..domain.models import Booking, BookingChange, BookingRequest, Service, Slot, Weekday, WorkingWindow, to_datetime
from ..domain.slot_generator import SlotGenerator
from .locks import LockKey, StaffDayLocks, lock_key
from .ports import BookingRepository, ClientStatisticsStore, ServiceCatalog, WorkingHoursProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_WORKDAY_MESSAGE = "staff does not work this day"


class ValidationState(str, Enum):
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    REJECTED_NO_WORKDAY = "rejected_no_workday"
    REJECTED_NO_SLOT = "rejected_no_slot"


@dataclass
class ValidationOutcome:
    """Result of validating one requested start time."""
    staff_id: str
    requested_start: DateTime
    state: ValidationState = ValidationState.REQUESTED
    service: Optional[Service] = None
    weekday: Optional[Weekday] = None
    free_slots: List[Slot] = field(default_factory=list)
    reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.state is ValidationState.ACCEPTED

    def raise_for_rejection(self) -> None:
        """Turn a rejected outcome into the matching exception."""
        if self.state is ValidationState.REJECTED_NO_WORKDAY:
            raise RejectedNoWorkday(self.staff_id, self.weekday.label)
        if self.state is ValidationState.REJECTED_NO_SLOT:
            raise RejectedNoSlot(
                self.staff_id,
                self.requested_start,
                [slot.start for slot in self.free_slots],
            )
        if self.state is ValidationState.REQUESTED:
            raise RuntimeError("Validation outcome has not been decided yet")


class BookingValidator:
    """
    Accepts or rejects proposed bookings and commits accepted ones.

    Dependency inversion toward the repository protocols keeps the
    validator independent of the storage backend.
    """

    def __init__(
        self,
        working_hours: WorkingHoursProvider,
        bookings: BookingRepository,
        services: ServiceCatalog,
        slot_generator: SlotGenerator,
        conflict_detector: Optional[ConflictDetector] = None,
        lifecycle: Optional[AppointmentLifecycle] = None,
        locks: Optional[StaffDayLocks] = None,
        commit_retries: int = 1,
        clients: Optional[ClientStatisticsStore] = None,
    ) -> None:
        self._working_hours = working_hours
        self._bookings = bookings
        self._services = services
        self._slot_generator = slot_generator
        self._conflict_detector = conflict_detector or ConflictDetector()
        self._lifecycle = lifecycle or AppointmentLifecycle()
        self._locks = locks or StaffDayLocks()
        self._commit_retries = commit_retries
        self._clients = clients

    @property
    def timezone(self) -> str:
        return self._slot_generator.timezone

    def local_day(self, moment: DateTime) -> date:
        """Calendar date of an instant in the engine's timezone."""
        return moment.in_timezone(self.timezone).date()

    async def free_slots(
        self,
        staff_id: str,
        service: Service,
        day: date,
        exclude_booking_id: Optional[str] = None,
    ) -> Tuple[List[WorkingWindow], List[Slot]]:
        """
        Compute the free slots of one staff member for one service and day.

        Returns:
            The working windows of that weekday and the free slots; both
            are empty when the staff member does not work that day.
        """
        weekday = Weekday.from_date(day)
        windows = await self._working_hours.get_working_windows(staff_id, weekday)
        if not windows:
            return [], []

        existing = await self._bookings.get_active_bookings(staff_id, day, self.timezone)
        if exclude_booking_id is not None:
            existing = [booking for booking in existing if booking.id != exclude_booking_id]

        candidates = self._slot_generator.generate(windows, day, service.duration_minutes)
        slots = self._conflict_detector.filter(candidates, existing)

        logger.debug(
            "%s free slot(s) for staff %s on %s (%s active booking(s))",
            len(slots), staff_id, day, len(existing),
        )
        return windows, slots

    async def validate(
        self,
        staff_id: str,
        service_id: str,
        start,
        exclude_booking_id: Optional[str] = None,
    ) -> ValidationOutcome:
        """
        Decide whether ``start`` is a bookable slot start.

        Raises:
            ServiceNotFound: If the service does not exist
            StaffNotFound: If the working-hours provider does not know the staff member
        """
        requested = to_datetime(start, self.timezone)
        outcome = ValidationOutcome(staff_id=staff_id, requested_start=requested)

        outcome.service = await self._services.get_service(service_id)

        day = self.local_day(requested)
        outcome.weekday = Weekday.from_date(day)
        windows, slots = await self.free_slots(staff_id, outcome.service, day, exclude_booking_id)
        outcome.free_slots = slots

        if not windows:
            outcome.state = ValidationState.REJECTED_NO_WORKDAY
            outcome.reason = NO_WORKDAY_MESSAGE
        elif any(slot.start == requested for slot in slots):
            outcome.state = ValidationState.ACCEPTED
        else:
            outcome.state = ValidationState.REJECTED_NO_SLOT
            outcome.reason = "requested start is not the start of a free slot"

        if not outcome.accepted:
            logger.warning(
                "Rejected %s for staff %s at %s: %s",
                service_id, staff_id, requested.to_iso8601_string(), outcome.reason,
            )
        return outcome

    async def create_booking(self, request: BookingRequest) -> Booking:
        """
        Validate a request and insert the booking.

        Raises:
            ClientNotFound: If a client store is wired in and does not know the client
            RejectedNoWorkday, RejectedNoSlot: If the request is not bookable
            ConflictOnCommit: If the insert lost a race twice
            BookingTimeout: If the staff member's day stayed locked too long
        """
        if self._clients is not None:
            await self._clients.get_client_statistics(request.client_id)

        start = to_datetime(request.start, self.timezone)
        day = self.local_day(start)

        async def attempt() -> Booking:
            outcome = await self.validate(request.staff_id, request.service_id, start)
            outcome.raise_for_rejection()

            booking = Booking.new(
                staff_id=request.staff_id,
                service_id=request.service_id,
                client_id=request.client_id,
                start=outcome.requested_start,
                duration_minutes=outcome.service.duration_minutes,
                paid=request.paid,
                paid_amount=request.paid_amount,
                notes=request.notes,
                package_subscription_id=request.package_subscription_id,
            )
            return await self._bookings.insert_booking(self._lifecycle.initialize(booking))

        async with self._locks.hold(request.staff_id, day):
            booking = await self._retrying(attempt)

        logger.info(
            "Booked %s for client %s with staff %s at %s (%s)",
            booking.service_id, booking.client_id, booking.staff_id,
            booking.start.to_iso8601_string(), booking.id,
        )
        return booking

    async def move_booking(self, booking: Booking, change: BookingChange) -> Booking:
        """
        Apply a change to an existing booking.

        The booking is re-read under the locks of its current staff day and
        of the target staff day, so the change always applies to the latest
        stored state. When staff, service or start change, the new placement
        is validated with the booking's own prior occupancy excluded from the
        conflict set.
        """
        def target(current: Booking) -> LockKey:
            staff_id = change.staff_id or current.staff_id
            return lock_key(staff_id, self.local_day(self._moved_start(current, change)))

        async with self.hold_booking(booking.id, target) as current:
            if not change.touches_schedule(current, self.timezone):
                updated = current.with_changes(**change.bookkeeping_fields())
                return await self._bookings.update_booking(updated)

            async def attempt() -> Booking:
                fresh = await self._bookings.get_booking(current.id)
                if not fresh.is_active or fresh.status.is_terminal:
                    raise InvalidInput(
                        f"Booking {fresh.id} is {fresh.status.value} and cannot be rescheduled"
                    )

                staff_id = change.staff_id or fresh.staff_id
                service_id = change.service_id or fresh.service_id
                start = self._moved_start(fresh, change)
                outcome = await self.validate(staff_id, service_id, start, exclude_booking_id=fresh.id)
                outcome.raise_for_rejection()

                updated = fresh.with_changes(
                    staff_id=staff_id,
                    service_id=service_id,
                    start=outcome.requested_start,
                    duration_minutes=outcome.service.duration_minutes,
                    **change.bookkeeping_fields(),
                )
                return await self._bookings.update_booking(updated)

            moved = await self._retrying(attempt)

        logger.info(
            "Moved booking %s to staff %s at %s",
            moved.id, moved.staff_id, moved.start.to_iso8601_string(),
        )
        return moved

    @asynccontextmanager
    async def hold_booking(
        self,
        booking_id: str,
        target: Optional[Callable[[Booking], LockKey]] = None,
    ) -> AsyncIterator[Booking]:
        """
        Lock the staff day a booking currently sits on and yield it as read under the lock.

        ``target`` names one more staff day to hold, derived from the booking.
        If the booking was moved while waiting, the locks are released and
        taken again for its new place.

        Raises:
            BookingNotFound: If the booking does not exist
            BookingTimeout: If a staff day stayed locked too long
        """
        while True:
            snapshot = await self._bookings.get_booking(booking_id)
            keys = self._booking_keys(snapshot, target)

            async with self._locks.hold_all(keys):
                current = await self._bookings.get_booking(booking_id)
                if self._booking_keys(current, target) == keys:
                    yield current
                    return

            logger.debug("Booking %s moved while waiting for its lock, retrying", booking_id)

    def _booking_keys(self, booking: Booking, target: Optional[Callable[[Booking], LockKey]]) -> List[LockKey]:
        keys = {lock_key(booking.staff_id, self.local_day(booking.start))}
        if target is not None:
            keys.add(target(booking))
        return sorted(keys)

    def _moved_start(self, booking: Booking, change: BookingChange) -> DateTime:
        return booking.start if change.start is None else to_datetime(change.start, self.timezone)

    async def _retrying(self, attempt: Callable[[], Awaitable[T]]) -> T:
        for attempt_number in range(self._commit_retries + 1):
            try:
                return await attempt()
            except ConflictOnCommit as exc:
                if attempt_number >= self._commit_retries:
                    logger.warning("Giving up after conflict on commit: %s", exc)
                    raise
                logger.warning("Conflict on commit, re-validating with fresh data: %s", exc)
        raise RuntimeError("unreachable")  # pragma: no cover

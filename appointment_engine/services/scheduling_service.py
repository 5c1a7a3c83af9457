"""
Application service exposing the scheduling operations.

The service wires the repositories to the domain components and is the
only entry point callers (CLI, an HTTP layer) need:

- ``compute_availability``: free slots of a staff member for a service and day
- ``validate_and_create_booking``: book a free slot
- ``update_booking``: change a booking, re-validating moves
- ``transition``: drive the booking status state machine
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import AppConfig
from ..domain.lifecycle import AppointmentLifecycle, StatisticsEffect
from ..domain.models import AvailabilityResult, Booking, BookingChange, BookingRequest, ClientStatistics, to_date
from ..domain.slot_generator import SlotGenerator
from .booking_validator import NO_WORKDAY_MESSAGE, BookingValidator
from .locks import StaffDayLocks
from .ports import BookingFilter, BookingPage, BookingRepository, ClientStatisticsStore, ServiceCatalog, WorkingHoursProvider

logger = logging.getLogger(__name__)


class SchedulingService:
    """
    Orchestrates availability queries, booking commits and status changes.

    Dependency inversion toward the port protocols makes it easy to plug in
    the in-memory store or a stub in tests.
    """

    def __init__(
        self,
        working_hours: WorkingHoursProvider,
        bookings: BookingRepository,
        services: ServiceCatalog,
        statistics: ClientStatisticsStore,
        slot_generator: Optional[SlotGenerator] = None,
        lifecycle: Optional[AppointmentLifecycle] = None,
        locks: Optional[StaffDayLocks] = None,
        commit_retries: int = 1,
    ) -> None:
        self._bookings = bookings
        self._services = services
        self._statistics = statistics
        self._lifecycle = lifecycle or AppointmentLifecycle()
        self._locks = locks or StaffDayLocks()
        self._validator = BookingValidator(
            working_hours=working_hours,
            bookings=bookings,
            services=services,
            slot_generator=slot_generator or SlotGenerator(),
            lifecycle=self._lifecycle,
            locks=self._locks,
            commit_retries=commit_retries,
            clients=statistics,
        )

    @classmethod
    def from_config(cls, config: AppConfig, store) -> "SchedulingService":
        """Build a service whose store implements every port (e.g. InMemorySchedulingStore)."""
        return cls(
            working_hours=store,
            bookings=store,
            services=store,
            statistics=store,
            slot_generator=SlotGenerator(
                timezone=config.timezone,
                granularity_minutes=config.defaults.granularity_minutes,
            ),
            locks=StaffDayLocks(timeout_seconds=config.defaults.lock_timeout_seconds),
            commit_retries=config.defaults.commit_retries,
        )

    @property
    def validator(self) -> BookingValidator:
        return self._validator

    @property
    def timezone(self) -> str:
        return self._validator.timezone

    async def compute_availability(self, staff_id: str, service_id: str, day) -> AvailabilityResult:
        """
        Compute the bookable slots of a staff member for a service on a date.

        A day without working windows is reported as unavailable with a
        message rather than raised.
        """
        on_date = to_date(day)
        service = await self._services.get_service(service_id)
        windows, slots = await self._validator.free_slots(staff_id, service, on_date)

        if not windows:
            return AvailabilityResult(is_available=False, slots=[], message=NO_WORKDAY_MESSAGE)

        return AvailabilityResult(is_available=bool(slots), slots=slots)

    async def validate_and_create_booking(self, request: BookingRequest) -> Booking:
        """Validate the request against the free slots and commit it."""
        return await self._validator.create_booking(request)

    async def update_booking(self, booking_id: str, change: BookingChange) -> Booking:
        """Apply a change; moves of staff, service or time are re-validated."""
        booking = await self._bookings.get_booking(booking_id)
        return await self._validator.move_booking(booking, change)

    async def transition(self, booking_id: str, new_status, paid_amount=None) -> Booking:
        """
        Change a booking's status.

        The booking is re-read under its staff day lock, so a concurrent move
        cannot overwrite the new status. Entering ``completed`` updates the
        client's statistics exactly once.
        If that update fails the previous booking row is restored.

        Raises:
            BookingNotFound: If the booking does not exist
            InvalidTransition: If the change is not allowed
        """
        async with self._validator.hold_booking(booking_id) as current:
            result = self._lifecycle.transition(current, new_status, paid_amount)
            saved = await self._bookings.update_booking(result.booking)

            if result.effect is not None:
                try:
                    await self._apply_effect(result.effect)
                except Exception:
                    await self._bookings.update_booking(current)
                    logger.warning("Rolled back booking %s after failed statistics update", booking_id)
                    raise

        logger.info(
            "Booking %s: %s -> %s",
            booking_id, result.previous.value, saved.status.value,
        )
        return saved

    async def get_booking(self, booking_id: str) -> Booking:
        return await self._bookings.get_booking(booking_id)

    async def list_bookings(
        self,
        filters: Optional[BookingFilter] = None,
        page: int = 1,
        limit: int = 10,
    ) -> BookingPage:
        return await self._bookings.list_bookings(filters or BookingFilter(), page=page, limit=limit)

    async def delete_booking(self, booking_id: str) -> None:
        """Administrative removal; the engine does not validate deletes."""
        await self._bookings.get_booking(booking_id)
        await self._bookings.delete_booking(booking_id)
        logger.info("Deleted booking %s", booking_id)

    async def get_client_statistics(self, client_id: str) -> ClientStatistics:
        return await self._statistics.get_client_statistics(client_id)

    async def _apply_effect(self, effect: StatisticsEffect) -> ClientStatistics:
        stats = await self._statistics.update_client_statistics(
            effect.client_id,
            last_visit=effect.last_visit,
            amount_delta=effect.amount,
        )
        logger.info(
            "Client %s: visit #%s recorded, +%s spent",
            effect.client_id, stats.visit_count, effect.amount,
        )
        return stats

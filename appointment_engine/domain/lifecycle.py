"""
Booking status state machine.

scheduled -> confirmed | completed | cancelled | no_show
confirmed -> completed | cancelled | no_show
completed, cancelled and no_show are terminal.

Entering ``completed`` produces a ``StatisticsEffect`` which the caller
applies exactly once. The effect is derived from the previous and new status,
so repeating a completion can never produce a second effect.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, FrozenSet, Optional

from pendulum import DateTime

from .exceptions import InvalidTransition
from .models import Booking, BookingStatus, to_amount

ALLOWED_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.SCHEDULED: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.NO_SHOW,
    }),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.NO_SHOW,
    }),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}

INITIAL_STATUS = BookingStatus.SCHEDULED


@dataclass(frozen=True)
class StatisticsEffect:
    """Client statistics update owed by a transition into ``completed``."""
    client_id: str
    last_visit: DateTime
    amount: Decimal


@dataclass(frozen=True)
class TransitionResult:
    previous: BookingStatus
    booking: Booking
    effect: Optional[StatisticsEffect] = None


class AppointmentLifecycle:
    """Validates status changes and derives their side effects."""

    def __init__(self, transitions: Dict[BookingStatus, FrozenSet[BookingStatus]] = ALLOWED_TRANSITIONS):
        self._transitions = transitions

    def can_transition(self, current: BookingStatus, new_status: BookingStatus) -> bool:
        return new_status in self._transitions.get(current, frozenset())

    def initialize(self, booking: Booking) -> Booking:
        """Put a freshly created booking into its starting state."""
        return booking.with_changes(status=INITIAL_STATUS)

    def transition(self, booking: Booking, new_status, paid_amount=None) -> TransitionResult:
        """
        Move a booking to a new status.

        Args:
            booking: Current persisted booking
            new_status: Target status (enum or its string value)
            paid_amount: Amount paid at completion; recorded on the booking

        Returns:
            TransitionResult with the updated booking and an optional effect

        Raises:
            InvalidTransition: If the change is not in the transition table
        """
        target = BookingStatus.parse(new_status)
        previous = booking.status

        if not self.can_transition(previous, target):
            raise InvalidTransition(booking.id, previous, target)

        changes = {"status": target}
        amount = to_amount(paid_amount)
        if amount is not None:
            changes["paid"] = True
            changes["paid_amount"] = amount

        updated = booking.with_changes(**changes)
        return TransitionResult(
            previous=previous,
            booking=updated,
            effect=self.effect_for(previous, updated, amount),
        )

    @staticmethod
    def effect_for(
        previous: BookingStatus,
        updated: Booking,
        supplied_amount: Optional[Decimal],
    ) -> Optional[StatisticsEffect]:
        """Only a real change into ``completed`` owes a statistics update."""
        if updated.status is not BookingStatus.COMPLETED or previous is BookingStatus.COMPLETED:
            return None

        if supplied_amount is not None:
            amount = supplied_amount
        else:
            amount = updated.paid_amount or Decimal("0")

        return StatisticsEffect(
            client_id=updated.client_id,
            last_visit=updated.start,
            amount=amount,
        )

"""
Conflict detection between candidate slots and existing bookings.
"""

from typing import Iterable, List, Sequence

from .models import Booking, Slot


def overlaps(a, b) -> bool:
    """Half-open interval overlap: touching endpoints do not conflict."""
    return a.start < b.end and b.start < a.end


class ConflictDetector:
    """
    Removes candidate slots that collide with active bookings.

    Cancelled and no-show bookings never block a slot, even if a caller
    passes them in. Each booking's end comes from its own duration.
    """

    def filter(self, candidates: Iterable[Slot], existing: Sequence[Booking]) -> List[Slot]:
        """Return the candidates that overlap none of the existing bookings, in order."""
        blocking = self._active(existing)
        return [slot for slot in candidates if not self._collides(slot, blocking)]

    def conflicts(self, slot, existing: Sequence[Booking]) -> List[Booking]:
        """Return the active bookings a slot (or any interval) collides with."""
        return [booking for booking in self._active(existing) if overlaps(slot, booking)]

    @staticmethod
    def _active(bookings: Sequence[Booking]) -> List[Booking]:
        return [booking for booking in bookings if booking.is_active]

    @staticmethod
    def _collides(slot: Slot, blocking: Sequence[Booking]) -> bool:
        return any(overlaps(slot, booking) for booking in blocking)

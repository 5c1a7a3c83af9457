"""
Tests for conflict detection.
"""

import pendulum

from appointment_engine.domain.conflict_detector import ConflictDetector, overlaps
from appointment_engine.domain.models import Booking, BookingStatus, WorkingWindow
from appointment_engine.domain.slot_generator import SlotGenerator

MONDAY = pendulum.date(2024, 11, 25)


def _booking(booking_id: str, start: str, duration: int, status=BookingStatus.SCHEDULED) -> Booking:
    return Booking(
        id=booking_id,
        staff_id="ana",
        service_id="haircut",
        client_id="carla",
        start=pendulum.parse(start, tz="Europe/Berlin"),
        duration_minutes=duration,
        status=status,
    )


def _candidates(duration: int, start="09:00", end="12:00"):
    windows = [WorkingWindow(staff_id="ana", day_of_week=0, start_time=start, end_time=end)]
    return SlotGenerator(timezone="Europe/Berlin").generate(windows, MONDAY, duration).to_list()


class TestConflictDetector:
    """Tests for ConflictDetector."""

    def test_no_bookings_keeps_everything(self):
        candidates = _candidates(60)

        assert ConflictDetector().filter(candidates, []) == candidates

    def test_booking_removes_overlapping_candidates(self):
        """A 10:00-11:00 booking leaves only the slots before and after it."""
        existing = [_booking("b1", "2024-11-25 10:00", 60)]

        free = ConflictDetector().filter(_candidates(30), existing)

        assert [s.start.format("HH:mm") for s in free] == ["09:00", "09:30", "11:00", "11:30"]

    def test_touching_boundaries_do_not_conflict(self):
        """Slots ending at a booking's start or starting at its end are free."""
        existing = [_booking("b1", "2024-11-25 10:00", 60)]
        free = ConflictDetector().filter(_candidates(60), existing)
        starts = [s.start.format("HH:mm") for s in free]

        # 09:00-10:00 ends where the booking starts; 11:00-12:00 starts where it ends
        assert starts == ["09:00", "11:00"]

    def test_cancelled_and_no_show_do_not_block(self):
        existing = [
            _booking("b1", "2024-11-25 09:00", 60, status=BookingStatus.CANCELLED),
            _booking("b2", "2024-11-25 10:00", 60, status=BookingStatus.NO_SHOW),
        ]
        candidates = _candidates(60)

        assert ConflictDetector().filter(candidates, existing) == candidates

    def test_completed_bookings_still_block(self):
        existing = [_booking("b1", "2024-11-25 09:00", 60, status=BookingStatus.COMPLETED)]

        free = ConflictDetector().filter(_candidates(60), existing)

        assert free[0].start.format("HH:mm") == "10:00"

    def test_booking_end_uses_its_own_duration(self):
        """A 90 minute booking blocks until 11:30 even for 30 minute slots."""
        existing = [_booking("b1", "2024-11-25 10:00", 90)]

        free = ConflictDetector().filter(_candidates(30), existing)

        assert [s.start.format("HH:mm") for s in free] == ["09:00", "09:30", "11:30"]

    def test_no_returned_slot_overlaps_any_booking(self):
        existing = [
            _booking("b1", "2024-11-25 09:15", 30),
            _booking("b2", "2024-11-25 10:40", 25),
            _booking("b3", "2024-11-25 11:30", 45),
        ]

        for duration in (15, 30, 45, 60):
            free = ConflictDetector().filter(_candidates(duration), existing)
            assert all(not overlaps(slot, booking) for slot in free for booking in existing)

    def test_order_is_preserved(self):
        existing = [_booking("b1", "2024-11-25 10:00", 30)]

        free = ConflictDetector().filter(_candidates(30), existing)

        assert [s.start for s in free] == sorted(s.start for s in free)

    def test_conflicts_lists_blocking_bookings(self):
        existing = [
            _booking("b1", "2024-11-25 10:00", 60),
            _booking("b2", "2024-11-25 11:00", 30),
            _booking("b3", "2024-11-25 10:30", 30, status=BookingStatus.CANCELLED),
        ]
        request = _booking("new", "2024-11-25 10:15", 30)

        assert [b.id for b in ConflictDetector().conflicts(request, existing)] == ["b1"]

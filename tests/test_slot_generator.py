"""
Tests for slot generator.
"""

import pendulum
import pytest

from appointment_engine.domain.exceptions import InvalidInput
from appointment_engine.domain.models import WorkingWindow
from appointment_engine.domain.slot_generator import SlotGenerator

MONDAY = pendulum.date(2024, 11, 25)


def _starts(slots):
    return [slot.start.format("HH:mm") for slot in slots]


class TestSlotGenerator:
    """Tests for SlotGenerator."""

    def test_monday_morning_sixty_minutes(self):
        """09:00-12:00 with a 60 minute service offers a start every 30 minutes."""
        windows = [WorkingWindow(staff_id="ana", day_of_week="monday", start_time="09:00", end_time="12:00")]
        generator = SlotGenerator(timezone="Europe/Berlin")

        slots = generator.generate(windows, MONDAY, 60).to_list()

        assert _starts(slots) == ["09:00", "09:30", "10:00", "10:30", "11:00"]
        assert slots[-1].end == pendulum.parse("2024-11-25 12:00", tz="Europe/Berlin")
        assert all(slot.duration_minutes() == 60 for slot in slots)

    def test_step_is_granularity_not_duration(self):
        """A 45 minute service still advances by 30 minutes."""
        windows = [WorkingWindow(staff_id="ana", day_of_week=0, start_time="09:00", end_time="11:00")]
        generator = SlotGenerator(timezone="Europe/Berlin")

        slots = generator.generate(windows, MONDAY, 45).to_list()

        assert _starts(slots) == ["09:00", "09:30", "10:00"]

    def test_custom_granularity(self):
        windows = [WorkingWindow(staff_id="ana", day_of_week=0, start_time="09:00", end_time="10:00")]
        generator = SlotGenerator(timezone="Europe/Berlin", granularity_minutes=15)

        slots = generator.generate(windows, MONDAY, 30).to_list()

        assert _starts(slots) == ["09:00", "09:15", "09:30"]

    def test_duration_equal_to_window_gives_one_slot(self):
        """A duration that exactly fills the window yields exactly that slot."""
        windows = [WorkingWindow(staff_id="ana", day_of_week=0, start_time="09:00", end_time="09:50")]
        generator = SlotGenerator(timezone="Europe/Berlin")

        slots = generator.generate(windows, MONDAY, 50).to_list()

        assert len(slots) == 1
        assert slots[0].start == pendulum.parse("2024-11-25 09:00", tz="Europe/Berlin")
        assert slots[0].end == pendulum.parse("2024-11-25 09:50", tz="Europe/Berlin")

    def test_duration_longer_than_window_gives_nothing(self):
        windows = [WorkingWindow(staff_id="ana", day_of_week=0, start_time="09:00", end_time="10:00")]
        generator = SlotGenerator(timezone="Europe/Berlin")

        assert generator.generate(windows, MONDAY, 90).to_list() == []

    @pytest.mark.parametrize("duration", [15, 30, 45, 60, 120, 180])
    def test_every_slot_is_inside_its_window(self, duration):
        """Any duration that fits yields at least one slot and none spill over."""
        window = WorkingWindow(staff_id="ana", day_of_week=0, start_time="09:00", end_time="12:00")
        bounds = window.on_date(MONDAY, "Europe/Berlin")
        generator = SlotGenerator(timezone="Europe/Berlin")

        slots = generator.generate([window], MONDAY, duration).to_list()

        assert slots
        assert all(bounds.contains(slot) for slot in slots)

    def test_split_shift(self):
        """Slots never bridge the break between two windows."""
        windows = [
            WorkingWindow(staff_id="ana", day_of_week=0, start_time="09:00", end_time="10:00"),
            WorkingWindow(staff_id="ana", day_of_week=0, start_time="13:00", end_time="14:00"),
        ]
        generator = SlotGenerator(timezone="Europe/Berlin")

        slots = generator.generate(windows, MONDAY, 60).to_list()

        assert _starts(slots) == ["09:00", "13:00"]

    def test_windows_of_other_weekdays_are_skipped(self):
        windows = [WorkingWindow(staff_id="ana", day_of_week="tuesday", start_time="09:00", end_time="12:00")]
        generator = SlotGenerator(timezone="Europe/Berlin")

        assert generator.generate(windows, MONDAY, 30).to_list() == []

    def test_sequence_is_restartable(self):
        """Iterating the same sequence twice gives the same slots."""
        windows = [WorkingWindow(staff_id="ana", day_of_week=0, start_time="09:00", end_time="12:00")]
        sequence = SlotGenerator(timezone="Europe/Berlin").generate(windows, MONDAY, 60)

        assert list(sequence) == list(sequence)

    def test_slots_anchor_across_dst_change(self):
        """Working hours stay in local wall-clock time on the day clocks change."""
        sunday = pendulum.date(2024, 3, 31)
        windows = [WorkingWindow(staff_id="ana", day_of_week="sunday", start_time="09:00", end_time="10:00")]
        generator = SlotGenerator(timezone="Europe/Berlin")

        slots = generator.generate(windows, sunday, 30).to_list()

        assert _starts(slots) == ["09:00", "09:30"]
        assert slots[0].start.in_timezone("UTC").hour == 7

    def test_invalid_arguments(self):
        windows = [WorkingWindow(staff_id="ana", day_of_week=0, start_time="09:00", end_time="12:00")]

        with pytest.raises(InvalidInput):
            SlotGenerator(granularity_minutes=0)
        with pytest.raises(InvalidInput):
            SlotGenerator().generate(windows, MONDAY, 0)

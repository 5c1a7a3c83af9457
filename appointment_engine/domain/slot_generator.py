"""
Candidate slot generation.

Pure domain logic: turns a staff member's working windows for a date into
a discretised sequence of service-sized candidate slots. No I/O.
"""

from datetime import date, timedelta
from typing import Iterator, List, Sequence

from .exceptions import InvalidInput
from .models import Slot, Weekday, WorkingWindow

DEFAULT_GRANULARITY_MINUTES = 30


class SlotSequence:
    """
    Lazy, finite and restartable sequence of candidate slots.

    Every iteration recomputes the slots from the captured inputs, so the
    same sequence can be consumed any number of times.
    """

    def __init__(
        self,
        windows: Sequence[WorkingWindow],
        on_date: date,
        duration_minutes: int,
        granularity_minutes: int,
        timezone: str,
    ):
        self._windows = tuple(windows)
        self._on_date = on_date
        self._duration = timedelta(minutes=duration_minutes)
        self._step = timedelta(minutes=granularity_minutes)
        self._timezone = timezone

    def __iter__(self) -> Iterator[Slot]:
        weekday = Weekday.from_date(self._on_date)

        for window in self._windows:
            if window.day_of_week != weekday:
                continue

            bounds = window.on_date(self._on_date, self._timezone)
            cursor = bounds.start

            # The cursor advances by the granularity, not by the duration,
            # so candidates overlap each other for services longer than a step.
            while cursor + self._duration <= bounds.end:
                yield Slot(start=cursor, end=cursor + self._duration)
                cursor = cursor + self._step

    def to_list(self) -> List[Slot]:
        return list(self)


class SlotGenerator:
    """
    Generates candidate slots from working windows.

    Algorithm:
    1. Anchor each window of the target weekday on the target date
    2. Start a cursor at the window start
    3. While cursor + duration fits in the window, emit [cursor, cursor + duration)
    4. Advance the cursor by the granularity (30 minutes by default)

    Windows are processed in the order supplied; pass them sorted by start
    time for a globally ascending result.
    """

    def __init__(
        self,
        timezone: str = "UTC",
        granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
    ):
        if granularity_minutes <= 0:
            raise InvalidInput(
                f"Slot granularity must be positive, got {granularity_minutes}"
            )
        self.timezone = timezone
        self.granularity_minutes = granularity_minutes

    def generate(
        self,
        windows: Sequence[WorkingWindow],
        on_date: date,
        duration_minutes: int,
    ) -> SlotSequence:
        """
        Build the candidate slots for one date.

        Args:
            windows: Working windows of the staff member (other weekdays are skipped)
            on_date: Calendar date to generate slots for
            duration_minutes: Length of the requested service

        Returns:
            A SlotSequence in ascending order per window

        Raises:
            InvalidInput: If the duration is not positive
        """
        if duration_minutes <= 0:
            raise InvalidInput(f"Service duration must be positive, got {duration_minutes}")

        return SlotSequence(
            windows=windows,
            on_date=on_date,
            duration_minutes=duration_minutes,
            granularity_minutes=self.granularity_minutes,
            timezone=self.timezone,
        )

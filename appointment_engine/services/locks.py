"""
Per-(staff, date) advisory locks.

Reading a staff member's bookings and writing a new one must not interleave
with another request for the same staff member and day, otherwise both could
validate against the same free slot. ``StaffDayLocks`` serialises those
critical sections inside one process.

Locks exist only while someone holds or waits for them, so the registry does
not grow with every day ever booked.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import date
from typing import AsyncIterator, Dict, Iterable, Tuple

from ..domain.exceptions import BookingTimeout

logger = logging.getLogger(__name__)

LockKey = Tuple[str, date]


def lock_key(staff_id: str, day: date) -> LockKey:
    return (staff_id, date(day.year, day.month, day.day))


class StaffDayLocks:
    """Registry of asyncio locks keyed by ``(staff_id, date)``."""

    def __init__(self, timeout_seconds: float = 5.0) -> None:
        self.timeout_seconds = timeout_seconds
        self._locks: Dict[LockKey, asyncio.Lock] = {}
        self._users: Dict[LockKey, int] = {}

    def __len__(self) -> int:
        """Number of staff days currently held or waited for."""
        return len(self._locks)

    def is_locked(self, staff_id: str, day: date) -> bool:
        lock = self._locks.get(lock_key(staff_id, day))
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, staff_id: str, day: date, timeout: float | None = None) -> AsyncIterator[None]:
        """
        Hold the lock of one staff member's day.

        Raises:
            BookingTimeout: If the lock is not acquired within the timeout.
                Nothing has been read or written at that point.
        """
        async with self.hold_all([(staff_id, day)], timeout=timeout):
            yield

    @asynccontextmanager
    async def hold_all(self, keys: Iterable[Tuple[str, date]], timeout: float | None = None) -> AsyncIterator[None]:
        """
        Hold several staff days at once, e.g. the source and target of a move.

        Keys are deduplicated and acquired in sorted order so two holders of
        overlapping key sets cannot deadlock. The timeout covers the whole set.
        """
        wait = self.timeout_seconds if timeout is None else timeout
        ordered = sorted({lock_key(staff_id, day) for staff_id, day in keys})
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait

        async with AsyncExitStack() as stack:
            for key in ordered:
                remaining = max(deadline - loop.time(), 0)
                await stack.enter_async_context(self._acquire(key, remaining, wait))
            yield

    @asynccontextmanager
    async def _acquire(self, key: LockKey, remaining: float, wait: float) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1

        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=remaining)
            except asyncio.TimeoutError as exc:
                staff_id, day = key
                logger.warning("Lock wait for %s on %s timed out after %ss", staff_id, day, wait)
                raise BookingTimeout(staff_id, day, wait) from exc

            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

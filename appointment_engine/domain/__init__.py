"""
Domain layer - Pure scheduling logic without external dependencies.
"""

from .conflict_detector import ConflictDetector
from .lifecycle import AppointmentLifecycle, StatisticsEffect, TransitionResult
from .models import (
    AvailabilityResult,
    Booking,
    BookingChange,
    BookingRequest,
    BookingStatus,
    ClientStatistics,
    Service,
    Slot,
    TimeRange,
    Weekday,
    WorkingWindow,
)
from .slot_generator import SlotGenerator, SlotSequence

__all__ = [
    "AppointmentLifecycle",
    "AvailabilityResult",
    "Booking",
    "BookingChange",
    "BookingRequest",
    "BookingStatus",
    "ClientStatistics",
    "ConflictDetector",
    "Service",
    "Slot",
    "SlotGenerator",
    "SlotSequence",
    "StatisticsEffect",
    "TimeRange",
    "TransitionResult",
    "Weekday",
    "WorkingWindow",
]

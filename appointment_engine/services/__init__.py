"""
Service layer helpers that orchestrate repositories and domain logic.
"""

from .booking_validator import BookingValidator, ValidationOutcome, ValidationState
from .locks import StaffDayLocks
from .ports import (
    BookingFilter,
    BookingPage,
    BookingRepository,
    ClientStatisticsStore,
    ServiceCatalog,
    WorkingHoursProvider,
)
from .scheduling_service import SchedulingService

__all__ = [
    "BookingFilter",
    "BookingPage",
    "BookingRepository",
    "BookingValidator",
    "ClientStatisticsStore",
    "SchedulingService",
    "ServiceCatalog",
    "StaffDayLocks",
    "ValidationOutcome",
    "ValidationState",
    "WorkingHoursProvider",
]

"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability import AvailabilityService, BusySource
from .booking import BookingConfirmation, BookingRequest, BookingService, CalendarWriter
from .conflict_guard import ConflictGuard

__all__ = [
    "AvailabilityService",
    "BookingConfirmation",
    "BookingRequest",
    "BookingService",
    "BusySource",
    "CalendarWriter",
    "ConflictGuard",
]

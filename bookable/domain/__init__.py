"""
Domain layer - Pure business logic without external dependencies.
"""

from .exceptions import (
    BookingError,
    ConfigurationError,
    InvalidInput,
    SlotConflict,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from .models import (
    AvailabilityMap,
    AvailabilityOptions,
    BusinessHours,
    DaySlotSet,
    TimeRange,
    TimeSlot,
)
from .slot_generator import SlotGenerator

__all__ = [
    "AvailabilityMap",
    "AvailabilityOptions",
    "BookingError",
    "BusinessHours",
    "ConfigurationError",
    "DaySlotSet",
    "InvalidInput",
    "SlotConflict",
    "SlotGenerator",
    "TimeRange",
    "TimeSlot",
    "UpstreamTimeout",
    "UpstreamUnavailable",
]

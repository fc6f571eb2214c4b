"""
Core business logic for generating bookable appointment slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O).
"""

import logging
from datetime import date
from typing import Iterable, Iterator, List

from pendulum import DateTime

from .exceptions import InvalidInput
from .models import BusinessHours, DaySlotSet, TimeRange, TimeSlot, to_date

logger = logging.getLogger(__name__)

# Bookings must be requested at least this far ahead
LEAD_TIME_HOURS = 3

# Spacing between candidate start times
CADENCE_MINUTES = 30


class SlotGenerator:
    """
    Generates the bookable slots of one calendar day.

    Algorithm:
    1. Enumerate candidate starts every 30 minutes from opening until closing
    2. Drop candidates starting before now + 3 hours (lead time)
    3. Drop candidates starting after one hour before closing
    4. Drop candidates whose appointment window overlaps any busy interval
       padded by the buffer on both sides
    5. Return survivors in generation (chronological) order
    """

    def generate_day_slots(
        self,
        day: date,
        business_hours: BusinessHours,
        duration_minutes: int,
        buffer_minutes: int,
        busy_intervals: Iterable[TimeRange],
        now: DateTime
    ) -> DaySlotSet:
        """
        Compute the bookable slots for a day.

        Args:
            day: Calendar date to generate slots for
            business_hours: Opening window in the business timezone
            duration_minutes: Advertised appointment length
            buffer_minutes: Gap required around every busy interval
            busy_intervals: Busy ranges from the calendar, in any order
            now: Current instant, captured once by the caller

        Returns:
            DaySlotSet with slots in ascending start order (possibly empty)

        Raises:
            InvalidInput: If duration or buffer are out of range
        """
        if duration_minutes <= 0:
            raise InvalidInput("duration_minutes must be greater than zero")
        if buffer_minutes < 0:
            raise InvalidInput("buffer_minutes must not be negative")

        day = to_date(day)
        lead_cutoff = now.add(hours=LEAD_TIME_HOURS)
        last_start = business_hours.last_start(day)

        # Sorting lets the overlap scan stop early
        padded_busy = sorted(
            (busy.padded(buffer_minutes) for busy in busy_intervals),
            key=lambda r: r.start
        )

        logger.debug(
            "Generating slots for %s: lead-time cutoff %s, %d busy interval(s), "
            "footprint %d min (duration %d + buffer %d)",
            day, lead_cutoff, len(padded_busy),
            duration_minutes + buffer_minutes, duration_minutes, buffer_minutes
        )

        slots: List[TimeSlot] = []

        for start in self._candidate_starts(day, business_hours):
            if start < lead_cutoff:
                continue

            if start > last_start:
                continue

            candidate = TimeRange(start=start, end=start.add(minutes=duration_minutes))

            if self._conflicts(candidate, padded_busy):
                continue

            slots.append(TimeSlot(time_range=candidate))

        logger.debug("Found %d available slot(s) for %s", len(slots), day)

        return DaySlotSet(day=day, slots=slots)

    def _candidate_starts(
        self,
        day: date,
        business_hours: BusinessHours
    ) -> Iterator[DateTime]:
        """Yield start instants on the cadence grid while start < closing."""
        minute_of_day = business_hours.start_hour * 60
        closing_minute = business_hours.end_hour * 60

        while minute_of_day < closing_minute:
            yield business_hours.at(day, minute_of_day // 60, minute_of_day % 60)
            minute_of_day += CADENCE_MINUTES

    @staticmethod
    def _conflicts(candidate: TimeRange, padded_busy: List[TimeRange]) -> bool:
        """Check a candidate against busy ranges already sorted by start."""
        for busy in padded_busy:
            if busy.start >= candidate.end:
                break
            if candidate.overlaps(busy):
                return True
        return False

"""
Application services for computing appointment availability.

The service coordinates fetching busy intervals via a calendar client
adapter and delegates the per-day slot computation to the domain-level
``SlotGenerator``. The calendar dependency is expressed as a protocol so
the Google adapter, the mock adapter or a test stub can be plugged in.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Callable, List, Optional, Protocol

import pendulum
from pendulum import DateTime

from ..domain.exceptions import InvalidInput, UpstreamTimeout
from ..domain.models import (
    AvailabilityMap,
    AvailabilityOptions,
    BusinessHours,
    DaySlotSet,
    TimeRange,
    iter_dates,
    to_date,
)
from ..domain.slot_generator import SlotGenerator

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

# Stays below the default executor size so a fetch never waits for a worker
# thread while its timeout is running.
DEFAULT_MAX_CONCURRENT_FETCHES = 4


class BusySource(Protocol):
    """Protocol describing the calendar read capability needed by the services."""

    async def fetch_busy(
        self,
        resource_id: str,
        window_start: DateTime,
        window_end: DateTime,
    ) -> List[TimeRange]:
        """Return every busy interval intersecting the window."""


async def fetch_busy(
    source: BusySource,
    resource_id: str,
    window_start: DateTime,
    window_end: DateTime,
    timeout_seconds: float,
) -> List[TimeRange]:
    """
    Fetch busy intervals, bounded by a caller-side timeout.

    Raises:
        UpstreamTimeout: If the source does not answer in time
        UpstreamUnavailable: Propagated unchanged from the source
    """
    try:
        return await asyncio.wait_for(
            source.fetch_busy(resource_id, window_start, window_end),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        raise UpstreamTimeout(
            f"Busy-interval fetch for {resource_id} exceeded {timeout_seconds}s"
        ) from exc


class AvailabilityService:
    """
    Computes availability summaries and per-day slot detail.

    No state is shared between calls; each query fetches fresh busy data.
    """

    def __init__(
        self,
        busy_source: BusySource,
        slot_generator: Optional[SlotGenerator] = None,
        clock: Callable[[], DateTime] = pendulum.now,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_concurrent_fetches: int = DEFAULT_MAX_CONCURRENT_FETCHES,
    ) -> None:
        if max_concurrent_fetches < 1:
            raise InvalidInput("max_concurrent_fetches must be at least 1")
        self._busy_source = busy_source
        self._slot_generator = slot_generator or SlotGenerator()
        self._clock = clock
        self._timeout_seconds = timeout_seconds
        self._max_concurrent_fetches = max_concurrent_fetches

    async def calculate_availability(
        self,
        resource_id: str,
        options: AvailabilityOptions,
    ) -> AvailabilityMap:
        """
        Count bookable slots for every business day in the options' range.

        Weekend (excluded) days never appear as keys. Busy intervals are
        fetched once per day; at most ``max_concurrent_fetches`` fetches are in
        flight at a time and the map is assembled in chronological order.
        """
        now = self._clock()
        business_hours = options.business_hours

        business_days = [
            day for day in iter_dates(options.start_date, options.end_date)
            if business_hours.is_business_day(day)
        ]

        logger.debug(
            "Calculating availability for %s from %s to %s (%d business day(s))",
            resource_id, options.start_date, options.end_date, len(business_days),
        )

        fetch_slots = asyncio.Semaphore(self._max_concurrent_fetches)
        day_sets = await asyncio.gather(
            *(
                self._compute_day(
                    resource_id=resource_id,
                    day=day,
                    business_hours=business_hours,
                    duration_minutes=options.appointment_duration,
                    buffer_minutes=options.buffer_time,
                    now=now,
                    fetch_slots=fetch_slots,
                )
                for day in business_days
            ),
            return_exceptions=True,
        )

        # Fail the whole query on the first error; never return partial data
        for result in day_sets:
            if isinstance(result, BaseException):
                raise result

        availability: AvailabilityMap = {}
        for day_set in day_sets:
            availability[day_set.date_key] = len(day_set)

        return availability

    async def get_detailed_day_slots(
        self,
        resource_id: str,
        day: date,
        duration_minutes: int = 120,
        buffer_minutes: int = 45,
        business_hours: Optional[BusinessHours] = None,
    ) -> DaySlotSet:
        """
        Return the full slot list for one day.

        Excluded weekdays yield an empty set without contacting the calendar.
        """
        if duration_minutes <= 0:
            raise InvalidInput("duration_minutes must be greater than zero")
        if buffer_minutes < 0:
            raise InvalidInput("buffer_minutes must not be negative")

        day = to_date(day)
        business_hours = business_hours or BusinessHours()

        if not business_hours.is_business_day(day):
            logger.debug("%s is not a business day, no slots", day)
            return DaySlotSet(day=day)

        return await self._compute_day(
            resource_id=resource_id,
            day=day,
            business_hours=business_hours,
            duration_minutes=duration_minutes,
            buffer_minutes=buffer_minutes,
            now=self._clock(),
        )

    async def _compute_day(
        self,
        *,
        resource_id: str,
        day: date,
        business_hours: BusinessHours,
        duration_minutes: int,
        buffer_minutes: int,
        now: DateTime,
        fetch_slots: Optional[asyncio.Semaphore] = None,
    ) -> DaySlotSet:
        window = business_hours.day_window(day)

        if fetch_slots is None:
            busy = await self._fetch_window(resource_id, window)
        else:
            # Acquired outside the timeout so queueing is not counted against it
            async with fetch_slots:
                busy = await self._fetch_window(resource_id, window)

        return self._slot_generator.generate_day_slots(
            day=day,
            business_hours=business_hours,
            duration_minutes=duration_minutes,
            buffer_minutes=buffer_minutes,
            busy_intervals=busy,
            now=now,
        )

    async def _fetch_window(self, resource_id: str, window: TimeRange) -> List[TimeRange]:
        return await fetch_busy(
            self._busy_source,
            resource_id,
            window.start,
            window.end,
            self._timeout_seconds,
        )

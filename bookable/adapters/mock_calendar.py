"""
Mock calendar client for running without Google credentials.
"""

import logging
import random
from typing import Iterable, List, Optional

from pendulum import DateTime

from ..domain.models import (
    DEFAULT_TIMEZONE,
    AppointmentEvent,
    BusinessHours,
    TimeRange,
    iter_dates,
)

logger = logging.getLogger(__name__)


class MockCalendarClient:
    """
    Mock client that simulates a sparsely booked calendar.

    Busy blocks are generated from a seeded random source per calendar day,
    so the same seed and window always produce the same intervals. Static
    events can be supplied, and events created through ``create_event`` are
    kept in memory and reported as busy afterwards.
    """

    MAX_BLOCKS_PER_DAY = 3
    BLOCK_LENGTHS_MINUTES = (30, 60, 90)

    def __init__(
        self,
        seed: int = 0,
        timezone: str = DEFAULT_TIMEZONE,
        events: Optional[Iterable[TimeRange]] = None,
        generate: bool = True,
        business_hours: Optional[BusinessHours] = None
    ):
        """
        Initialize the mock client.

        Args:
            seed: Seed for the per-day random busy blocks
            timezone: Business timezone
            events: Optional fixed busy intervals
            generate: Set to False to report only fixed and created events
            business_hours: Window the random blocks are placed in
        """
        self.seed = seed
        self.timezone = timezone
        self.generate = generate
        self.business_hours = business_hours or BusinessHours(timezone=timezone)
        self.events: List[TimeRange] = list(events or [])
        self._created = 0

    async def fetch_busy(
        self,
        resource_id: str,
        window_start: DateTime,
        window_end: DateTime
    ) -> List[TimeRange]:
        """
        Return busy intervals that overlap the requested window.

        Args:
            resource_id: Ignored, there is a single mock calendar
            window_start: Start of the time window
            window_end: End of the time window
        """
        candidates = list(self.events)

        if self.generate:
            first_day = window_start.in_timezone(self.timezone).date()
            last_day = window_end.in_timezone(self.timezone).date()
            for day in iter_dates(first_day, last_day):
                candidates.extend(self._generated_blocks(day))

        busy = [
            event for event in candidates
            if event.start < window_end and event.end > window_start
        ]

        logger.debug("Mock calendar reports %d busy interval(s) for %s", len(busy), resource_id)
        return busy

    async def create_event(self, resource_id: str, event: AppointmentEvent) -> str:
        """Record the appointment as busy and return a mock event id."""
        self.events.append(event.time_range)
        self._created += 1
        return f"mock-event-{self._created}"

    def _generated_blocks(self, day) -> List[TimeRange]:
        """Seeded busy blocks for one day on the 30-minute grid."""
        if not self.business_hours.is_business_day(day):
            return []

        rng = random.Random(self.seed + day.toordinal())
        opening = self.business_hours.start_hour * 60
        closing = self.business_hours.end_hour * 60

        blocks: List[TimeRange] = []
        for _ in range(rng.randint(0, self.MAX_BLOCKS_PER_DAY)):
            minute = rng.randrange(opening, closing, 30)
            length = rng.choice(self.BLOCK_LENGTHS_MINUTES)
            start = self.business_hours.at(day, minute // 60, minute % 60)
            blocks.append(TimeRange(start=start, end=start.add(minutes=length)))

        return blocks

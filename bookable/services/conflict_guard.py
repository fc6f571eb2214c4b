"""
Booking-time re-validation of a previously offered slot.
"""

from __future__ import annotations

import logging

from pendulum import DateTime

from ..domain.exceptions import InvalidInput, SlotConflict
from ..domain.models import TimeRange
from .availability import DEFAULT_TIMEOUT_SECONDS, BusySource, fetch_busy

logger = logging.getLogger(__name__)


class ConflictGuard:
    """
    Checks that a slot is still free immediately before it is reserved.

    Busy intervals are padded by the same buffer the slot generator uses, so
    a slot that would now sit inside another booking's buffer is refused.
    Pass ``buffer_minutes=0`` for a plain overlap check.
    """

    def __init__(
        self,
        busy_source: BusySource,
        buffer_minutes: int = 45,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        if buffer_minutes < 0:
            raise InvalidInput("buffer_minutes must not be negative")
        self._busy_source = busy_source
        self._buffer_minutes = buffer_minutes
        self._timeout_seconds = timeout_seconds

    async def is_slot_available(
        self,
        resource_id: str,
        slot_start: DateTime,
        slot_end: DateTime,
    ) -> bool:
        """
        Return False if any busy interval overlaps the requested window.

        Raises:
            InvalidInput: If slot_start is not before slot_end
            UpstreamUnavailable: If the calendar cannot be read
        """
        requested = TimeRange(start=slot_start, end=slot_end)

        # Anything within one buffer of the slot can conflict
        window = requested.padded(self._buffer_minutes)
        busy_ranges = await fetch_busy(
            self._busy_source,
            resource_id,
            window.start,
            window.end,
            self._timeout_seconds,
        )

        for busy in busy_ranges:
            if requested.overlaps(busy.padded(self._buffer_minutes)):
                logger.info("Slot %s conflicts with busy interval %s", requested, busy)
                return False

        return True

    async def ensure_slot_available(
        self,
        resource_id: str,
        slot_start: DateTime,
        slot_end: DateTime,
    ) -> None:
        """
        Raise SlotConflict unless the slot is still free.
        """
        if not await self.is_slot_available(resource_id, slot_start, slot_end):
            raise SlotConflict(
                f"The slot {TimeRange(start=slot_start, end=slot_end)} is no longer available"
            )

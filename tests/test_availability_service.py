"""
Tests for the AvailabilityService orchestration layer.
"""

import asyncio
import time
from typing import Dict, List

import pendulum
import pytest

from bookable.domain.exceptions import InvalidInput, UpstreamTimeout, UpstreamUnavailable
from bookable.domain.models import AvailabilityOptions, BusinessHours, TimeRange
from bookable.services.availability import AvailabilityService

TZ = "America/Los_Angeles"
LONG_AGO = pendulum.parse("2024-01-01 00:00", tz=TZ)


class StubBusySource:
    """Minimal stub matching the BusySource protocol."""

    def __init__(self, busy: List[TimeRange] = None):
        self._busy = list(busy or [])
        self.calls: List[Dict[str, str]] = []

    async def fetch_busy(self, resource_id, window_start, window_end):
        self.calls.append(
            {
                "resource_id": resource_id,
                "start": window_start.to_datetime_string(),
                "end": window_end.to_datetime_string(),
            }
        )
        return [b for b in self._busy if b.start < window_end and b.end > window_start]


class FailingBusySource:
    async def fetch_busy(self, resource_id, window_start, window_end):
        raise UpstreamUnavailable("credential rejected")


class SlowBusySource:
    async def fetch_busy(self, resource_id, window_start, window_end):
        await asyncio.sleep(5)
        return []


class BlockingBusySource:
    """Answers from a worker thread, like the Google client, and tracks overlap."""

    def __init__(self, delay: float):
        self._delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_busy(self, resource_id, window_start, window_end):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.to_thread(time.sleep, self._delay)
        finally:
            self.in_flight -= 1
        return []


def _options(start: str, end: str, **kwargs) -> AvailabilityOptions:
    return AvailabilityOptions(
        start_date=pendulum.parse(start).date(),
        end_date=pendulum.parse(end).date(),
        business_hours=BusinessHours(timezone=TZ),
        **kwargs,
    )


def _service(source, now=LONG_AGO, **kwargs) -> AvailabilityService:
    return AvailabilityService(busy_source=source, clock=lambda: now, **kwargs)


class TestCalculateAvailability:
    """Range mode."""

    def test_week_spanning_weekend_has_five_keys(self):
        """Saturday and Sunday never appear in the map."""
        source = StubBusySource()
        service = _service(source)

        availability = asyncio.run(
            service.calculate_availability("cal-1", _options("2031-03-05", "2031-03-11"))
        )

        assert list(availability.keys()) == [
            "2031-03-05", "2031-03-06", "2031-03-07", "2031-03-10", "2031-03-11",
        ]
        assert all(count == 15 for count in availability.values())

    def test_fetches_once_per_business_day(self):
        """Each business day gets its own whole-day busy query."""
        source = StubBusySource()
        service = _service(source)

        asyncio.run(service.calculate_availability("cal-1", _options("2031-03-07", "2031-03-10")))

        assert sorted(call["start"] for call in source.calls) == [
            "2031-03-07 00:00:00",
            "2031-03-10 00:00:00",
        ]
        assert all(call["resource_id"] == "cal-1" for call in source.calls)
        assert all(call["end"].endswith("23:59:59") for call in source.calls)

    def test_counts_reflect_busy_intervals(self):
        """Busy time reduces the count for that day only."""
        busy = [
            TimeRange(
                start=pendulum.parse("2031-03-03 13:00", tz=TZ),
                end=pendulum.parse("2031-03-03 14:00", tz=TZ),
            )
        ]
        service = _service(StubBusySource(busy))

        availability = asyncio.run(
            service.calculate_availability("cal-1", _options("2031-03-03", "2031-03-04"))
        )

        assert availability == {"2031-03-03": 6, "2031-03-04": 15}

    def test_single_day_range(self):
        service = _service(StubBusySource())

        availability = asyncio.run(
            service.calculate_availability("cal-1", _options("2031-03-03", "2031-03-03"))
        )

        assert availability == {"2031-03-03": 15}

    def test_weekend_only_range_is_empty(self):
        source = StubBusySource()
        service = _service(source)

        availability = asyncio.run(
            service.calculate_availability("cal-1", _options("2031-03-08", "2031-03-09"))
        )

        assert availability == {}
        assert source.calls == []

    def test_now_is_captured_once_per_call(self):
        """The lead-time reference does not drift between days."""
        ticks = []

        def clock():
            ticks.append(1)
            return LONG_AGO

        service = AvailabilityService(busy_source=StubBusySource(), clock=clock)

        asyncio.run(service.calculate_availability("cal-1", _options("2031-03-03", "2031-03-14")))

        assert len(ticks) == 1

    def test_upstream_failure_propagates(self):
        """The core does not fall back or retry."""
        service = _service(FailingBusySource())

        with pytest.raises(UpstreamUnavailable, match="credential rejected"):
            asyncio.run(service.calculate_availability("cal-1", _options("2031-03-03", "2031-03-04")))

    def test_timeout_raises_upstream_timeout(self):
        """A slow calendar aborts the whole query instead of returning partial data."""
        service = _service(SlowBusySource(), timeout_seconds=0.01)

        with pytest.raises(UpstreamTimeout):
            asyncio.run(service.calculate_availability("cal-1", _options("2031-03-03", "2031-03-03")))

    def test_long_range_caps_concurrent_fetches(self):
        """Fetches for a long range are throttled, so none waits out its timeout in a queue."""
        source = BlockingBusySource(delay=0.05)
        service = _service(source, timeout_seconds=0.5, max_concurrent_fetches=3)

        availability = asyncio.run(
            service.calculate_availability("cal-1", _options("2031-03-03", "2031-05-30"))
        )

        assert len(availability) == 65
        assert source.max_in_flight == 3

    def test_invalid_fetch_cap_rejected(self):
        with pytest.raises(InvalidInput):
            _service(StubBusySource(), max_concurrent_fetches=0)

    def test_timeout_is_an_upstream_failure(self):
        service = _service(SlowBusySource(), timeout_seconds=0.01)

        with pytest.raises(UpstreamUnavailable):
            asyncio.run(service.get_detailed_day_slots("cal-1", pendulum.date(2031, 3, 3)))


class TestDetailedDaySlots:
    """Detail mode."""

    def test_defaults_match_range_mode(self):
        service = _service(StubBusySource())

        day_slots = asyncio.run(service.get_detailed_day_slots("cal-1", pendulum.date(2031, 3, 3)))

        assert len(day_slots) == 15
        assert day_slots[0].format_time() == "9:00 AM"
        assert day_slots[-1].format_time() == "4:00 PM"
        assert day_slots[0].time_range.duration_minutes() == 120

    def test_overrides(self):
        service = _service(StubBusySource())
        hours = BusinessHours(start_hour=10, end_hour=14, timezone=TZ)

        day_slots = asyncio.run(
            service.get_detailed_day_slots(
                "cal-1",
                pendulum.date(2031, 3, 3),
                duration_minutes=60,
                buffer_minutes=0,
                business_hours=hours,
            )
        )

        assert [s.format_time() for s in day_slots] == [
            "10:00 AM", "10:30 AM", "11:00 AM", "11:30 AM", "12:00 PM", "12:30 PM", "1:00 PM",
        ]

    def test_weekend_returns_empty_without_fetching(self):
        source = StubBusySource()
        service = _service(source)

        day_slots = asyncio.run(service.get_detailed_day_slots("cal-1", pendulum.date(2031, 3, 8)))

        assert len(day_slots) == 0
        assert source.calls == []

    @pytest.mark.parametrize("duration,buffer", [(0, 45), (-60, 45), (120, -1)])
    def test_invalid_minutes_rejected_before_fetching(self, duration, buffer):
        source = StubBusySource()
        service = _service(source)

        with pytest.raises(InvalidInput):
            asyncio.run(
                service.get_detailed_day_slots(
                    "cal-1", pendulum.date(2031, 3, 3), duration_minutes=duration, buffer_minutes=buffer
                )
            )

        assert source.calls == []

    def test_agrees_with_range_count(self):
        """Detail and range modes see the same slots for a day."""
        busy = [
            TimeRange(
                start=pendulum.parse("2031-03-04 10:00", tz=TZ),
                end=pendulum.parse("2031-03-04 10:30", tz=TZ),
            )
        ]
        service = _service(StubBusySource(busy))

        availability = asyncio.run(
            service.calculate_availability("cal-1", _options("2031-03-04", "2031-03-04"))
        )
        day_slots = asyncio.run(service.get_detailed_day_slots("cal-1", pendulum.date(2031, 3, 4)))

        assert availability["2031-03-04"] == len(day_slots)

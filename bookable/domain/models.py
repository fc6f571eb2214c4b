"""
Domain models for time ranges, business hours and bookable slots.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterator, List

import pendulum
from pendulum import Date, DateTime

from .exceptions import InvalidInput

DEFAULT_TIMEZONE = "America/Los_Angeles"

# Date key -> number of bookable slots on that day
AvailabilityMap = Dict[str, int]


def to_date(value: date) -> Date:
    """Normalize a date or datetime to a pendulum Date (calendar date only)."""
    if isinstance(value, date):
        return pendulum.date(value.year, value.month, value.day)
    raise InvalidInput(f"Expected a date, got {value!r}")


def date_key(day: date) -> str:
    """
    Format a calendar date as YYYY-MM-DD.

    Built from the year/month/day components of the local date so the key
    never shifts when the instant would fall on another day in UTC.
    """
    return f"{day.year:04d}-{day.month:02d}-{day.day:02d}"


def parse_date_key(value: str) -> Date:
    """Parse a YYYY-MM-DD string as a local calendar date."""
    try:
        year, month, day = (int(part) for part in value.split("-"))
        return pendulum.date(year, month, day)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"Invalid date format: {value!r} (expected YYYY-MM-DD)") from exc


def iter_dates(start: Date, end: Date) -> Iterator[Date]:
    """Yield every calendar date from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current = current.add(days=1)


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Used both for busy blocks read from the calendar and for candidate or
    confirmed appointment windows.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise InvalidInput(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another (touching endpoints do not count)."""
        return self.start < other.end and self.end > other.start

    def padded(self, minutes: int) -> "TimeRange":
        """Return a copy widened by the given number of minutes on both sides."""
        if minutes == 0:
            return self
        return TimeRange(
            start=self.start.subtract(minutes=minutes),
            end=self.end.add(minutes=minutes)
        )

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


@dataclass
class BusinessHours:
    """
    Daily opening window, half-open [start_hour, end_hour), in the business timezone.
    """
    start_hour: int = 9
    end_hour: int = 17
    timezone: str = DEFAULT_TIMEZONE
    exclude_weekdays: List[int] = field(default_factory=lambda: [5, 6])  # 0=Monday, 6=Sunday

    def __post_init__(self):
        for hour in (self.start_hour, self.end_hour):
            if not 0 <= hour <= 23:
                raise InvalidInput(f"Hour must be between 0 and 23, got {hour}")
        if self.end_hour <= self.start_hour:
            raise InvalidInput(
                f"Business hours must open before they close ({self.start_hour}-{self.end_hour})"
            )

    def is_business_day(self, day: date) -> bool:
        """Check if a given date falls on a business day."""
        return day.weekday() not in self.exclude_weekdays

    def at(self, day: date, hour: int, minute: int = 0) -> DateTime:
        """Build the local instant for a wall-clock time on the given day."""
        return pendulum.datetime(day.year, day.month, day.day, hour, minute, tz=self.timezone)

    def last_start(self, day: date) -> DateTime:
        """Latest instant an appointment may start: one hour before closing."""
        return self.at(day, self.end_hour - 1)

    def day_window(self, day: date) -> TimeRange:
        """The whole local calendar day, used as the busy-time query window."""
        start = self.at(day, 0)
        return TimeRange(start=start, end=start.end_of("day"))


@dataclass(frozen=True)
class TimeSlot:
    """
    A bookable appointment window. The buffer is not part of the window.
    """
    time_range: TimeRange

    @property
    def start(self) -> DateTime:
        return self.time_range.start

    @property
    def end(self) -> DateTime:
        return self.time_range.end

    @property
    def slot_id(self) -> str:
        """Stable identifier: epoch milliseconds of the start instant."""
        return str(int(self.start.timestamp() * 1000))

    def format_time(self) -> str:
        """Format the start for display, e.g. '9:00 AM'."""
        return self.start.format("h:mm A", locale="en")

    def to_payload(self) -> Dict[str, str]:
        return {
            "id": self.slot_id,
            "start": self.start.in_timezone("UTC").to_iso8601_string(),
            "end": self.end.in_timezone("UTC").to_iso8601_string(),
            "time": self.format_time(),
        }


@dataclass
class DaySlotSet:
    """
    Ordered, non-overlapping bookable slots for a single calendar day.
    """
    day: Date
    slots: List[TimeSlot] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.slots)

    def __iter__(self) -> Iterator[TimeSlot]:
        return iter(self.slots)

    def __getitem__(self, index: int) -> TimeSlot:
        return self.slots[index]

    @property
    def date_key(self) -> str:
        return date_key(self.day)

    def to_payload(self) -> Dict[str, Any]:
        return {"slots": [slot.to_payload() for slot in self.slots]}


@dataclass
class AvailabilityOptions:
    """
    Resolved options for an availability query.

    Every field has a concrete value once constructed; defaults are applied
    here so the slot generator never has to guess.
    """
    start_date: Date
    end_date: Date
    appointment_duration: int = 120  # minutes
    buffer_time: int = 45  # minutes
    business_hours: BusinessHours = field(default_factory=BusinessHours)

    def __post_init__(self):
        self.start_date = to_date(self.start_date)
        self.end_date = to_date(self.end_date)
        if self.start_date > self.end_date:
            raise InvalidInput(
                f"Start date {date_key(self.start_date)} is after end date {date_key(self.end_date)}"
            )
        if self.appointment_duration <= 0:
            raise InvalidInput("appointment_duration must be greater than zero")
        if self.buffer_time < 0:
            raise InvalidInput("buffer_time must not be negative")


@dataclass(frozen=True)
class AppointmentEvent:
    """A confirmed appointment to be written to the external calendar."""
    time_range: TimeRange
    summary: str
    description: str = ""
    location: str = ""
    attendee_email: str = ""


def availability_to_payload(availability: AvailabilityMap) -> List[Dict[str, Any]]:
    """Convert an availability map to the list form consumed by calendar grids."""
    return [
        {"date": key, "availableSlots": count}
        for key, count in availability.items()
    ]

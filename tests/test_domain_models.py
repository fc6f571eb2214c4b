"""
Tests for domain models.
"""

from datetime import date

import pendulum
import pytest

from bookable.domain.exceptions import InvalidInput
from bookable.domain.models import (
    AvailabilityOptions,
    BusinessHours,
    DaySlotSet,
    TimeRange,
    TimeSlot,
    availability_to_payload,
    date_key,
    iter_dates,
    parse_date_key,
)

TZ = "America/Los_Angeles"


def _dt(value: str):
    return pendulum.parse(value, tz=TZ)


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_create_valid_time_range(self):
        """Test creating a valid time range."""
        start = _dt("2024-11-25 09:00")
        end = _dt("2024-11-25 17:00")

        tr = TimeRange(start=start, end=end)

        assert tr.start == start
        assert tr.end == end
        assert tr.duration_minutes() == 480  # 8 hours

    def test_invalid_time_range_raises_error(self):
        """Non-chronological ranges are rejected as invalid input."""
        with pytest.raises(InvalidInput, match="Start time .* must be before end time"):
            TimeRange(start=_dt("2024-11-25 17:00"), end=_dt("2024-11-25 09:00"))

    def test_invalid_input_is_a_value_error(self):
        """InvalidInput keeps ValueError semantics for callers."""
        with pytest.raises(ValueError):
            TimeRange(start=_dt("2024-11-25 09:00"), end=_dt("2024-11-25 09:00"))

    def test_overlaps(self):
        """Test overlap detection."""
        tr1 = TimeRange(start=_dt("2024-11-25 09:00"), end=_dt("2024-11-25 12:00"))
        tr2 = TimeRange(start=_dt("2024-11-25 11:00"), end=_dt("2024-11-25 14:00"))
        tr3 = TimeRange(start=_dt("2024-11-25 14:00"), end=_dt("2024-11-25 17:00"))

        assert tr1.overlaps(tr2)
        assert tr2.overlaps(tr1)
        assert not tr1.overlaps(tr3)

    def test_touching_ranges_do_not_overlap(self):
        """Half-open ranges sharing an endpoint are not overlapping."""
        tr1 = TimeRange(start=_dt("2024-11-25 09:00"), end=_dt("2024-11-25 10:00"))
        tr2 = TimeRange(start=_dt("2024-11-25 10:00"), end=_dt("2024-11-25 11:00"))

        assert not tr1.overlaps(tr2)
        assert not tr2.overlaps(tr1)

    def test_padded(self):
        """Padding widens both ends by the buffer."""
        busy = TimeRange(start=_dt("2024-11-25 13:00"), end=_dt("2024-11-25 14:00"))

        padded = busy.padded(45)

        assert padded.start == _dt("2024-11-25 12:15")
        assert padded.end == _dt("2024-11-25 14:45")
        assert busy.padded(0) is busy


class TestBusinessHours:
    """Tests for BusinessHours model."""

    def test_is_business_day(self):
        """Test business day detection."""
        hours = BusinessHours(timezone=TZ)

        assert hours.is_business_day(pendulum.date(2024, 11, 25))  # Monday
        assert not hours.is_business_day(pendulum.date(2024, 11, 23))  # Saturday
        assert not hours.is_business_day(pendulum.date(2024, 11, 24))  # Sunday

    def test_local_instants_and_last_start(self):
        """Instants are built in the business timezone."""
        hours = BusinessHours(start_hour=9, end_hour=17, timezone=TZ)
        monday = pendulum.date(2024, 11, 25)

        assert hours.at(monday, 9) == _dt("2024-11-25 09:00")
        assert hours.at(monday, 9, 30).timezone_name == TZ
        assert hours.last_start(monday) == _dt("2024-11-25 16:00")

    def test_day_window_covers_whole_day(self):
        """The query window spans local midnight to end of day."""
        window = BusinessHours(timezone=TZ).day_window(pendulum.date(2024, 11, 25))

        assert window.start == _dt("2024-11-25 00:00")
        assert window.end.hour == 23
        assert window.end.minute == 59

    @pytest.mark.parametrize("start_hour,end_hour", [(17, 9), (9, 9), (9, 24)])
    def test_invalid_hours(self, start_hour, end_hour):
        """Closing must come after opening, within a single day."""
        with pytest.raises(InvalidInput):
            BusinessHours(start_hour=start_hour, end_hour=end_hour)


class TestDateKeys:
    """Tests for date key helpers."""

    def test_date_key_uses_local_components(self):
        """A late-evening instant keeps its local date."""
        late = _dt("2024-11-25 23:30")  # already 2024-11-26 in UTC

        assert date_key(late) == "2024-11-25"

    def test_date_key_pads(self):
        assert date_key(date(2025, 3, 7)) == "2025-03-07"

    def test_parse_date_key(self):
        assert parse_date_key("2025-03-07") == pendulum.date(2025, 3, 7)

    @pytest.mark.parametrize("value", ["2025-13-01", "not-a-date", "2025/03/07"])
    def test_parse_date_key_rejects_malformed(self, value):
        with pytest.raises(InvalidInput):
            parse_date_key(value)

    def test_iter_dates_inclusive(self):
        days = list(iter_dates(pendulum.date(2024, 11, 29), pendulum.date(2024, 12, 2)))

        assert [date_key(d) for d in days] == [
            "2024-11-29", "2024-11-30", "2024-12-01", "2024-12-02"
        ]


class TestAvailabilityOptions:
    """Tests for AvailabilityOptions defaults and validation."""

    def test_defaults(self):
        options = AvailabilityOptions(
            start_date=pendulum.date(2024, 11, 25),
            end_date=pendulum.date(2024, 11, 29)
        )

        assert options.appointment_duration == 120
        assert options.buffer_time == 45
        assert options.business_hours.start_hour == 9
        assert options.business_hours.end_hour == 17

    def test_accepts_plain_dates(self):
        options = AvailabilityOptions(start_date=date(2024, 11, 25), end_date=date(2024, 11, 25))

        assert options.start_date == pendulum.date(2024, 11, 25)

    def test_reversed_range_rejected(self):
        with pytest.raises(InvalidInput, match="after end date"):
            AvailabilityOptions(
                start_date=pendulum.date(2024, 11, 29),
                end_date=pendulum.date(2024, 11, 25)
            )

    @pytest.mark.parametrize("duration,buffer", [(0, 45), (-30, 45), (120, -1)])
    def test_invalid_minutes_rejected(self, duration, buffer):
        with pytest.raises(InvalidInput):
            AvailabilityOptions(
                start_date=pendulum.date(2024, 11, 25),
                end_date=pendulum.date(2024, 11, 25),
                appointment_duration=duration,
                buffer_time=buffer
            )


class TestSlotPresentation:
    """Tests for slot display and payload helpers."""

    def test_slot_payload(self):
        """Payload carries UTC instants, an epoch-ms id and a display time."""
        slot = TimeSlot(time_range=TimeRange(
            start=_dt("2024-11-25 09:00"),
            end=_dt("2024-11-25 11:00")
        ))

        payload = slot.to_payload()

        assert payload == {
            "id": "1732554000000",
            "start": "2024-11-25T17:00:00Z",
            "end": "2024-11-25T19:00:00Z",
            "time": "9:00 AM",
        }

    def test_format_time_afternoon(self):
        slot = TimeSlot(time_range=TimeRange(
            start=_dt("2024-11-25 15:30"),
            end=_dt("2024-11-25 17:30")
        ))

        assert slot.format_time() == "3:30 PM"

    def test_day_slot_set_behaves_like_a_sequence(self):
        slot = TimeSlot(time_range=TimeRange(
            start=_dt("2024-11-25 09:00"),
            end=_dt("2024-11-25 11:00")
        ))
        day_set = DaySlotSet(day=pendulum.date(2024, 11, 25), slots=[slot])

        assert len(day_set) == 1
        assert list(day_set) == [slot]
        assert day_set[0] is slot
        assert day_set.date_key == "2024-11-25"
        assert len(DaySlotSet(day=pendulum.date(2024, 11, 25))) == 0

    def test_availability_payload(self):
        payload = availability_to_payload({"2024-11-25": 3, "2024-11-26": 0})

        assert payload == [
            {"date": "2024-11-25", "availableSlots": 3},
            {"date": "2024-11-26", "availableSlots": 0},
        ]

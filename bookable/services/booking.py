"""
Guarded booking: re-validate the slot, then write the appointment.

The guard read and the calendar write are two separate calls, so a
concurrent booking can still slip in between them. The calendar write does
not enforce exclusivity; the guard only narrows that window.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Protocol

from pendulum import DateTime

from ..domain.exceptions import InvalidInput
from ..domain.models import AppointmentEvent, TimeRange, TimeSlot
from .conflict_guard import ConflictGuard

logger = logging.getLogger(__name__)

# Field length caps applied when trimming customer input
FIELD_LIMITS = {
    "first_name": 50,
    "last_name": 50,
    "phone": 20,
    "email": 254,
    "address": 500,
    "apt_suite": 50,
    "service_name": 100,
    "notes": 1000,
    "referral_source": 100,
}

REQUIRED_FIELDS = ("first_name", "last_name", "phone", "email", "address", "service_name")


class CalendarWriter(Protocol):
    """Protocol describing the calendar write capability."""

    async def create_event(self, resource_id: str, event: AppointmentEvent) -> str:
        """Create the event and return its id."""


@dataclass(frozen=True)
class BookingRequest:
    """Customer details and the slot they picked."""
    first_name: str
    last_name: str
    phone: str
    email: str
    address: str
    service_name: str
    slot_start: DateTime
    slot_end: DateTime
    apt_suite: str = ""
    notes: str = ""
    referral_source: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def full_address(self) -> str:
        if self.apt_suite:
            return f"{self.address}, {self.apt_suite}"
        return self.address

    def sanitized(self) -> "BookingRequest":
        """
        Trim and length-cap every text field, then check required ones.

        Raises:
            InvalidInput: If a required field is empty
        """
        cleaned = {
            name: (getattr(self, name) or "").strip()[:limit]
            for name, limit in FIELD_LIMITS.items()
        }
        missing = [name for name in REQUIRED_FIELDS if not cleaned[name]]
        if missing:
            raise InvalidInput(f"All required fields must be filled: {', '.join(missing)}")
        return replace(self, **cleaned)

    def to_event(self) -> AppointmentEvent:
        lines = [
            f"Service: {self.service_name}",
            f"Client: {self.full_name}",
            f"Phone: {self.phone}",
            f"Email: {self.email}",
            f"Address: {self.full_address}",
        ]
        if self.referral_source:
            lines.append(f"Referral: {self.referral_source}")
        if self.notes:
            lines.append(f"\nNotes: {self.notes}")

        return AppointmentEvent(
            time_range=TimeRange(start=self.slot_start, end=self.slot_end),
            summary=f"{self.service_name} - {self.full_name}",
            description="\n".join(lines),
            location=self.full_address,
            attendee_email=self.email,
        )


@dataclass(frozen=True)
class BookingConfirmation:
    event_id: str
    slot: TimeSlot
    request: BookingRequest


class BookingService:
    """
    Reserves a slot on the external calendar after re-checking it is free.
    """

    def __init__(self, guard: ConflictGuard, writer: CalendarWriter) -> None:
        self._guard = guard
        self._writer = writer

    async def book(self, resource_id: str, request: BookingRequest) -> BookingConfirmation:
        """
        Validate the request, run the conflict guard and write the event.

        Raises:
            InvalidInput: If customer fields or the slot window are invalid
            SlotConflict: If the slot was taken since it was offered
            UpstreamUnavailable: If the calendar read or write fails
        """
        request = request.sanitized()
        event = request.to_event()

        await self._guard.ensure_slot_available(
            resource_id, request.slot_start, request.slot_end
        )

        event_id = await self._writer.create_event(resource_id, event)
        logger.info("Booked %s for %s (event %s)", event.time_range, request.full_name, event_id)

        return BookingConfirmation(
            event_id=event_id,
            slot=TimeSlot(time_range=event.time_range),
            request=request,
        )

"""
Google Calendar API client for reading free/busy data and writing bookings.
"""

import asyncio
import logging
from typing import Any, Dict, List
from urllib.parse import quote

import pendulum
import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials
from pendulum import DateTime

from ..config import GoogleCredentials
from ..domain.exceptions import UpstreamTimeout, UpstreamUnavailable
from ..domain.models import DEFAULT_TIMEZONE, AppointmentEvent, TimeRange

logger = logging.getLogger(__name__)


class GoogleAuthenticator:
    """
    Builds an authorized HTTP session from a long-lived OAuth refresh token.

    The access token is obtained lazily: the first request made through the
    session exchanges the refresh token, and later requests refresh it again
    whenever it expires.
    """

    TOKEN_URI = "https://oauth2.googleapis.com/token"

    # Required scope for free/busy reads and event inserts
    SCOPES = ["https://www.googleapis.com/auth/calendar"]

    def __init__(self, credentials: GoogleCredentials):
        self.credentials = credentials

    def build_credentials(self) -> Credentials:
        """Create google-auth user credentials holding only the refresh token."""
        return Credentials(
            token=None,
            refresh_token=self.credentials.refresh_token,
            token_uri=self.TOKEN_URI,
            client_id=self.credentials.client_id,
            client_secret=self.credentials.client_secret,
            scopes=self.SCOPES
        )

    def authorized_session(self) -> AuthorizedSession:
        """Return a requests session that attaches and refreshes the bearer token."""
        return AuthorizedSession(self.build_credentials())


class GoogleCalendarClient:
    """
    Client for Google Calendar v3 operations.

    Uses the /freeBusy endpoint to fetch busy intervals and the events
    endpoint to insert confirmed appointments. Blocking HTTP calls run in a
    worker thread so callers can await them.
    """

    API_ENDPOINT = "https://www.googleapis.com/calendar/v3"

    def __init__(
        self,
        session: requests.Session,
        timezone: str = DEFAULT_TIMEZONE,
        timeout: float = 10.0
    ):
        """
        Initialize the Google Calendar client.

        Args:
            session: Authorized session (see GoogleAuthenticator)
            timezone: Business timezone busy intervals are converted to
            timeout: Per-request timeout in seconds
        """
        self.session = session
        self.timezone = timezone
        self.timeout = timeout

    async def fetch_busy(
        self,
        resource_id: str,
        window_start: DateTime,
        window_end: DateTime
    ) -> List[TimeRange]:
        """
        Get every busy interval intersecting [window_start, window_end].

        Raises:
            UpstreamTimeout: If the request times out
            UpstreamUnavailable: If the request fails or is rejected
        """
        return await asyncio.to_thread(
            self.query_free_busy, resource_id, window_start, window_end
        )

    async def create_event(self, resource_id: str, event: AppointmentEvent) -> str:
        """
        Insert an appointment into the calendar and notify attendees.

        Returns:
            The id of the created event

        Raises:
            UpstreamUnavailable: If the write fails
        """
        return await asyncio.to_thread(self.insert_event, resource_id, event)

    def query_free_busy(
        self,
        resource_id: str,
        window_start: DateTime,
        window_end: DateTime
    ) -> List[TimeRange]:
        """Blocking free/busy query."""
        url = f"{self.API_ENDPOINT}/freeBusy"

        payload = {
            "timeMin": window_start.in_timezone("UTC").to_iso8601_string(),
            "timeMax": window_end.in_timezone("UTC").to_iso8601_string(),
            "timeZone": self.timezone,
            "items": [{"id": resource_id}]
        }

        data = self._request("POST", url, json=payload)
        busy = self._parse_free_busy_response(data, resource_id)

        logger.debug(
            "Fetched %d busy interval(s) for %s between %s and %s",
            len(busy), resource_id, window_start, window_end
        )
        return busy

    def insert_event(self, resource_id: str, event: AppointmentEvent) -> str:
        """Blocking event insert."""
        url = f"{self.API_ENDPOINT}/calendars/{quote(resource_id, safe='')}/events"

        data = self._request(
            "POST",
            url,
            params={"sendUpdates": "all"},
            json=self._event_body(event)
        )

        event_id = data.get("id")
        if not event_id:
            raise UpstreamUnavailable("Google Calendar did not return an event id")

        logger.info("Created calendar event %s for %s", event_id, event.time_range)
        return event_id

    def get_calendar(self, resource_id: str) -> Dict[str, Any]:
        """
        Fetch calendar metadata; used to verify the credential can reach the calendar.

        Raises:
            UpstreamUnavailable: If the calendar cannot be read
        """
        url = f"{self.API_ENDPOINT}/calendars/{quote(resource_id, safe='')}"
        return self._request("GET", url)

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response.json()

        except requests.exceptions.Timeout as e:
            raise UpstreamTimeout(
                f"Google Calendar did not respond within {self.timeout}s"
            ) from e

        except (requests.exceptions.RequestException, GoogleAuthError, ValueError) as e:
            raise UpstreamUnavailable(f"Google Calendar request failed: {e}") from e

    def _parse_free_busy_response(
        self,
        response_data: Dict[str, Any],
        resource_id: str
    ) -> List[TimeRange]:
        """
        Parse the freeBusy API response into our domain model.

        Response format:
        {
            "calendars": {
                "calendar-id": {
                    "errors": [{"domain": "global", "reason": "notFound"}],
                    "busy": [
                        {"start": "2024-11-25T17:00:00Z", "end": "2024-11-25T18:00:00Z"}
                    ]
                }
            }
        }
        """
        calendar = response_data.get("calendars", {}).get(resource_id)

        if calendar is None:
            logger.warning("freeBusy response did not include calendar %s", resource_id)
            return []

        errors = calendar.get("errors")
        if errors:
            reasons = ", ".join(error.get("reason", "unknown") for error in errors)
            raise UpstreamUnavailable(
                f"Google Calendar rejected free/busy query for {resource_id}: {reasons}"
            )

        busy_ranges: List[TimeRange] = []

        for item in calendar.get("busy", []):
            try:
                busy_ranges.append(TimeRange(
                    start=self._parse_datetime(item["start"]),
                    end=self._parse_datetime(item["end"])
                ))
            except (KeyError, ValueError) as e:
                raise UpstreamUnavailable(f"Malformed busy interval {item!r}: {e}") from e

        return busy_ranges

    def _parse_datetime(self, datetime_str: str) -> DateTime:
        """
        Parse an RFC 3339 string into a DateTime in the business timezone.
        """
        dt = pendulum.parse(datetime_str)

        if isinstance(dt, DateTime):
            return dt.in_timezone(self.timezone)

        raise ValueError(f"Could not parse datetime: {datetime_str}")

    def _event_body(self, event: AppointmentEvent) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "summary": event.summary,
            "description": event.description,
            "location": event.location,
            "start": {
                "dateTime": event.time_range.start.in_timezone(self.timezone).to_iso8601_string(),
                "timeZone": self.timezone
            },
            "end": {
                "dateTime": event.time_range.end.in_timezone(self.timezone).to_iso8601_string(),
                "timeZone": self.timezone
            },
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "email", "minutes": 24 * 60},
                    {"method": "popup", "minutes": 30}
                ]
            }
        }
        if event.attendee_email:
            body["attendees"] = [{"email": event.attendee_email}]
        return body

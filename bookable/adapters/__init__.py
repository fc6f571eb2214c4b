"""
Adapters layer - External integrations (Google Calendar API).
"""

from .factory import build_calendar_client
from .google_calendar import GoogleAuthenticator, GoogleCalendarClient
from .mock_calendar import MockCalendarClient

__all__ = [
    "GoogleAuthenticator",
    "GoogleCalendarClient",
    "MockCalendarClient",
    "build_calendar_client",
]

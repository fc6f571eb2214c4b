"""
Calendar client factory.

Picks the busy-interval source once, at startup, from configuration.
"""

import logging
from typing import Mapping, Optional, Union

from ..config import AppConfig, GoogleCredentials
from ..domain.exceptions import ConfigurationError
from .google_calendar import GoogleAuthenticator, GoogleCalendarClient
from .mock_calendar import MockCalendarClient

logger = logging.getLogger(__name__)

CalendarClient = Union[GoogleCalendarClient, MockCalendarClient]


def build_calendar_client(
    config: AppConfig,
    environ: Optional[Mapping[str, str]] = None
) -> CalendarClient:
    """
    Build the calendar client selected by ``config.calendar.backend``.

    Args:
        config: Application configuration
        environ: Environment to read credentials from (defaults to os.environ)

    Returns:
        GoogleCalendarClient or MockCalendarClient

    Raises:
        ConfigurationError: If the backend is unknown or credentials are missing
    """
    backend = config.calendar.backend

    if backend == "mock":
        logger.info("Using mock calendar data (seed=%d)", config.calendar.mock_seed)
        return MockCalendarClient(
            seed=config.calendar.mock_seed,
            timezone=config.timezone,
            business_hours=config.business_hours()
        )

    if backend == "google":
        credentials = GoogleCredentials.from_env(
            environ,
            require_calendar_id=not config.calendar.calendar_id
        )
        session = GoogleAuthenticator(credentials).authorized_session()
        logger.info("Using Google Calendar")
        return GoogleCalendarClient(
            session=session,
            timezone=config.timezone,
            timeout=config.calendar.request_timeout_seconds
        )

    raise ConfigurationError(f"Unsupported calendar backend: {backend}")

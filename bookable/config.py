"""
Configuration management using Pydantic models and YAML files.
"""

import os
from datetime import date
from pathlib import Path
from typing import Dict, List, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.exceptions import ConfigurationError
from .domain.models import DEFAULT_TIMEZONE, AvailabilityOptions, BusinessHours

CREDENTIAL_ENV_VARS = {
    "client_id": "GOOGLE_CLIENT_ID",
    "client_secret": "GOOGLE_CLIENT_SECRET",
    "refresh_token": "GOOGLE_REFRESH_TOKEN",
    "calendar_id": "GOOGLE_CALENDAR_ID",
}

# How many leading characters of each variable check-env may reveal
_MASK_PREFIX = {
    "GOOGLE_CALENDAR_ID": None,
    "GOOGLE_CLIENT_ID": 15,
    "GOOGLE_CLIENT_SECRET": 10,
    "GOOGLE_REFRESH_TOKEN": 10,
}


class DefaultsConfig(BaseModel):
    """Default appointment settings."""
    appointment_duration: int = 120
    buffer_time: int = 45
    start_hour: int = 9
    end_hour: int = 17
    range_days: int = 30

    @field_validator("appointment_duration", "range_days")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure durations are positive."""
        if value <= 0:
            raise ValueError("value must be greater than zero")
        return value

    @field_validator("buffer_time")
    @classmethod
    def validate_buffer(cls, value: int) -> int:
        if value < 0:
            raise ValueError("buffer_time must not be negative")
        return value

    @field_validator("start_hour", "end_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @model_validator(mode="after")
    def validate_hours_order(self) -> "DefaultsConfig":
        """Ensure the business day opens before it closes."""
        if self.end_hour <= self.start_hour:
            raise ValueError("end_hour must be later than start_hour")
        return self


class CalendarConfig(BaseModel):
    """Which busy-interval source to use and how to reach it."""
    backend: Literal["google", "mock"] = "google"
    calendar_id: Optional[str] = None
    mock_seed: int = 0
    request_timeout_seconds: float = 10.0

    @field_validator("request_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("request_timeout_seconds must be greater than zero")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = DEFAULT_TIMEZONE
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)
    exclude_days: List[int] = Field(default_factory=lambda: [5, 6])  # Saturday, Sunday

    @field_validator("exclude_days")
    @classmethod
    def validate_exclude_days(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"exclude_days must be between 0 and 6, got {invalid_days}")
        # Preserve order while removing duplicates
        seen: set[int] = set()
        deduped: List[int] = []
        for day in value:
            if day not in seen:
                deduped.append(day)
                seen.add(day)
        return deduped

    def business_hours(self) -> BusinessHours:
        """Build the business-hours window from the configured defaults."""
        return BusinessHours(
            start_hour=self.defaults.start_hour,
            end_hour=self.defaults.end_hour,
            timezone=self.timezone,
            exclude_weekdays=list(self.exclude_days)
        )

    def availability_options(
        self,
        start_date: date,
        end_date: date,
        duration_minutes: Optional[int] = None,
        buffer_minutes: Optional[int] = None
    ) -> AvailabilityOptions:
        """
        Resolve an availability query against the configured defaults.

        Args:
            start_date: First calendar date (inclusive)
            end_date: Last calendar date (inclusive)
            duration_minutes: Override for the appointment duration
            buffer_minutes: Override for the buffer time

        Returns:
            Fully populated AvailabilityOptions

        Raises:
            InvalidInput: If the range or overrides are invalid
        """
        return AvailabilityOptions(
            start_date=start_date,
            end_date=end_date,
            appointment_duration=(
                duration_minutes if duration_minutes is not None
                else self.defaults.appointment_duration
            ),
            buffer_time=(
                buffer_minutes if buffer_minutes is not None
                else self.defaults.buffer_time
            ),
            business_hours=self.business_hours()
        )

    def resolve_calendar_id(self, environ: Optional[Mapping[str, str]] = None) -> str:
        """
        Get the calendar resource id from config or the environment.

        Raises:
            ConfigurationError: If neither provides one
        """
        env = os.environ if environ is None else environ
        calendar_id = self.calendar.calendar_id or env.get(CREDENTIAL_ENV_VARS["calendar_id"], "")
        if not calendar_id:
            raise ConfigurationError(
                "No calendar id configured. Set calendar.calendar_id in config.yaml "
                f"or the {CREDENTIAL_ENV_VARS['calendar_id']} environment variable."
            )
        return calendar_id

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


class GoogleCredentials(BaseModel):
    """OAuth credential bundle for the Google Calendar account."""
    client_id: str
    client_secret: str
    refresh_token: str
    calendar_id: str = ""

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        require_calendar_id: bool = True
    ) -> "GoogleCredentials":
        """
        Read the credential bundle from environment variables.

        Presence is validated before any network call is attempted.

        Raises:
            ConfigurationError: Naming every missing variable
        """
        env = os.environ if environ is None else environ
        required = dict(CREDENTIAL_ENV_VARS)
        if not require_calendar_id:
            required.pop("calendar_id")

        missing = [var for var in required.values() if not env.get(var)]
        if missing:
            raise ConfigurationError(
                f"Missing required Google Calendar credentials: {', '.join(missing)}"
            )

        return cls(**{field: env.get(var, "") for field, var in CREDENTIAL_ENV_VARS.items()})


def credential_status(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Dict[str, object]]:
    """
    Report which credential variables are set, with masked previews.

    Returns:
        Mapping of variable name -> {"present": bool, "masked": str}
    """
    env = os.environ if environ is None else environ
    status: Dict[str, Dict[str, object]] = {}

    for var in CREDENTIAL_ENV_VARS.values():
        value = env.get(var, "")
        prefix = _MASK_PREFIX[var]
        if not value:
            masked = "(not set)"
        elif prefix is None:
            masked = value
        else:
            masked = f"{value[:prefix]}..."
        status[var] = {"present": bool(value), "masked": masked}

    return status


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """
    Load the config file if one exists, otherwise fall back to built-in defaults.

    An explicitly given path must exist.
    """
    if config_path is not None:
        return AppConfig.load_from_yaml(config_path)

    default_path = get_default_config_path()
    if default_path.exists():
        return AppConfig.load_from_yaml(default_path)

    return AppConfig()

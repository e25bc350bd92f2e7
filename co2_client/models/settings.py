"""
Monitor settings - user-tunable thresholds and refresh policy
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


# Lower bound for the auto-refresh interval, milliseconds
MIN_REFRESH_INTERVAL_MS = 5000


class MonitorSettings(BaseModel):
    """User configuration. Persisted with camelCase keys."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    low_threshold: int = 800  # ppm
    high_threshold: int = 1200  # ppm
    notifications_enabled: bool = True
    auto_refresh: bool = True
    refresh_interval: int = 10000  # ms

    def to_record(self) -> dict:
        """Full persisted representation (every field present)."""
        return self.model_dump(by_alias=True)


class MonitorSettingsUpdate(BaseModel):
    """Partial settings update. Only fields that were sent are applied."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    low_threshold: int | None = None
    high_threshold: int | None = None
    notifications_enabled: bool | None = None
    auto_refresh: bool | None = None
    refresh_interval: int | None = None

    def changes(self) -> dict:
        """Field name -> value for the fields present in the request."""
        return self.model_dump(exclude_unset=True)


class SettingsValidationError(ValueError):
    """Settings violate threshold ordering or the refresh interval floor."""


def validate_settings(candidate: MonitorSettings) -> None:
    """Check business rules before a settings update is submitted.

    The settings store trusts its caller, so every entry point that accepts
    user input must run this first.
    """
    if candidate.low_threshold >= candidate.high_threshold:
        raise SettingsValidationError("Low threshold must be less than high threshold.")

    if candidate.auto_refresh and candidate.refresh_interval < MIN_REFRESH_INTERVAL_MS:
        raise SettingsValidationError("Refresh interval must be at least 5 seconds.")

"""
Settings Store - loads, merges and persists monitor settings
"""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from co2_client.models.settings import MonitorSettings

logger = logging.getLogger(__name__)

SETTINGS_KEY = "co2_settings"


class SettingsStore:
    """Merge-and-persist primitive for MonitorSettings.

    No business rules are checked here; callers validate before calling
    update() (see validate_settings).
    """

    def __init__(self, storage):
        self.storage = storage
        self.current = MonitorSettings()

    async def load(self) -> MonitorSettings:
        """Overlay persisted values onto the defaults."""
        try:
            saved = await self.storage.get(SETTINGS_KEY)
        except (SQLAlchemyError, OSError, ValueError) as e:
            logger.error(f"Error loading settings: {e}")
            saved = None

        if isinstance(saved, dict):
            try:
                self.current = MonitorSettings.model_validate(saved)
            except ValidationError as e:
                logger.error(f"Stored settings are invalid, using defaults: {e}")
                self.current = MonitorSettings()
        elif saved is not None:
            logger.error(f"Stored settings have unexpected type {type(saved).__name__}, using defaults")

        return self.current

    async def update(self, partial: Mapping[str, Any]) -> MonitorSettings:
        """Merge partial into the current settings and persist the result."""
        merged = self.current.model_dump()
        merged.update(_field_names(partial))
        self.current = MonitorSettings.model_validate(merged)

        try:
            await self.storage.set(SETTINGS_KEY, self.current.to_record())
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Error saving settings: {e}")

        return self.current


def _field_names(partial: Mapping[str, Any]) -> dict[str, Any]:
    """Accept both camelCase (persisted form) and snake_case keys."""
    aliases = {
        field.alias: name
        for name, field in MonitorSettings.model_fields.items()
        if field.alias
    }
    result = {}
    for key, value in partial.items():
        name = aliases.get(key, key)
        if name not in MonitorSettings.model_fields:
            logger.warning(f"Ignoring unknown setting: {key}")
            continue
        result[name] = value
    return result

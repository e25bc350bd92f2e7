"""
Tests for monitor settings: store merge/persist and caller-side validation.
"""

import asyncio

import pytest
from pydantic import ValidationError

from co2_client.models.settings import (
    MonitorSettings,
    SettingsValidationError,
    validate_settings,
)
from co2_client.services.settings_store import SETTINGS_KEY, SettingsStore
from co2_client.services.storage import MemoryStore


class FailingStore:
    async def get(self, key):
        raise OSError("storage unavailable")

    async def set(self, key, value):
        raise OSError("storage unavailable")


class TestLoad:
    """Tests for SettingsStore.load()."""

    def test_defaults_when_nothing_saved(self, memory_store):
        loaded = asyncio.run(SettingsStore(memory_store).load())

        assert loaded == MonitorSettings()
        assert loaded.low_threshold == 800
        assert loaded.high_threshold == 1200
        assert loaded.refresh_interval == 10000

    def test_missing_keys_fall_back_to_defaults(self):
        """Test that an older record without new fields still loads."""
        store = SettingsStore(MemoryStore({SETTINGS_KEY: {"highThreshold": 1500}}))

        loaded = asyncio.run(store.load())

        assert loaded.high_threshold == 1500
        assert loaded.low_threshold == 800
        assert loaded.notifications_enabled is True

    def test_corrupted_record_uses_defaults(self):
        store = SettingsStore(MemoryStore({SETTINGS_KEY: {"lowThreshold": "lots"}}))
        assert asyncio.run(store.load()) == MonitorSettings()

    def test_read_failure_uses_defaults(self):
        assert asyncio.run(SettingsStore(FailingStore()).load()) == MonitorSettings()


class TestUpdate:
    """Tests for SettingsStore.update()."""

    def test_partial_update_preserves_other_fields(self, memory_store):
        """Test that only the given field changes."""
        store = SettingsStore(memory_store)

        async def runner():
            await store.load()
            return await store.update({"lowThreshold": 900})

        updated = asyncio.run(runner())

        assert updated.low_threshold == 900
        assert updated.high_threshold == 1200
        assert updated.notifications_enabled is True

    def test_update_persists_full_record(self, memory_store):
        """Test that the merged record is written with every field."""
        store = SettingsStore(memory_store)

        async def runner():
            await store.update({"notifications_enabled": False})
            return await memory_store.get(SETTINGS_KEY)

        saved = asyncio.run(runner())

        assert saved == {
            "lowThreshold": 800,
            "highThreshold": 1200,
            "notificationsEnabled": False,
            "autoRefresh": True,
            "refreshInterval": 10000,
        }

    def test_store_does_not_validate_business_rules(self, memory_store):
        """Test that the store accepts ordering violations; callers check them."""
        updated = asyncio.run(SettingsStore(memory_store).update({"lowThreshold": 2000}))
        assert updated.low_threshold == 2000

    def test_unknown_keys_are_ignored(self, memory_store):
        updated = asyncio.run(SettingsStore(memory_store).update({"theme": "dark"}))
        assert updated == MonitorSettings()

    def test_wrong_type_raises(self, memory_store):
        with pytest.raises(ValidationError):
            asyncio.run(SettingsStore(memory_store).update({"highThreshold": "very high"}))

    def test_write_failure_still_updates_memory(self):
        store = SettingsStore(FailingStore())
        updated = asyncio.run(store.update({"highThreshold": 1400}))
        assert updated.high_threshold == 1400
        assert store.current.high_threshold == 1400


class TestValidateSettings:
    """Tests for the rules enforced before update() is called."""

    def test_valid_settings_pass(self):
        validate_settings(MonitorSettings(low_threshold=700, high_threshold=1000))

    @pytest.mark.parametrize("low, high", [(1200, 1200), (1500, 1000)])
    def test_threshold_ordering(self, low, high):
        with pytest.raises(SettingsValidationError):
            validate_settings(MonitorSettings(low_threshold=low, high_threshold=high))

    def test_refresh_interval_floor(self):
        with pytest.raises(SettingsValidationError):
            validate_settings(MonitorSettings(refresh_interval=4999))

    def test_refresh_interval_ignored_without_auto_refresh(self):
        validate_settings(MonitorSettings(auto_refresh=False, refresh_interval=1000))

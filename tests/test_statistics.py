"""
Tests for popwarden.statistics: preferences, whitelist matching and
activity counters.
"""

import pytest

pytestmark = pytest.mark.storage

from popwarden.clock import MS_PER_DAY, ms_to_day
from popwarden.errors import InvalidInputError, StorageError
from popwarden.statistics import PreferencesStore, UserPreferences
from popwarden.storage.base import USER_PREFERENCES_KEY


class TestUserPreferences:
    def test_defaults(self):
        prefs = UserPreferences()
        assert prefs.extension_enabled is True
        assert prefs.learning_enabled is True
        assert prefs.auto_action_enabled is True
        assert prefs.notification_duration == 5000
        assert prefs.whitelisted_domains == []

    @pytest.mark.parametrize("domain,expected", [
        ("example.com", True),
        ("news.example.com", True),
        ("EXAMPLE.COM", True),
        ("badexample.com", False),
        ("example.org", False),
        (None, False),
        ("", False),
    ])
    def test_whitelist(self, domain, expected):
        prefs = UserPreferences(whitelisted_domains=["example.com"])
        assert prefs.is_whitelisted(domain) is expected

    def test_to_dict_is_camel_case(self):
        data = UserPreferences().to_dict()
        assert "extensionEnabled" in data
        assert "totalPopupsDetected" in data["statistics"]


class TestPreferencesStore:
    @pytest.mark.asyncio
    async def test_defaults_when_nothing_stored(self, preferences, clock):
        prefs = await preferences.get_preferences()
        assert prefs.extension_enabled is True
        assert prefs.statistics.last_reset_date == clock.now

    @pytest.mark.asyncio
    async def test_defaults_when_storage_fails(self, preferences, storage):
        storage.fail_get = True
        prefs = await preferences.get_preferences()
        assert prefs.learning_enabled is True

    @pytest.mark.asyncio
    async def test_defaults_when_stored_value_is_invalid(self, preferences, storage):
        await storage.set({USER_PREFERENCES_KEY: {"notificationDuration": "forever"}})
        prefs = await preferences.get_preferences()
        assert prefs.notification_duration == 5000

    @pytest.mark.asyncio
    async def test_update_merges_and_persists(self, preferences, storage):
        await preferences.update_preferences({"showNotifications": False})
        prefs = await preferences.update_preferences({"whitelistedDomains": ["example.com"]})

        assert prefs.show_notifications is False
        assert prefs.whitelisted_domains == ["example.com"]
        stored = storage.snapshot()[USER_PREFERENCES_KEY]
        assert stored["showNotifications"] is False
        assert stored["whitelistedDomains"] == ["example.com"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("updates", [
        "learningEnabled",
        {"notificationDuration": -1},
        {"whitelistedDomains": "example.com"},
    ])
    async def test_update_rejects_invalid(self, preferences, updates):
        with pytest.raises(InvalidInputError):
            await preferences.update_preferences(updates)
        assert (await preferences.get_preferences()).notification_duration == 5000

    @pytest.mark.asyncio
    async def test_update_storage_failure(self, preferences, storage):
        storage.fail_set_keys.add(USER_PREFERENCES_KEY)
        with pytest.raises(StorageError):
            await preferences.update_preferences({"showNotifications": False})

    @pytest.mark.asyncio
    async def test_reloads_from_storage(self, preferences, storage, clock):
        await preferences.update_preferences({"learningEnabled": False})
        fresh = PreferencesStore(storage, clock=clock)
        assert (await fresh.get_preferences()).learning_enabled is False


class TestCounters:
    @pytest.mark.asyncio
    async def test_detection(self, preferences, clock):
        await preferences.record_detection("news.example.com")
        await preferences.record_detection("news.example.com", count=2)
        stats = await preferences.get_statistics()

        assert stats.total_popups_detected == 3
        assert stats.last_detection_time == clock.now
        assert stats.domain_stats["news.example.com"].detected == 3
        assert stats.domain_stats["news.example.com"].last_activity == clock.now
        assert stats.daily_stats[ms_to_day(clock.now)].detected == 3

    @pytest.mark.asyncio
    async def test_unknown_domain(self, preferences):
        await preferences.record_detection(None)
        assert (await preferences.get_statistics()).domain_stats["unknown"].detected == 1

    @pytest.mark.asyncio
    async def test_resolutions(self, preferences, clock):
        await preferences.record_resolution("close", "a.example.com")
        await preferences.record_resolution("keep", "a.example.com")
        clock.advance(MS_PER_DAY)
        await preferences.record_resolution("close", "a.example.com", auto_applied=True)
        await preferences.record_resolution("timeout", "b.example.com")
        await preferences.record_resolution("expired", "b.example.com")
        await preferences.record_resolution("dismiss", "b.example.com")

        stats = await preferences.get_statistics()
        assert stats.total_popups_closed == 2
        assert stats.total_popups_kept == 1
        assert stats.total_auto_applied == 1
        assert stats.total_timeouts == 1
        assert stats.total_expired == 1
        assert stats.total_dismissed == 1
        assert stats.domain_stats["a.example.com"].closed == 2
        assert stats.domain_stats["a.example.com"].auto_applied == 1
        assert stats.daily_stats[ms_to_day(clock.now)].closed == 1
        assert len(stats.daily_stats) == 2

    @pytest.mark.asyncio
    async def test_unknown_choice_is_ignored(self, preferences):
        await preferences.record_resolution("shrug", "a.example.com")
        assert (await preferences.get_statistics()).domain_stats == {}

    @pytest.mark.asyncio
    async def test_reset(self, preferences, clock):
        await preferences.record_detection("a.example.com")
        clock.advance(5000)
        stats = await preferences.reset_statistics()
        assert stats.total_popups_detected == 0
        assert stats.domain_stats == {}
        assert stats.last_reset_date == clock.now

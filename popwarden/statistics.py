"""
popwarden Preferences and Statistics

User preferences and the aggregate counters stored alongside them under the
`userPreferences` storage key.

Read paths fall back to defaults when storage fails; write paths raise
StorageError.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from popwarden.clock import Clock, epoch_ms, ms_to_day
from popwarden.errors import InvalidInputError, StorageError
from popwarden.storage.base import USER_PREFERENCES_KEY, StorageBackend

logger = logging.getLogger(__name__)

UNKNOWN_DOMAIN = "unknown"


class ActivityCounters(BaseModel):
    """Per-domain or per-day counters."""
    detected: int = Field(default=0, ge=0)
    closed: int = Field(default=0, ge=0)
    kept: int = Field(default=0, ge=0)
    dismissed: int = Field(default=0, ge=0)
    timeouts: int = Field(default=0, ge=0)
    expired: int = Field(default=0, ge=0)
    auto_applied: int = Field(default=0, ge=0, alias="autoApplied")
    last_activity: Optional[int] = Field(default=None, alias="lastActivity")

    model_config = {"populate_by_name": True, "extra": "allow"}


class Statistics(BaseModel):
    """Aggregate detection and decision counters."""
    total_popups_detected: int = Field(default=0, ge=0, alias="totalPopupsDetected")
    total_popups_closed: int = Field(default=0, ge=0, alias="totalPopupsClosed")
    total_popups_kept: int = Field(default=0, ge=0, alias="totalPopupsKept")
    total_dismissed: int = Field(default=0, ge=0, alias="totalDismissed")
    total_timeouts: int = Field(default=0, ge=0, alias="totalTimeouts")
    total_expired: int = Field(default=0, ge=0, alias="totalExpired")
    total_auto_applied: int = Field(default=0, ge=0, alias="totalAutoApplied")
    domain_stats: Dict[str, ActivityCounters] = Field(default_factory=dict, alias="domainStats")
    daily_stats: Dict[str, ActivityCounters] = Field(default_factory=dict, alias="dailyStats")
    last_detection_time: Optional[int] = Field(default=None, alias="lastDetectionTime")
    last_reset_date: Optional[int] = Field(default=None, alias="lastResetDate")

    model_config = {"populate_by_name": True, "extra": "allow"}


class UserPreferences(BaseModel):
    """User-facing switches plus the statistics persisted with them."""
    extension_enabled: bool = Field(default=True, alias="extensionEnabled")
    show_notifications: bool = Field(default=True, alias="showNotifications")
    notification_duration: int = Field(default=5000, ge=0, alias="notificationDuration")
    learning_enabled: bool = Field(default=True, alias="learningEnabled")
    auto_action_enabled: bool = Field(default=True, alias="autoActionEnabled")
    whitelisted_domains: List[str] = Field(default_factory=list, alias="whitelistedDomains")
    statistics: Statistics = Field(default_factory=Statistics)

    model_config = {"populate_by_name": True, "extra": "allow"}

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def is_whitelisted(self, domain: Optional[str]) -> bool:
        """True for a listed domain or any subdomain of one."""
        if not domain:
            return False
        domain = domain.lower()
        for listed in self.whitelisted_domains:
            listed = listed.lower().lstrip(".")
            if domain == listed or domain.endswith("." + listed):
                return True
        return False


# Counter fields touched per final choice: (Statistics total, ActivityCounters field)
_CHOICE_COUNTERS = {
    "close": ("total_popups_closed", "closed"),
    "keep": ("total_popups_kept", "kept"),
    "dismiss": ("total_dismissed", "dismissed"),
    "timeout": ("total_timeouts", "timeouts"),
    "expired": ("total_expired", "expired"),
}


class PreferencesStore:
    """Cached, persisted user preferences and statistics."""

    def __init__(self, storage: StorageBackend, clock: Optional[Clock] = None):
        self._storage = storage
        self._clock = clock or epoch_ms
        self._preferences: Optional[UserPreferences] = None

    def _defaults(self) -> UserPreferences:
        prefs = UserPreferences()
        prefs.statistics.last_reset_date = self._clock()
        return prefs

    async def _load(self) -> UserPreferences:
        try:
            stored = await self._storage.get([USER_PREFERENCES_KEY])
        except StorageError as e:
            logger.warning("Cannot read user preferences, using defaults: %s", e)
            return self._defaults()

        raw = stored.get(USER_PREFERENCES_KEY)
        if raw is None:
            return self._defaults()
        try:
            return UserPreferences.model_validate(raw)
        except ValidationError as e:
            logger.warning("Stored user preferences are invalid, using defaults: %s", e)
            return self._defaults()

    async def get_preferences(self) -> UserPreferences:
        if self._preferences is None:
            loaded = await self._load()
            if self._preferences is None:
                self._preferences = loaded
        return self._preferences

    async def _save(self) -> None:
        await self._storage.set({USER_PREFERENCES_KEY: self._preferences.to_dict()})

    async def update_preferences(self, updates: Dict[str, Any]) -> UserPreferences:
        """Merge top-level preference fields (camelCase) and persist.

        Raises:
            InvalidInputError: if the merged preferences do not validate
        """
        if not isinstance(updates, dict):
            raise InvalidInputError("preferences must be an object")
        current = await self.get_preferences()
        merged = current.to_dict()
        merged.update(updates)
        try:
            updated = UserPreferences.model_validate(merged)
        except ValidationError as e:
            raise InvalidInputError(f"invalid preferences: {e}") from e

        self._preferences = updated
        await self._save()
        return updated

    async def get_statistics(self) -> Statistics:
        return (await self.get_preferences()).statistics

    def _counters(self, stats: Statistics, domain: Optional[str], timestamp: int):
        domain_key = domain or UNKNOWN_DOMAIN
        day_key = ms_to_day(timestamp)
        domain_counters = stats.domain_stats.setdefault(domain_key, ActivityCounters())
        day_counters = stats.daily_stats.setdefault(day_key, ActivityCounters())
        domain_counters.last_activity = timestamp
        return domain_counters, day_counters

    async def record_detection(self, domain: Optional[str], timestamp: Optional[int] = None, count: int = 1) -> None:
        timestamp = timestamp if timestamp is not None else self._clock()
        stats = (await self.get_preferences()).statistics
        stats.total_popups_detected += count
        stats.last_detection_time = timestamp
        for counters in self._counters(stats, domain, timestamp):
            counters.detected += count
        await self._save()

    async def record_resolution(
        self,
        choice: str,
        domain: Optional[str],
        timestamp: Optional[int] = None,
        auto_applied: bool = False,
    ) -> None:
        if choice not in _CHOICE_COUNTERS:
            return
        timestamp = timestamp if timestamp is not None else self._clock()
        stats = (await self.get_preferences()).statistics
        total_field, counter_field = _CHOICE_COUNTERS[choice]
        setattr(stats, total_field, getattr(stats, total_field) + 1)
        if auto_applied:
            stats.total_auto_applied += 1
        for counters in self._counters(stats, domain, timestamp):
            setattr(counters, counter_field, getattr(counters, counter_field) + 1)
            if auto_applied:
                counters.auto_applied += 1
        await self._save()

    async def reset_statistics(self) -> Statistics:
        prefs = await self.get_preferences()
        prefs.statistics = Statistics(last_reset_date=self._clock())
        await self._save()
        return prefs.statistics

"""
popwarden Service

Wires the scorer, pattern store, preferences and decision coordinator
together behind the message router.

Usage:
    service = PopupBlockerService.from_config(load_config(), channel=my_channel)
    await service.start()
    response = await service.handle({"type": "PING"})
    await service.stop()
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from popwarden import __version__
from popwarden.clock import Clock, epoch_ms
from popwarden.config.models import PopwardenConfig, StorageBackendName
from popwarden.decisions.channel import DecisionChannel
from popwarden.decisions.coordinator import DecisionCoordinator
from popwarden.decisions.scheduler import LoopScheduler, Scheduler
from popwarden.decisions.sweeper import ExpirySweeper
from popwarden.errors import StorageError
from popwarden.learning.store import PatternStore
from popwarden.logging.event_log import EventLog, EventType
from popwarden.messages import (
    CleanupExpiredDecisions,
    ClearLearningPatterns,
    GetExtensionState,
    GetLearningPatterns,
    GetLearningStatistics,
    GetPatternSuggestion,
    GetPendingDecisions,
    GetPendingDecisionsByTab,
    GetStatistics,
    GetUserDecisions,
    GetUserPreferences,
    MessageRouter,
    Ping,
    PopupDetected,
    UpdateUserPreferences,
    UserDecision,
)
from popwarden.scoring.characteristics import Characteristics
from popwarden.scoring.scorer import ConfidenceScorer
from popwarden.statistics import PreferencesStore
from popwarden.storage.base import StorageBackend
from popwarden.storage.memory import MemoryStorage
from popwarden.storage.sqlite import SqliteStorage

logger = logging.getLogger(__name__)


def build_storage(config: PopwardenConfig) -> StorageBackend:
    """Storage backend selected by the `storage` config section."""
    if config.storage.backend == StorageBackendName.MEMORY:
        return MemoryStorage()
    path = Path(config.storage.path).expanduser() if config.storage.path else None
    return SqliteStorage(path)


def build_event_log(config: PopwardenConfig) -> Optional[EventLog]:
    """Audit log selected by the `logging` config section (None when disabled)."""
    if not config.logging.enabled:
        return None
    path = Path(config.logging.db_path).expanduser() if config.logging.db_path else None
    return EventLog(path)


class PopupBlockerService:
    """The reasoning core of the popup blocker as one explicit instance."""

    def __init__(
        self,
        config: PopwardenConfig,
        storage: StorageBackend,
        channel: Optional[DecisionChannel] = None,
        scheduler: Optional[Scheduler] = None,
        event_log: Optional[EventLog] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config
        self.storage = storage
        self.event_log = event_log
        self._clock = clock or epoch_ms
        self.scheduler = scheduler or LoopScheduler()

        self.scorer = ConfidenceScorer(
            threshold=config.scoring.likely_popup_threshold,
            clock=self._clock,
        )
        self.patterns = PatternStore(
            storage,
            config=config.learning,
            clock=self._clock,
            event_log=event_log,
        )
        self.preferences = PreferencesStore(storage, clock=self._clock)
        self.coordinator = DecisionCoordinator(
            storage,
            pattern_store=self.patterns,
            preferences=self.preferences,
            channel=channel,
            scheduler=self.scheduler,
            config=config.decisions,
            clock=self._clock,
            event_log=event_log,
        )
        self.sweeper = ExpirySweeper(self.coordinator)
        self.router = MessageRouter({
            "POPUP_DETECTED": self._on_popup_detected,
            "USER_DECISION": self._on_user_decision,
            "GET_PATTERN_SUGGESTION": self._on_get_pattern_suggestion,
            "CLEANUP_EXPIRED_DECISIONS": self._on_cleanup_expired,
            "PING": self._on_ping,
            "GET_PENDING_DECISIONS": self._on_get_pending,
            "GET_PENDING_DECISIONS_BY_TAB": self._on_get_pending_by_tab,
            "GET_USER_DECISIONS": self._on_get_user_decisions,
            "GET_LEARNING_STATISTICS": self._on_get_learning_statistics,
            "GET_LEARNING_PATTERNS": self._on_get_learning_patterns,
            "CLEAR_LEARNING_PATTERNS": self._on_clear_learning_patterns,
            "GET_STATISTICS": self._on_get_statistics,
            "GET_USER_PREFERENCES": self._on_get_user_preferences,
            "UPDATE_USER_PREFERENCES": self._on_update_user_preferences,
            "GET_EXTENSION_STATE": self._on_get_extension_state,
        })
        self._started = False
        self._start_lock: Optional[asyncio.Lock] = None

    @classmethod
    def from_config(
        cls,
        config: PopwardenConfig,
        storage: Optional[StorageBackend] = None,
        **kwargs: Any,
    ) -> "PopupBlockerService":
        """Build a service with storage and audit log chosen by config."""
        if "event_log" not in kwargs:
            kwargs["event_log"] = build_event_log(config)
        return cls(config, storage or build_storage(config), **kwargs)

    # ==================================================================
    # Lifecycle
    # ==================================================================

    async def start(self, sweep: bool = True) -> None:
        """Load state, restore pending decisions, then start sweeping.

        Restoration completes before any message is handled.
        """
        if self._start_lock is None:
            self._start_lock = asyncio.Lock()
        async with self._start_lock:
            if self._started:
                return
            await self._start(sweep)

    async def _start(self, sweep: bool) -> None:
        if self.event_log is not None:
            self.event_log.prune(self.config.logging.retention_days)
        await self.patterns.load()
        prefs = await self.preferences.get_preferences()
        self.patterns.set_enabled(prefs.learning_enabled)
        await self.coordinator.restore()
        if sweep:
            await self.sweeper.start()
        self._started = True
        logger.info("popwarden %s started", __version__)

    async def stop(self) -> None:
        await self.sweeper.stop()
        self.coordinator.shutdown()
        if isinstance(self.scheduler, LoopScheduler):
            await self.scheduler.drain()
        self._started = False
        self._start_lock = None

    async def handle(self, message: Any) -> Dict[str, Any]:
        """Dispatch one runtime message and return its response."""
        if not self._started:
            await self.start()
        return await self.router.dispatch(message)

    # ==================================================================
    # Core handlers
    # ==================================================================

    async def _on_popup_detected(self, msg: PopupDetected) -> Dict[str, Any]:
        prefs = await self.preferences.get_preferences()
        if not prefs.extension_enabled:
            return {"action": "skipped", "reason": "extension_disabled"}
        if prefs.is_whitelisted(msg.domain):
            return {"action": "skipped", "reason": "whitelisted"}

        characteristics = Characteristics.from_data(msg.characteristics)
        now = self._clock()
        try:
            await self.preferences.record_detection(msg.domain, now)
        except StorageError as e:
            logger.warning("Detection statistics update failed: %s", e)
        if self.event_log is not None:
            self.event_log.record(
                EventType.POPUP_DETECTED, popup_id=msg.popup_id, tab_id=msg.tab_id, domain=msg.domain,
            )

        confidence = msg.confidence
        if confidence is None:
            confidence = self.scorer.analyze(characteristics).confidence

        suggestion = self.patterns.suggest(characteristics, msg.domain)
        popup_data = {
            "id": msg.popup_id,
            "characteristics": characteristics.to_dict(),
            "domain": msg.domain,
            "confidence": confidence,
        }

        if suggestion is not None and suggestion.auto_apply and prefs.auto_action_enabled:
            completed = await self.coordinator.auto_apply(popup_data, msg.tab_id, suggestion)
            return {
                "action": "auto_applied",
                "decision": completed.to_dict(),
                "suggestion": suggestion.to_dict(),
            }

        pending = await self.coordinator.initiate(popup_data, msg.tab_id, suggestion)
        return {
            "action": "decision_requested",
            "decision": pending.to_dict(),
            "suggestion": suggestion.to_dict() if suggestion else None,
        }

    async def _on_user_decision(self, msg: UserDecision) -> Dict[str, Any]:
        completed = await self.coordinator.resolve(msg.popup_id, msg.decision, msg.response_data)
        return completed.to_dict()

    async def _on_get_pattern_suggestion(self, msg: GetPatternSuggestion) -> Optional[Dict[str, Any]]:
        suggestion = self.patterns.suggest(msg.characteristics, msg.domain)
        if suggestion is None or not suggestion.actionable:
            return None
        return {
            "suggestion": suggestion.suggestion,
            "confidence": suggestion.confidence,
            "similarity": suggestion.similarity,
            "patternId": suggestion.pattern_id,
            "occurrences": suggestion.occurrences,
        }

    async def _on_cleanup_expired(self, msg: CleanupExpiredDecisions) -> Dict[str, Any]:
        return {"cleanedCount": await self.coordinator.expire()}

    # ==================================================================
    # Query and management handlers
    # ==================================================================

    async def _on_ping(self, msg: Ping) -> Dict[str, Any]:
        return {"status": "ok", "timestamp": self._clock()}

    async def _on_get_pending(self, msg: GetPendingDecisions) -> list:
        return [d.to_dict() for d in self.coordinator.pending()]

    async def _on_get_pending_by_tab(self, msg: GetPendingDecisionsByTab) -> list:
        return [d.to_dict() for d in self.coordinator.pending_by_tab(msg.tab_id)]

    async def _on_get_user_decisions(self, msg: GetUserDecisions) -> list:
        filters = msg.filters
        history = await self.coordinator.history(
            domain=filters.domain,
            user_choice=filters.user_choice,
            start=filters.start,
            end=filters.end,
        )
        return [d.to_dict() for d in history]

    async def _on_get_learning_statistics(self, msg: GetLearningStatistics) -> Dict[str, Any]:
        stats = self.patterns.statistics()
        stats["decisions"] = await self.coordinator.decision_statistics()
        return stats

    async def _on_get_learning_patterns(self, msg: GetLearningPatterns) -> list:
        return [p.to_dict() for p in self.patterns.patterns(msg.domain)]

    async def _on_clear_learning_patterns(self, msg: ClearLearningPatterns) -> Dict[str, Any]:
        cleared = len(self.patterns)
        await self.patterns.clear()
        return {"clearedCount": cleared}

    async def _on_get_statistics(self, msg: GetStatistics) -> Dict[str, Any]:
        stats = await self.preferences.get_statistics()
        return stats.model_dump(mode="json", by_alias=True)

    async def _on_get_user_preferences(self, msg: GetUserPreferences) -> Dict[str, Any]:
        return (await self.preferences.get_preferences()).to_dict()

    async def _on_update_user_preferences(self, msg: UpdateUserPreferences) -> Dict[str, Any]:
        prefs = await self.preferences.update_preferences(msg.preferences)
        self.patterns.set_enabled(prefs.learning_enabled)
        return prefs.to_dict()

    async def _on_get_extension_state(self, msg: GetExtensionState) -> Dict[str, Any]:
        prefs = await self.preferences.get_preferences()
        return {
            "version": __version__,
            "initialized": self._started,
            "extensionEnabled": prefs.extension_enabled,
            "learningEnabled": self.patterns.enabled,
            "autoActionEnabled": prefs.auto_action_enabled,
            "pendingCount": len(self.coordinator.pending()),
            "patternCount": len(self.patterns),
            "sweeperRunning": self.sweeper.running,
        }

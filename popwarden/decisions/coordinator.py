"""
popwarden Decision Coordinator

Tracks every candidate popup that is waiting for a close/keep decision.

State machine per popup id:
    awaiting_user_input --(timer, reminders left)--> awaiting_user_input
    awaiting_user_input --(timer, no reminders left)--> completed (timeout)
    awaiting_user_input --(resolve)--> completed (close/keep/dismiss)
    awaiting_user_input --(expire sweep, older than 24h)--> completed (expired)

Usage:
    coordinator = DecisionCoordinator(storage, pattern_store, preferences, channel)
    await coordinator.restore()
    await coordinator.initiate({"id": "popup-1", "characteristics": {...}}, tab_id=7)
    completed = await coordinator.resolve("popup-1", "close")
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from popwarden.clock import MS_PER_HOUR, MS_PER_MINUTE, MS_PER_SECOND, Clock, epoch_ms
from popwarden.config.models import DecisionsConfig
from popwarden.decisions.channel import DecisionChannel, LoggingChannel
from popwarden.decisions.models import (
    ACTION_CHOICES,
    USER_CHOICES,
    CompletedDecision,
    DecisionStatus,
    PendingDecision,
    UserChoice,
)
from popwarden.decisions.scheduler import LoopScheduler, Scheduler, TimerHandle
from popwarden.errors import (
    DecisionNotFoundError,
    InvalidDecisionError,
    InvalidInputError,
    PopwardenError,
    StorageError,
)
from popwarden.learning.schemas import PatternSuggestion
from popwarden.learning.store import PatternStore
from popwarden.logging.event_log import EventLog, EventType
from popwarden.statistics import PreferencesStore
from popwarden.storage.base import (
    COMPLETED_DECISIONS_KEY,
    PENDING_DECISIONS_KEY,
    StorageBackend,
)

logger = logging.getLogger(__name__)


def validate_tab_id(tab_id: Any) -> int:
    if isinstance(tab_id, bool) or not isinstance(tab_id, int) or tab_id < 1:
        raise InvalidInputError(f"tabId must be a positive integer, got {tab_id!r}")
    return tab_id


def validate_popup_data(popup_data: Any) -> str:
    """Return the popup id, raising InvalidInputError when it is missing."""
    if not isinstance(popup_data, dict):
        raise InvalidInputError("popupData must be an object")
    popup_id = popup_data.get("id")
    if not isinstance(popup_id, str) or not popup_id:
        raise InvalidInputError("popupData.id is required")
    return popup_id


class DecisionCoordinator:
    """Owns the live map of pending decisions and their timers."""

    def __init__(
        self,
        storage: StorageBackend,
        pattern_store: Optional[PatternStore] = None,
        preferences: Optional[PreferencesStore] = None,
        channel: Optional[DecisionChannel] = None,
        scheduler: Optional[Scheduler] = None,
        config: Optional[DecisionsConfig] = None,
        clock: Optional[Clock] = None,
        event_log: Optional[EventLog] = None,
    ):
        self._storage = storage
        self._pattern_store = pattern_store
        self._preferences = preferences
        self._channel = channel or LoggingChannel()
        self._scheduler = scheduler or LoopScheduler()
        self.config = config or DecisionsConfig()
        self._clock = clock or epoch_ms
        self._event_log = event_log

        self._pending: Dict[str, PendingDecision] = {}
        self._timers: Dict[str, TimerHandle] = {}
        self._history: List[CompletedDecision] = []
        self._history_loaded = False

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    @property
    def initial_timeout_ms(self) -> int:
        return int(self.config.initial_timeout_seconds * MS_PER_SECOND)

    @property
    def reminder_timeout_ms(self) -> int:
        return int(self.config.reminder_timeout_seconds * MS_PER_SECOND)

    def _arm(self, decision: PendingDecision, delay_ms: int, set_deadline: bool = True) -> None:
        self._cancel_timer(decision.popup_id)
        if set_deadline:
            decision.deadline = self._clock() + delay_ms

        async def fire() -> None:
            await self._on_timer(decision)

        self._timers[decision.popup_id] = self._scheduler.call_later(delay_ms, fire)

    def _cancel_timer(self, popup_id: str) -> None:
        handle = self._timers.pop(popup_id, None)
        if handle is not None:
            handle.cancel()

    def _is_live(self, decision: PendingDecision) -> bool:
        return self._pending.get(decision.popup_id) is decision and decision.is_awaiting

    async def _on_timer(self, decision: PendingDecision) -> None:
        if not self._is_live(decision):
            return
        self._timers.pop(decision.popup_id, None)

        if decision.reminder_count >= self.config.max_reminders:
            await self._timeout(decision)
            return

        decision.reminder_count += 1
        self._arm(decision, self.reminder_timeout_ms)
        try:
            await self._persist_pending()
        except StorageError as e:
            logger.warning("Could not persist reminder state for %s: %s", decision.popup_id, e)
        try:
            await self._channel.send_reminder(decision)
        except Exception as e:
            logger.warning("Reminder delivery failed for %s: %s", decision.popup_id, e)
        self._audit(EventType.REMINDER_SENT, decision, metadata={"reminderCount": decision.reminder_count})

    async def _timeout(self, decision: PendingDecision) -> None:
        try:
            await self._complete(decision, UserChoice.TIMEOUT.value)
        except StorageError as e:
            logger.error("Timeout of %s could not be recorded: %s", decision.popup_id, e)
            return
        try:
            await self._channel.notify_timeout(decision)
        except Exception as e:
            logger.warning("Timeout notification failed for %s: %s", decision.popup_id, e)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _pending_snapshot(self) -> Dict[str, Any]:
        return {
            popup_id: decision.to_dict()
            for popup_id, decision in self._pending.items()
            if decision.is_awaiting
        }

    async def _persist_pending(self) -> None:
        await self._storage.set({PENDING_DECISIONS_KEY: self._pending_snapshot()})

    async def _ensure_history(self) -> None:
        if self._history_loaded:
            return
        stored = await self._storage.get([COMPLETED_DECISIONS_KEY])
        if self._history_loaded:
            return
        history: List[CompletedDecision] = []
        for record in stored.get(COMPLETED_DECISIONS_KEY) or []:
            try:
                history.append(CompletedDecision.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed completed decision: %s", e)
        self._history = history[-self.config.history_limit:]
        self._history_loaded = True

    async def _append_history(self, completed: CompletedDecision) -> None:
        await self._ensure_history()
        self._history.append(completed)
        del self._history[:-self.config.history_limit]
        try:
            await self._storage.set({
                COMPLETED_DECISIONS_KEY: [d.to_dict() for d in self._history],
            })
        except StorageError:
            self._history = [d for d in self._history if d is not completed]
            raise

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initiate(
        self,
        popup_data: Dict[str, Any],
        tab_id: int,
        suggestion: Optional[PatternSuggestion] = None,
    ) -> PendingDecision:
        """
        Start waiting for a user decision on a popup.

        Re-initiating a popup id replaces the previous entry and its timer.

        Raises:
            InvalidInputError: missing popup id or bad tab id
            StorageError: the new entry could not be persisted (rolled back)
        """
        popup_id = validate_popup_data(popup_data)
        validate_tab_id(tab_id)

        now = self._clock()
        previous = self._pending.get(popup_id)
        self._cancel_timer(popup_id)

        decision = PendingDecision(
            popup_id=popup_id,
            tab_id=tab_id,
            popup_data=dict(popup_data),
            timestamp=now,
            deadline=now + self.initial_timeout_ms,
            suggestion=suggestion.to_dict() if suggestion else None,
        )
        self._pending[popup_id] = decision

        try:
            await self._persist_pending()
        except StorageError:
            if self._pending.get(popup_id) is decision:
                self._reinstate(popup_id, previous)
            raise

        if not self._is_live(decision):
            return decision
        self._arm(decision, self.initial_timeout_ms)

        try:
            await self._channel.request_decision(decision)
        except Exception as e:
            logger.warning("Decision prompt delivery failed for %s: %s", popup_id, e)
        else:
            decision.notification_shown = True
            decision.notification_timestamp = self._clock()
            if self._is_live(decision):
                try:
                    await self._persist_pending()
                except StorageError as e:
                    logger.warning("Could not persist prompt state for %s: %s", popup_id, e)

        logger.debug("Initiated decision %s on tab %d", popup_id, tab_id)
        self._audit(EventType.DECISION_REQUESTED, decision)
        return decision

    def _reinstate(self, popup_id: str, previous: Optional[PendingDecision]) -> None:
        """Put back an awaiting entry (re-armed on its old deadline), or drop the slot."""
        if previous is not None and previous.is_awaiting:
            self._pending[popup_id] = previous
            remaining = previous.deadline - self._clock()
            self._arm(previous, max(self.config.min_rearm_ms, remaining), set_deadline=False)
        else:
            self._pending.pop(popup_id, None)

    async def resolve(
        self,
        popup_id: str,
        choice: str,
        response_data: Optional[Dict[str, Any]] = None,
    ) -> CompletedDecision:
        """
        Complete a pending decision with the user's choice.

        Raises:
            DecisionNotFoundError: unknown or already completing popup id
            InvalidDecisionError: choice is not close, keep or dismiss
            StorageError: history could not be written (entry stays pending)
        """
        decision = self._pending.get(popup_id)
        if decision is None or not decision.is_awaiting:
            raise DecisionNotFoundError(popup_id)
        if choice not in USER_CHOICES:
            raise InvalidDecisionError(choice, USER_CHOICES)
        return await self._complete(decision, choice, response_data)

    async def _complete(
        self,
        decision: PendingDecision,
        choice: str,
        response_data: Optional[Dict[str, Any]] = None,
    ) -> CompletedDecision:
        # Claimed before the first await; timers and repeat resolves skip
        # completed entries.
        decision.status = DecisionStatus.COMPLETED
        self._cancel_timer(decision.popup_id)

        now = self._clock()
        completed = CompletedDecision.from_pending(decision, choice, now, response_data)
        try:
            await self._append_history(completed)
        except StorageError:
            if self._pending.get(decision.popup_id) is decision:
                decision.status = DecisionStatus.AWAITING_USER_INPUT
                self._reinstate(decision.popup_id, decision)
            raise

        await self._learn(decision, choice)
        await self._count(choice, decision.domain, now)

        if self._pending.get(decision.popup_id) is decision:
            del self._pending[decision.popup_id]
        removal_error: Optional[StorageError] = None
        try:
            await self._persist_pending()
        except StorageError as e:
            removal_error = e

        if choice in ACTION_CHOICES:
            await self._apply(decision.popup_id, decision.tab_id, choice)

        event_type = {
            UserChoice.TIMEOUT.value: EventType.DECISION_TIMEOUT,
            UserChoice.EXPIRED.value: EventType.DECISION_EXPIRED,
        }.get(choice, EventType.DECISION_RESOLVED)
        self._audit(event_type, decision, decision=choice, metadata={"responseTime": completed.response_time})
        logger.info("Decision %s completed: %s after %d ms", decision.popup_id, choice, completed.response_time)

        if removal_error is not None:
            raise removal_error
        return completed

    async def _learn(self, decision: PendingDecision, choice: str) -> None:
        if self._pattern_store is None or choice not in ACTION_CHOICES:
            return
        characteristics = decision.characteristics
        if not characteristics:
            return
        try:
            await self._pattern_store.record(characteristics, choice, decision.domain)
        except PopwardenError as e:
            logger.warning("Learning from %s failed: %s", decision.popup_id, e)

    async def _count(self, choice: str, domain: Optional[str], timestamp: int, auto_applied: bool = False) -> None:
        if self._preferences is None:
            return
        try:
            await self._preferences.record_resolution(choice, domain, timestamp, auto_applied)
        except StorageError as e:
            logger.warning("Statistics update failed: %s", e)

    async def _apply(self, popup_id: str, tab_id: int, action: str) -> None:
        try:
            await self._channel.apply_action(popup_id, tab_id, action)
        except Exception as e:
            logger.warning("Action %s could not be applied to %s: %s", action, popup_id, e)

    async def auto_apply(
        self,
        popup_data: Dict[str, Any],
        tab_id: int,
        suggestion: PatternSuggestion,
    ) -> CompletedDecision:
        """
        Record and apply a learned decision without asking the user.

        Auto-applied decisions are kept in history and statistics but are not
        fed back into learning.
        """
        popup_id = validate_popup_data(popup_data)
        validate_tab_id(tab_id)
        if suggestion.suggestion not in ACTION_CHOICES:
            raise InvalidDecisionError(suggestion.suggestion, tuple(sorted(ACTION_CHOICES)))

        now = self._clock()
        existing = self._pending.get(popup_id)
        if existing is not None:
            existing.status = DecisionStatus.COMPLETED
            self._cancel_timer(popup_id)

        pending = PendingDecision(
            popup_id=popup_id,
            tab_id=tab_id,
            popup_data=dict(popup_data),
            timestamp=now,
            deadline=now,
            status=DecisionStatus.COMPLETED,
            suggestion=suggestion.to_dict(),
        )
        completed = CompletedDecision.from_pending(
            pending, suggestion.suggestion, now, auto_applied=True,
        )
        try:
            await self._append_history(completed)
        except StorageError:
            if existing is not None and self._pending.get(popup_id) is existing:
                existing.status = DecisionStatus.AWAITING_USER_INPUT
                self._reinstate(popup_id, existing)
            raise

        await self._count(suggestion.suggestion, pending.domain, now, auto_applied=True)
        if existing is not None and self._pending.get(popup_id) is existing:
            del self._pending[popup_id]
            try:
                await self._persist_pending()
            except StorageError as e:
                logger.warning("Could not remove superseded decision %s: %s", popup_id, e)

        await self._apply(popup_id, tab_id, suggestion.suggestion)
        self._audit(
            EventType.AUTO_APPLIED, pending, decision=suggestion.suggestion,
            metadata={"patternId": suggestion.pattern_id, "confidence": suggestion.confidence},
        )
        logger.info("Auto-applied %s to %s (pattern %s)", suggestion.suggestion, popup_id, suggestion.pattern_id)
        return completed

    async def expire(self) -> int:
        """
        Force-resolve decisions older than the expiry window as `expired`.

        Returns:
            Number of decisions expired
        """
        now = self._clock()
        max_age = int(self.config.expiry_hours * MS_PER_HOUR)
        stale = [d for d in self._pending.values() if d.is_awaiting and now - d.timestamp > max_age]

        expired = 0
        for decision in stale:
            if not self._is_live(decision):
                continue
            try:
                await self._complete(decision, UserChoice.EXPIRED.value)
            except StorageError as e:
                logger.warning("Could not expire %s: %s", decision.popup_id, e)
                continue
            expired += 1
        if expired:
            logger.info("Expired %d stale decisions", expired)
        return expired

    async def restore(self) -> int:
        """
        Reload persisted pending decisions after a restart.

        Entries older than the restore window are dropped from memory and
        storage; survivors get their timers back, keeping their deadlines.

        Returns:
            Number of decisions restored
        """
        await self._ensure_history()
        stored = await self._storage.get([PENDING_DECISIONS_KEY])
        records = stored.get(PENDING_DECISIONS_KEY) or {}
        if not isinstance(records, dict):
            logger.warning("Ignoring stored %s: expected an object", PENDING_DECISIONS_KEY)
            records = {}

        now = self._clock()
        max_age = int(self.config.restore_max_age_minutes * MS_PER_MINUTE)
        restored = 0
        discarded = 0
        for popup_id, record in records.items():
            try:
                decision = PendingDecision.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Discarding malformed pending decision %s: %s", popup_id, e)
                discarded += 1
                continue
            if now - decision.timestamp > max_age or not decision.is_awaiting:
                discarded += 1
                continue
            if decision.popup_id in self._pending:
                continue

            self._pending[decision.popup_id] = decision
            delay = max(self.config.min_rearm_ms, decision.deadline - now)
            self._arm(decision, delay, set_deadline=False)
            restored += 1

        if discarded:
            await self._persist_pending()

        logger.info("Restored %d pending decisions (%d discarded)", restored, discarded)
        if self._event_log is not None:
            self._event_log.record(
                EventType.DECISIONS_RESTORED,
                metadata={"restored": restored, "discarded": discarded},
            )
        return restored

    def shutdown(self) -> None:
        """Cancel every timer. Pending entries stay persisted for restore()."""
        for popup_id in list(self._timers):
            self._cancel_timer(popup_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def pending(self) -> List[PendingDecision]:
        return [d for d in self._pending.values() if d.is_awaiting]

    def pending_by_tab(self, tab_id: int) -> List[PendingDecision]:
        return [d for d in self.pending() if d.tab_id == tab_id]

    def get(self, popup_id: str) -> Optional[PendingDecision]:
        decision = self._pending.get(popup_id)
        return decision if decision is not None and decision.is_awaiting else None

    def has_timer(self, popup_id: str) -> bool:
        return popup_id in self._timers

    async def history(
        self,
        domain: Optional[str] = None,
        user_choice: Optional[str] = None,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> List[CompletedDecision]:
        """Completed decisions, newest first, optionally filtered."""
        await self._ensure_history()
        results = []
        for decision in reversed(self._history):
            if domain is not None and decision.domain != domain:
                continue
            if user_choice is not None and decision.user_choice != user_choice:
                continue
            if start is not None and decision.completed_timestamp < start:
                continue
            if end is not None and decision.completed_timestamp > end:
                continue
            results.append(decision)
        return results

    async def decision_statistics(self) -> Dict[str, Any]:
        await self._ensure_history()
        by_choice: Dict[str, int] = {choice.value: 0 for choice in UserChoice}
        response_times = []
        auto_applied = 0
        for decision in self._history:
            by_choice[decision.user_choice] = by_choice.get(decision.user_choice, 0) + 1
            if decision.auto_applied:
                auto_applied += 1
            elif decision.user_choice in USER_CHOICES:
                response_times.append(decision.response_time)

        return {
            "totalDecisions": len(self._history),
            "byChoice": by_choice,
            "autoApplied": auto_applied,
            "averageResponseTime": (
                round(sum(response_times) / len(response_times)) if response_times else 0
            ),
            "pendingCount": len(self.pending()),
        }

    def _audit(self, event_type: EventType, pending: PendingDecision, **fields: Any) -> None:
        if self._event_log is None:
            return
        self._event_log.record(
            event_type,
            popup_id=pending.popup_id,
            tab_id=pending.tab_id,
            domain=pending.domain,
            **fields,
        )

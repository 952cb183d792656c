"""Pytest configuration and fixtures for popwarden tests."""

from typing import Any, Dict, Iterable, List, Optional, Set

import pytest

from popwarden.config.models import DecisionsConfig, LearningConfig
from popwarden.decisions.coordinator import DecisionCoordinator
from popwarden.errors import StorageError
from popwarden.learning.store import PatternStore
from popwarden.statistics import PreferencesStore
from popwarden.storage.memory import MemoryStorage

# 2023-11-14T22:13:20Z
START_MS = 1_700_000_000_000


# ============================================================================
# Time
# ============================================================================


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class ManualTimer:
    def __init__(self, when: int, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler driven by FakeClock; timers fire only inside advance()."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers: List[ManualTimer] = []

    def call_later(self, delay_ms: int, callback) -> ManualTimer:
        timer = ManualTimer(self.clock.now + delay_ms, callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> List[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    async def advance(self, ms: int) -> None:
        """Move time forward, firing due timers in order (including newly armed ones)."""
        target = self.clock.now + ms
        while True:
            due = sorted((t for t in self.active if t.when <= target), key=lambda t: t.when)
            if not due:
                break
            timer = due[0]
            self.clock.now = max(self.clock.now, timer.when)
            timer.fired = True
            await timer.callback()
        self.clock.now = target


# ============================================================================
# Collaborators
# ============================================================================


class RecordingChannel:
    """DecisionChannel that records every call and can be told to fail."""

    def __init__(self):
        self.requests: List[str] = []
        self.reminders: List[tuple] = []
        self.actions: List[tuple] = []
        self.timeouts: List[str] = []
        self.fail_requests = False
        self.fail_reminders = False
        self.fail_actions = False

    async def request_decision(self, decision) -> None:
        if self.fail_requests:
            raise RuntimeError("prompt window closed")
        self.requests.append(decision.popup_id)

    async def send_reminder(self, decision) -> None:
        if self.fail_reminders:
            raise RuntimeError("notification permission revoked")
        self.reminders.append((decision.popup_id, decision.reminder_count))

    async def apply_action(self, popup_id: str, tab_id: int, action: str) -> None:
        if self.fail_actions:
            raise RuntimeError("tab closed")
        self.actions.append((popup_id, tab_id, action))

    async def notify_timeout(self, decision) -> None:
        self.timeouts.append(decision.popup_id)


class FlakyStorage(MemoryStorage):
    """MemoryStorage whose reads or writes of chosen keys can be made to fail."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        super().__init__(initial)
        self.fail_set_keys: Set[str] = set()
        self.fail_get = False

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        if self.fail_get:
            raise StorageError("storage quota read failure")
        return await super().get(keys)

    async def set(self, items: Dict[str, Any]) -> None:
        if self.fail_set_keys & set(items):
            raise StorageError(f"write refused for {sorted(self.fail_set_keys & set(items))}")
        await super().set(items)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def storage():
    return FlakyStorage()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def pattern_store(storage, clock):
    return PatternStore(storage, config=LearningConfig(), clock=clock)


@pytest.fixture
def preferences(storage, clock):
    return PreferencesStore(storage, clock=clock)


@pytest.fixture
def coordinator(storage, pattern_store, preferences, channel, scheduler, clock):
    return DecisionCoordinator(
        storage,
        pattern_store=pattern_store,
        preferences=preferences,
        channel=channel,
        scheduler=scheduler,
        config=DecisionsConfig(),
        clock=clock,
    )


@pytest.fixture
def popup_characteristics() -> Dict[str, Any]:
    """A typical ad interstitial: fixed, on top, closable, ad copy."""
    return {
        "position": "fixed",
        "zIndex": 9999,
        "hasCloseButton": True,
        "containsAds": True,
        "dimensions": {"width": 400, "height": 300},
    }

"""
popwarden Decision Coordination

Tracks candidate popups awaiting a user close/keep decision, with reminders,
timeouts, expiry and restart-safe persistence.
"""

from popwarden.decisions.channel import DecisionChannel, LoggingChannel
from popwarden.decisions.coordinator import DecisionCoordinator
from popwarden.decisions.models import (
    ACTION_CHOICES,
    USER_CHOICES,
    CompletedDecision,
    DecisionStatus,
    PendingDecision,
    UserChoice,
)
from popwarden.decisions.scheduler import LoopScheduler, Scheduler
from popwarden.decisions.sweeper import ExpirySweeper

__all__ = [
    "DecisionCoordinator", "ExpirySweeper",
    "DecisionChannel", "LoggingChannel",
    "LoopScheduler", "Scheduler",
    "PendingDecision", "CompletedDecision", "DecisionStatus", "UserChoice",
    "USER_CHOICES", "ACTION_CHOICES",
]

"""
UI collaborator for decisions.

The coordinator never renders anything itself; it tells a DecisionChannel
what to show or do. Delivery failures are logged by the coordinator and
never abort a decision.
"""

import logging
from typing import Protocol

from popwarden.decisions.models import PendingDecision

logger = logging.getLogger(__name__)


class DecisionChannel(Protocol):
    async def request_decision(self, decision: PendingDecision) -> None:
        """Show the close/keep prompt for a new decision."""
        ...

    async def send_reminder(self, decision: PendingDecision) -> None:
        """Remind the user of an unanswered decision."""
        ...

    async def apply_action(self, popup_id: str, tab_id: int, action: str) -> None:
        """Close or keep the popup in its tab."""
        ...

    async def notify_timeout(self, decision: PendingDecision) -> None:
        """Tell the UI a decision timed out."""
        ...


class LoggingChannel:
    """Channel for headless use: every UI interaction is only logged."""

    async def request_decision(self, decision: PendingDecision) -> None:
        logger.info("Decision requested for %s (tab %d)", decision.popup_id, decision.tab_id)

    async def send_reminder(self, decision: PendingDecision) -> None:
        logger.info("Reminder %d for %s", decision.reminder_count, decision.popup_id)

    async def apply_action(self, popup_id: str, tab_id: int, action: str) -> None:
        logger.info("Apply %s to %s (tab %d)", action, popup_id, tab_id)

    async def notify_timeout(self, decision: PendingDecision) -> None:
        logger.info("Decision timed out for %s", decision.popup_id)

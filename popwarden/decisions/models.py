"""
popwarden Decision Records

Dataclasses for decisions awaiting user input and for the completed
decision history.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class DecisionStatus(str, Enum):
    """Lifecycle status of a pending decision."""
    AWAITING_USER_INPUT = "awaiting_user_input"
    COMPLETED = "completed"


class UserChoice(str, Enum):
    """Final outcome of a decision."""
    CLOSE = "close"
    KEEP = "keep"
    DISMISS = "dismiss"
    TIMEOUT = "timeout"
    EXPIRED = "expired"


# Choices a user (or the UI on their behalf) may submit
USER_CHOICES = (UserChoice.CLOSE.value, UserChoice.KEEP.value, UserChoice.DISMISS.value)

# Choices that become browser actions and learning observations
ACTION_CHOICES = frozenset({UserChoice.CLOSE.value, UserChoice.KEEP.value})


@dataclass
class PendingDecision:
    """A candidate popup waiting for the user to choose close or keep."""

    popup_id: str
    tab_id: int
    popup_data: Dict[str, Any]
    timestamp: int  # epoch ms, when the decision was initiated
    deadline: int  # epoch ms, when the current timer fires
    status: DecisionStatus = DecisionStatus.AWAITING_USER_INPUT
    reminder_count: int = 0
    notification_shown: bool = False
    notification_timestamp: Optional[int] = None
    suggestion: Optional[Dict[str, Any]] = None  # PatternSuggestion.to_dict()

    @property
    def domain(self) -> Optional[str]:
        return self.popup_data.get("domain")

    @property
    def characteristics(self) -> Optional[Dict[str, Any]]:
        return self.popup_data.get("characteristics")

    @property
    def is_awaiting(self) -> bool:
        return self.status == DecisionStatus.AWAITING_USER_INPUT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "popupId": self.popup_id,
            "tabId": self.tab_id,
            "popupData": self.popup_data,
            "timestamp": self.timestamp,
            "deadline": self.deadline,
            "status": self.status.value,
            "reminderCount": self.reminder_count,
            "notificationShown": self.notification_shown,
            "notificationTimestamp": self.notification_timestamp,
            "suggestion": self.suggestion,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingDecision":
        """Parse a stored record; raises KeyError/TypeError/ValueError when malformed."""
        timestamp = int(data["timestamp"])
        deadline = data.get("deadline")
        return cls(
            popup_id=str(data["popupId"]),
            tab_id=int(data["tabId"]),
            popup_data=dict(data.get("popupData") or {}),
            timestamp=timestamp,
            deadline=int(deadline) if deadline is not None else timestamp + 30_000,
            status=DecisionStatus(data.get("status", DecisionStatus.AWAITING_USER_INPUT.value)),
            reminder_count=int(data.get("reminderCount", 0)),
            notification_shown=bool(data.get("notificationShown", False)),
            notification_timestamp=data.get("notificationTimestamp"),
            suggestion=data.get("suggestion"),
        )


@dataclass
class CompletedDecision:
    """A finished decision as kept in the capped history."""

    popup_id: str
    tab_id: int
    popup_data: Dict[str, Any]
    timestamp: int
    user_choice: str
    response_time: int  # ms between initiation and completion
    completed_timestamp: int
    reminder_count: int = 0
    notification_shown: bool = False
    response_data: Optional[Dict[str, Any]] = None
    auto_applied: bool = False
    suggestion: Optional[Dict[str, Any]] = None
    status: str = field(default=DecisionStatus.COMPLETED.value)

    @property
    def domain(self) -> Optional[str]:
        return self.popup_data.get("domain")

    @classmethod
    def from_pending(
        cls,
        pending: PendingDecision,
        user_choice: str,
        completed_timestamp: int,
        response_data: Optional[Dict[str, Any]] = None,
        auto_applied: bool = False,
    ) -> "CompletedDecision":
        return cls(
            popup_id=pending.popup_id,
            tab_id=pending.tab_id,
            popup_data=pending.popup_data,
            timestamp=pending.timestamp,
            user_choice=user_choice,
            response_time=max(0, completed_timestamp - pending.timestamp),
            completed_timestamp=completed_timestamp,
            reminder_count=pending.reminder_count,
            notification_shown=pending.notification_shown,
            response_data=response_data,
            auto_applied=auto_applied,
            suggestion=pending.suggestion,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "popupId": self.popup_id,
            "tabId": self.tab_id,
            "popupData": self.popup_data,
            "timestamp": self.timestamp,
            "status": self.status,
            "userChoice": self.user_choice,
            "responseTime": self.response_time,
            "completedTimestamp": self.completed_timestamp,
            "reminderCount": self.reminder_count,
            "notificationShown": self.notification_shown,
            "responseData": self.response_data,
            "autoApplied": self.auto_applied,
            "suggestion": self.suggestion,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompletedDecision":
        return cls(
            popup_id=str(data["popupId"]),
            tab_id=int(data["tabId"]),
            popup_data=dict(data.get("popupData") or {}),
            timestamp=int(data["timestamp"]),
            user_choice=str(data["userChoice"]),
            response_time=int(data.get("responseTime", 0)),
            completed_timestamp=int(data["completedTimestamp"]),
            reminder_count=int(data.get("reminderCount", 0)),
            notification_shown=bool(data.get("notificationShown", False)),
            response_data=data.get("responseData"),
            auto_applied=bool(data.get("autoApplied", False)),
            suggestion=data.get("suggestion"),
        )

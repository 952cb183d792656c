"""
popwarden error taxonomy.

Every failure raised by the core is scoped to a single candidate or pattern;
none of them is fatal to the host process.
"""

from typing import Optional


class PopwardenError(Exception):
    """Base class for all popwarden errors."""

    error_type = "popwarden_error"


class InvalidInputError(PopwardenError):
    """Bad candidate data or tab id. Raised before any state mutation."""

    error_type = "invalid_input"


class DecisionNotFoundError(PopwardenError):
    """No pending decision exists for the given popup id."""

    error_type = "decision_not_found"

    def __init__(self, popup_id: str, reason: str = "no pending decision"):
        self.popup_id = popup_id
        super().__init__(f"{reason}: {popup_id}")


class InvalidDecisionError(PopwardenError):
    """The user choice is not one of the accepted values."""

    error_type = "invalid_decision"

    def __init__(self, choice: object, allowed: Optional[tuple] = None):
        self.choice = choice
        self.allowed = allowed or ()
        allowed_text = ", ".join(self.allowed)
        super().__init__(f"Invalid decision {choice!r} (expected one of: {allowed_text})")


class PatternValidationError(PopwardenError):
    """A learning pattern record is malformed."""

    error_type = "pattern_validation"

    def __init__(self, message: str, pattern_id: Optional[str] = None):
        self.pattern_id = pattern_id
        prefix = f"[{pattern_id}] " if pattern_id else ""
        super().__init__(f"{prefix}{message}")


class StorageError(PopwardenError):
    """The storage collaborator failed to read or write."""

    error_type = "storage"

"""
popwarden Learning Data Schemas

Dataclasses for stored learning patterns and the suggestions derived from
them.
"""

from dataclasses import dataclass
from numbers import Real
from typing import Any, Dict, Optional

from popwarden.errors import InvalidInputError, PatternValidationError
from popwarden.learning.thresholds import LEARNABLE_DECISIONS
from popwarden.scoring.characteristics import Characteristics


@dataclass
class LearningPattern:
    """A generalized (characteristics -> decision) rule."""

    pattern_id: str
    characteristics: Characteristics
    user_decision: str  # close/keep
    confidence: float
    occurrences: int
    last_seen: int  # epoch ms
    domain: Optional[str] = None

    def validate(self) -> None:
        """Raise PatternValidationError if the record is malformed."""
        if not self.pattern_id or not isinstance(self.pattern_id, str):
            raise PatternValidationError("patternId is required")
        if not isinstance(self.characteristics, Characteristics):
            raise PatternValidationError("characteristics are required", self.pattern_id)
        if self.user_decision not in LEARNABLE_DECISIONS:
            raise PatternValidationError(
                f"userDecision must be close or keep, got {self.user_decision!r}",
                self.pattern_id,
            )
        if (
            isinstance(self.confidence, bool)
            or not isinstance(self.confidence, Real)
            or not 0.0 <= self.confidence <= 1.0
        ):
            raise PatternValidationError(
                f"confidence must be within [0, 1], got {self.confidence!r}",
                self.pattern_id,
            )
        if isinstance(self.occurrences, bool) or not isinstance(self.occurrences, int) or self.occurrences < 1:
            raise PatternValidationError(
                f"occurrences must be >= 1, got {self.occurrences!r}",
                self.pattern_id,
            )
        if isinstance(self.last_seen, bool) or not isinstance(self.last_seen, Real):
            raise PatternValidationError(
                f"lastSeen must be numeric, got {self.last_seen!r}",
                self.pattern_id,
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patternId": self.pattern_id,
            "characteristics": self.characteristics.to_dict(),
            "userDecision": self.user_decision,
            "confidence": self.confidence,
            "occurrences": self.occurrences,
            "lastSeen": self.last_seen,
            "domain": self.domain,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearningPattern":
        """Parse and validate a stored record."""
        if not isinstance(data, dict):
            raise PatternValidationError(f"pattern must be an object, got {type(data).__name__}")
        pattern_id = data.get("patternId")
        raw_chars = data.get("characteristics")
        if raw_chars is None:
            raise PatternValidationError("characteristics are required", pattern_id)
        try:
            characteristics = Characteristics.from_data(raw_chars)
        except InvalidInputError as e:
            raise PatternValidationError(f"invalid characteristics: {e}", pattern_id) from e

        pattern = cls(
            pattern_id=pattern_id,
            characteristics=characteristics,
            user_decision=data.get("userDecision"),
            confidence=data.get("confidence"),
            occurrences=data.get("occurrences"),
            last_seen=data.get("lastSeen"),
            domain=data.get("domain"),
        )
        pattern.validate()
        return pattern


@dataclass
class PatternSuggestion:
    """A forward suggestion produced from the best matching pattern."""

    suggestion: str  # close/keep
    confidence: float
    similarity: float
    pattern_id: str
    occurrences: int
    actionable: bool = False  # confidence high enough to offer
    auto_apply: bool = False  # confidence high enough to act without asking

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suggestion": self.suggestion,
            "confidence": self.confidence,
            "similarity": self.similarity,
            "patternId": self.pattern_id,
            "occurrences": self.occurrences,
            "actionable": self.actionable,
            "autoApply": self.auto_apply,
        }

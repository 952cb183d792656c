"""
popwarden Pattern Store

Generalizes (characteristics, decision) observations into a compact set of
learning patterns and turns them into forward suggestions.

Lifecycle of a pattern:
- Created at confidence 0.6 when a decision matches no stored pattern
- Reinforced (+0.1) or penalized (-0.2) by every matching decision
- Flipped to the newer decision when confidence falls below 0.3
- Evicted by cleanup when stale, weak, or outside the top 100

Persisted under the `learningPatterns` storage key.
"""

import logging
import math
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from popwarden.clock import MS_PER_DAY, Clock, epoch_ms
from popwarden.config.models import LearningConfig
from popwarden.errors import PatternValidationError
from popwarden.learning.schemas import LearningPattern, PatternSuggestion
from popwarden.learning.similarity import calculate_similarity
from popwarden.learning.thresholds import (
    CONFIDENCE_PRECISION,
    HIGH_CONFIDENCE,
    LEARNABLE_DECISIONS,
    MAX_CONFIDENCE,
)
from popwarden.logging.event_log import EventLog, EventType
from popwarden.scoring.characteristics import BOOLEAN_FIELDS, Characteristics, Dimensions
from popwarden.storage.base import LEARNING_PATTERNS_KEY, StorageBackend

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def average_characteristics(
    existing: Characteristics,
    new: Characteristics,
    occurrences: int,
    boolean_adoption_limit: int = 2,
) -> Characteristics:
    """Fold a new observation into a pattern's generalized characteristics.

    Numeric fields become a rounded running mean over `occurrences`
    observations. Booleans follow the newest observation only while the
    pattern is young; afterwards the established value holds.
    """
    updates: Dict[str, Any] = {}
    n = max(occurrences, 1)

    if existing.z_index is not None and new.z_index is not None:
        updates["z_index"] = _round_half_up((existing.z_index * (n - 1) + new.z_index) / n)

    if existing.dimensions is not None and new.dimensions is not None:
        updates["dimensions"] = Dimensions(
            width=_round_half_up((existing.dimensions.width * (n - 1) + new.dimensions.width) / n),
            height=_round_half_up((existing.dimensions.height * (n - 1) + new.dimensions.height) / n),
        )

    if n <= boolean_adoption_limit:
        for name in BOOLEAN_FIELDS:
            value = getattr(new, name)
            if value is not None:
                updates[name] = value

    return existing.model_copy(update=updates)


class PatternStore:
    """Adaptive set of learning patterns owned by a single service instance."""

    def __init__(
        self,
        storage: StorageBackend,
        config: Optional[LearningConfig] = None,
        clock: Optional[Clock] = None,
        event_log: Optional[EventLog] = None,
    ):
        self._storage = storage
        self.config = config or LearningConfig()
        self._clock = clock or epoch_ms
        self._event_log = event_log
        self._patterns: Dict[str, LearningPattern] = {}
        self._user_enabled = True

    @property
    def enabled(self) -> bool:
        """Learning runs only when both config and the user preference allow it."""
        return self.config.enabled and self._user_enabled

    def set_enabled(self, enabled: bool) -> None:
        self._user_enabled = bool(enabled)

    # ==================================================================
    # Persistence
    # ==================================================================

    async def load(self) -> int:
        """Replace the in-memory set with the stored one.

        Malformed records are skipped with a warning.

        Returns:
            Number of patterns loaded
        """
        stored = await self._storage.get([LEARNING_PATTERNS_KEY])
        records = stored.get(LEARNING_PATTERNS_KEY) or []
        if not isinstance(records, list):
            logger.warning("Ignoring stored %s: expected a list", LEARNING_PATTERNS_KEY)
            records = []

        loaded: Dict[str, LearningPattern] = {}
        for record in records:
            try:
                pattern = LearningPattern.from_dict(record)
            except PatternValidationError as e:
                logger.warning("Skipping malformed learning pattern: %s", e)
                continue
            loaded[pattern.pattern_id] = pattern

        self._patterns = loaded
        logger.debug("Loaded %d learning patterns", len(loaded))
        return len(loaded)

    async def save(self) -> None:
        """Persist the current set (raises StorageError on failure)."""
        await self._storage.set({
            LEARNING_PATTERNS_KEY: [p.to_dict() for p in self._patterns.values()],
        })

    # ==================================================================
    # Matching
    # ==================================================================

    def _best_match(self, characteristics: Characteristics) -> Tuple[Optional[LearningPattern], float]:
        best: Optional[LearningPattern] = None
        best_similarity = 0.0
        for pattern in self._patterns.values():
            similarity = calculate_similarity(pattern.characteristics, characteristics)
            if similarity > best_similarity:
                best, best_similarity = pattern, similarity
        return best, best_similarity

    def find_match(self, characteristics: Any) -> Optional[LearningPattern]:
        """Most similar stored pattern, if similar enough to be the same popup."""
        chars = Characteristics.from_data(characteristics)
        pattern, similarity = self._best_match(chars)
        if pattern is not None and similarity >= self.config.match_similarity:
            return pattern
        return None

    def suggest(self, characteristics: Any, domain: Optional[str] = None) -> Optional[PatternSuggestion]:
        """
        Suggest close/keep for new characteristics.

        Matching is domain-independent; domain is accepted so callers can
        pass the context they have.

        A pattern confident enough to act on wins over a more similar but
        weaker one; the weaker one is only offered when nothing qualifies.

        Returns:
            PatternSuggestion when a pattern reaches the suggestion similarity,
            else None (also None while learning is disabled)
        """
        if not self.enabled:
            return None
        chars = Characteristics.from_data(characteristics)
        best: Optional[LearningPattern] = None
        best_similarity = 0.0
        best_actionable: Optional[LearningPattern] = None
        actionable_similarity = 0.0
        for candidate in self._patterns.values():
            similarity = calculate_similarity(candidate.characteristics, chars)
            if similarity < self.config.suggestion_similarity:
                continue
            if similarity > best_similarity:
                best, best_similarity = candidate, similarity
            if (
                candidate.confidence >= self.config.actionable_confidence
                and similarity > actionable_similarity
            ):
                best_actionable, actionable_similarity = candidate, similarity

        if best_actionable is not None:
            pattern, similarity = best_actionable, actionable_similarity
        elif best is not None:
            pattern, similarity = best, best_similarity
        else:
            return None

        return PatternSuggestion(
            suggestion=pattern.user_decision,
            confidence=pattern.confidence,
            similarity=round(similarity, CONFIDENCE_PRECISION),
            pattern_id=pattern.pattern_id,
            occurrences=pattern.occurrences,
            actionable=pattern.confidence >= self.config.actionable_confidence,
            auto_apply=pattern.confidence >= self.config.auto_apply_confidence,
        )

    # ==================================================================
    # Learning
    # ==================================================================

    async def record(
        self,
        characteristics: Any,
        decision: str,
        domain: Optional[str] = None,
    ) -> Optional[LearningPattern]:
        """
        Learn from one user decision.

        Only close/keep are learned; any other decision (dismiss, timeout,
        expired) is ignored and None is returned, as it is while learning is
        disabled.

        Returns:
            The created or updated pattern
        """
        if decision not in LEARNABLE_DECISIONS or not self.enabled:
            return None
        chars = Characteristics.from_data(characteristics)
        now = self._clock()

        pattern = self.find_match(chars)
        if pattern is None:
            pattern = self._create(chars, decision, domain, now)
        else:
            self._update(pattern, chars, decision, now)

        self._validate_all()
        self.cleanup()
        await self.save()
        return pattern

    def _create(self, chars: Characteristics, decision: str, domain: Optional[str], now: int) -> LearningPattern:
        pattern = LearningPattern(
            pattern_id=f"pattern_{now}_{uuid.uuid4().hex[:9]}",
            characteristics=chars,
            user_decision=decision,
            confidence=self.config.initial_confidence,
            occurrences=1,
            last_seen=now,
            domain=domain,
        )
        pattern.validate()
        self._patterns[pattern.pattern_id] = pattern
        logger.info("Created pattern %s (%s)", pattern.pattern_id, decision)
        self._audit(EventType.PATTERN_CREATED, pattern, domain=domain)
        return pattern

    def _update(self, pattern: LearningPattern, chars: Characteristics, decision: str, now: int) -> None:
        cfg = self.config
        pattern.occurrences += 1
        pattern.last_seen = now

        flipped = False
        if pattern.user_decision == decision:
            confidence = min(MAX_CONFIDENCE, pattern.confidence + cfg.reinforce_step)
        else:
            confidence = max(cfg.min_confidence, pattern.confidence - cfg.penalty_step)
            if confidence < cfg.flip_threshold:
                pattern.user_decision = decision
                confidence = cfg.flip_reset_confidence
                flipped = True
        pattern.confidence = round(confidence, CONFIDENCE_PRECISION)

        pattern.characteristics = average_characteristics(
            pattern.characteristics,
            chars,
            pattern.occurrences,
            cfg.boolean_adoption_limit,
        )
        logger.info(
            "Updated pattern %s: confidence %.2f, occurrences %d%s",
            pattern.pattern_id, pattern.confidence, pattern.occurrences,
            " (flipped)" if flipped else "",
        )
        self._audit(
            EventType.PATTERN_FLIPPED if flipped else EventType.PATTERN_UPDATED,
            pattern,
        )

    def _validate_all(self) -> None:
        for pattern_id, pattern in list(self._patterns.items()):
            try:
                pattern.validate()
            except PatternValidationError as e:
                logger.warning("Dropping invalid pattern: %s", e)
                del self._patterns[pattern_id]

    def _rank(self, pattern: LearningPattern, now: int) -> float:
        max_age_ms = self.config.max_age_days * MS_PER_DAY
        freshness = 1 - (now - pattern.last_seen) / max_age_ms
        return pattern.confidence * math.log(pattern.occurrences + 1) * freshness

    def cleanup(self) -> int:
        """
        Drop stale and weak patterns and cap the set size.

        Returns:
            Number of patterns evicted
        """
        now = self._clock()
        max_age_ms = self.config.max_age_days * MS_PER_DAY

        kept = [
            p for p in self._patterns.values()
            if now - p.last_seen <= max_age_ms
            and p.confidence >= self.config.cleanup_min_confidence
        ]
        kept.sort(key=lambda p: self._rank(p, now), reverse=True)
        kept = kept[:self.config.max_patterns]

        kept_ids = {p.pattern_id for p in kept}
        evicted = [p for p in self._patterns.values() if p.pattern_id not in kept_ids]
        for pattern in evicted:
            self._audit(EventType.PATTERN_EVICTED, pattern)

        self._patterns = {p.pattern_id: p for p in kept}
        if evicted:
            logger.info("Pattern cleanup evicted %d of %d", len(evicted), len(evicted) + len(kept))
        return len(evicted)

    # ==================================================================
    # Management
    # ==================================================================

    @staticmethod
    def _coerce(pattern: Any) -> LearningPattern:
        if isinstance(pattern, LearningPattern):
            pattern.validate()
            return pattern
        return LearningPattern.from_dict(pattern)

    async def add(self, pattern: Any) -> LearningPattern:
        """Validate and insert one pattern (LearningPattern or stored mapping)."""
        validated = self._coerce(pattern)
        self._patterns[validated.pattern_id] = validated
        await self.save()
        return validated

    async def replace_all(self, patterns: Iterable[Any]) -> int:
        """Validate every pattern, then replace the whole set.

        Nothing changes if any pattern is invalid.
        """
        validated = [self._coerce(p) for p in patterns]
        self._patterns = {p.pattern_id: p for p in validated}
        await self.save()
        return len(self._patterns)

    async def clear(self) -> None:
        self._patterns = {}
        await self.save()
        logger.info("Cleared all learning patterns")

    def patterns(self, domain: Optional[str] = None) -> List[LearningPattern]:
        if domain is None:
            return list(self._patterns.values())
        return [p for p in self._patterns.values() if p.domain == domain]

    def get(self, pattern_id: str) -> Optional[LearningPattern]:
        return self._patterns.get(pattern_id)

    def __len__(self) -> int:
        return len(self._patterns)

    def statistics(self) -> Dict[str, Any]:
        patterns = list(self._patterns.values())
        total = len(patterns)
        return {
            "totalPatterns": total,
            "highConfidencePatterns": sum(1 for p in patterns if p.confidence >= HIGH_CONFIDENCE),
            "closePatterns": sum(1 for p in patterns if p.user_decision == "close"),
            "keepPatterns": sum(1 for p in patterns if p.user_decision == "keep"),
            "averageConfidence": (
                round(sum(p.confidence for p in patterns) / total, CONFIDENCE_PRECISION) if total else 0.0
            ),
            "totalOccurrences": sum(p.occurrences for p in patterns),
        }

    def _audit(self, event_type: EventType, pattern: LearningPattern, domain: Optional[str] = None) -> None:
        if self._event_log is None:
            return
        self._event_log.record(
            event_type,
            pattern_id=pattern.pattern_id,
            domain=domain or pattern.domain,
            decision=pattern.user_decision,
            metadata={"confidence": pattern.confidence, "occurrences": pattern.occurrences},
        )

"""
popwarden Confidence Scorer

Scores a candidate element on a 100-point rubric and maps the score to a
confidence in [0, 1].

Rubric:
- Position/layout (up to 40): fixed or absolute positioning, high z-index
- Visual (up to 30): box shadow, border, partial opacity, modal shape
- Content (up to 30): close button, ad keywords, external links

When a caller leaves isModal out it is derived from position, z-index and
dimensions.

An element is a likely popup when confidence exceeds the configured
threshold (0.6 by default).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from popwarden.clock import Clock, epoch_ms
from popwarden.errors import InvalidInputError
from popwarden.scoring.characteristics import Characteristics, Position


@dataclass
class AnalysisResult:
    """Result of scoring one candidate element."""

    characteristics: Characteristics
    confidence: float
    is_likely_popup: bool
    timestamp: int
    score: int = 0
    signals: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "characteristics": self.characteristics.to_dict(),
            "confidence": self.confidence,
            "isLikelyPopup": self.is_likely_popup,
            "timestamp": self.timestamp,
            "score": self.score,
            "signals": list(self.signals),
        }


class ConfidenceScorer:
    """Deterministic rubric scorer for candidate popup elements."""

    # --- Position/layout ---
    POINTS_FIXED = 20
    POINTS_ABSOLUTE = 10
    POINTS_HIGH_Z_INDEX = 20
    POINTS_RAISED_Z_INDEX = 10
    HIGH_Z_INDEX = 1000
    RAISED_Z_INDEX = 100

    # --- Visual ---
    POINTS_BOX_SHADOW = 10
    POINTS_BORDER = 5
    POINTS_PARTIAL_OPACITY = 5
    POINTS_MODAL = 10
    PARTIAL_OPACITY_MIN = 0.8

    # --- Content ---
    POINTS_CLOSE_BUTTON = 15
    POINTS_ADS = 10
    POINTS_EXTERNAL_LINKS = 5

    MAX_SCORE = 100
    DEFAULT_THRESHOLD = 0.6

    def __init__(self, threshold: float = DEFAULT_THRESHOLD, clock: Optional[Clock] = None):
        self.threshold = threshold
        self._clock = clock or epoch_ms

    def analyze(self, characteristics: Any) -> AnalysisResult:
        """Score characteristics (a Characteristics or its wire mapping)."""
        if characteristics is None:
            raise InvalidInputError("characteristics are required")
        chars = Characteristics.from_data(characteristics)

        score, signals = self._score(chars)
        confidence = max(0.0, min(score / self.MAX_SCORE, 1.0))
        return AnalysisResult(
            characteristics=chars,
            confidence=confidence,
            is_likely_popup=confidence > self.threshold,
            timestamp=self._clock(),
            score=score,
            signals=signals,
        )

    def _score(self, chars: Characteristics):
        signals: List[Dict[str, Any]] = []
        score = 0

        def fire(name: str, points: int) -> None:
            nonlocal score
            score += points
            signals.append({"name": name, "points": points})

        # 1. Position/layout
        if chars.position == Position.FIXED:
            fire("fixed_position", self.POINTS_FIXED)
        elif chars.position == Position.ABSOLUTE:
            fire("absolute_position", self.POINTS_ABSOLUTE)

        z_index = chars.z_index or 0
        if z_index > self.HIGH_Z_INDEX:
            fire("high_z_index", self.POINTS_HIGH_Z_INDEX)
        elif z_index > self.RAISED_Z_INDEX:
            fire("raised_z_index", self.POINTS_RAISED_Z_INDEX)

        # 2. Visual
        if chars.flag("has_box_shadow"):
            fire("box_shadow", self.POINTS_BOX_SHADOW)
        if chars.flag("has_border"):
            fire("border", self.POINTS_BORDER)
        if chars.opacity is not None and self.PARTIAL_OPACITY_MIN < chars.opacity < 1.0:
            fire("partial_opacity", self.POINTS_PARTIAL_OPACITY)
        is_modal = chars.has_modal_shape() if chars.is_modal is None else chars.is_modal
        if is_modal:
            fire("modal", self.POINTS_MODAL)

        # 3. Content
        if chars.flag("has_close_button"):
            fire("close_button", self.POINTS_CLOSE_BUTTON)
        if chars.flag("contains_ads"):
            fire("ad_content", self.POINTS_ADS)
        if chars.flag("has_external_links"):
            fire("external_links", self.POINTS_EXTERNAL_LINKS)

        return score, signals

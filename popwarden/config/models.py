"""
Pydantic models for popwarden configuration validation.

These models define the schema for config.yaml. They provide:
- Type-safe configuration loading with automatic validation
- Human-readable error messages for invalid configuration
- Defaults that mirror the bundled defaults.yaml
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from popwarden.learning import thresholds


# ============================================================================
# Enums
# ============================================================================


class StorageBackendName(str, Enum):
    """Available storage backends."""
    MEMORY = "memory"
    SQLITE = "sqlite"


# ============================================================================
# Configuration Section Models
# ============================================================================


class ScoringConfig(BaseModel):
    """Configuration for the confidence rubric."""
    likely_popup_threshold: float = Field(default=0.6, ge=0.0, le=1.0)

    model_config = {"extra": "allow"}


class LearningConfig(BaseModel):
    """Configuration for the adaptive pattern store."""
    enabled: bool = True
    match_similarity: float = Field(default=thresholds.MATCH_SIMILARITY, ge=0.0, le=1.0)
    suggestion_similarity: float = Field(default=thresholds.SUGGESTION_SIMILARITY, ge=0.0, le=1.0)
    actionable_confidence: float = Field(default=thresholds.ACTIONABLE_CONFIDENCE, ge=0.0, le=1.0)
    auto_apply_confidence: float = Field(default=thresholds.AUTO_APPLY_CONFIDENCE, ge=0.0, le=1.0)
    initial_confidence: float = Field(default=thresholds.INITIAL_CONFIDENCE, ge=0.0, le=1.0)
    reinforce_step: float = Field(default=thresholds.REINFORCE_STEP, ge=0.0, le=1.0)
    penalty_step: float = Field(default=thresholds.PENALTY_STEP, ge=0.0, le=1.0)
    min_confidence: float = Field(default=thresholds.MIN_CONFIDENCE, ge=0.0, le=1.0)
    flip_threshold: float = Field(default=thresholds.FLIP_THRESHOLD, ge=0.0, le=1.0)
    flip_reset_confidence: float = Field(default=thresholds.FLIP_RESET_CONFIDENCE, ge=0.0, le=1.0)
    cleanup_min_confidence: float = Field(default=thresholds.CLEANUP_MIN_CONFIDENCE, ge=0.0, le=1.0)
    max_patterns: int = Field(default=thresholds.MAX_PATTERNS, gt=0)
    max_age_days: float = Field(default=thresholds.MAX_AGE_DAYS, gt=0)
    boolean_adoption_limit: int = Field(default=thresholds.BOOLEAN_ADOPTION_LIMIT, ge=1)

    model_config = {"extra": "allow"}

    @model_validator(mode="after")
    def check_similarity_order(self) -> "LearningConfig":
        if self.suggestion_similarity < self.match_similarity:
            raise ValueError(
                f"suggestion_similarity ({self.suggestion_similarity}) "
                f"must be at least match_similarity ({self.match_similarity})"
            )
        if self.auto_apply_confidence < self.actionable_confidence:
            raise ValueError(
                f"auto_apply_confidence ({self.auto_apply_confidence}) "
                f"must be at least actionable_confidence ({self.actionable_confidence})"
            )
        return self


class DecisionsConfig(BaseModel):
    """Configuration for decision timers, expiry and history."""
    initial_timeout_seconds: float = Field(default=30.0, gt=0)
    reminder_timeout_seconds: float = Field(default=15.0, gt=0)
    max_reminders: int = Field(default=2, ge=0)
    expiry_hours: float = Field(default=24.0, gt=0)
    restore_max_age_minutes: float = Field(default=5.0, gt=0)
    min_rearm_ms: int = Field(default=1000, ge=0)
    history_limit: int = Field(default=500, ge=500, le=1000)
    sweep_interval_seconds: float = Field(default=300.0, gt=0)

    model_config = {"extra": "allow"}

    @model_validator(mode="after")
    def check_timeouts(self) -> "DecisionsConfig":
        if self.reminder_timeout_seconds > self.initial_timeout_seconds:
            raise ValueError(
                f"reminder_timeout_seconds ({self.reminder_timeout_seconds}) "
                f"must not exceed initial_timeout_seconds ({self.initial_timeout_seconds})"
            )
        return self


class StorageConfig(BaseModel):
    """Configuration for the persistence backend."""
    backend: StorageBackendName = StorageBackendName.SQLITE
    path: Optional[str] = None

    model_config = {"extra": "allow"}


class LoggingConfig(BaseModel):
    """Configuration for the audit event log."""
    enabled: bool = True
    db_path: Optional[str] = None
    retention_days: int = Field(default=30, gt=0)

    model_config = {"extra": "allow"}


# ============================================================================
# Root Configuration Model
# ============================================================================


class PopwardenConfig(BaseModel):
    """
    Root Pydantic model for popwarden configuration.

    Validates the merged configuration from the bundled defaults and the
    user layer. Uses extra="allow" at the root level to be forward-compatible
    with new config keys added in future versions.
    """
    version: Optional[int] = None

    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    learning: LearningConfig = Field(default_factory=LearningConfig)
    decisions: DecisionsConfig = Field(default_factory=DecisionsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"extra": "allow"}

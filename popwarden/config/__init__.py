"""popwarden configuration module."""

from popwarden.config.loader import (
    CONFIG_DIR,
    DEFAULTS_FILE,
    USER_CONFIG_PATH,
    load_config,
    load_raw_config,
)
from popwarden.config.models import (
    DecisionsConfig,
    LearningConfig,
    LoggingConfig,
    PopwardenConfig,
    ScoringConfig,
    StorageConfig,
)

__all__ = [
    "CONFIG_DIR", "DEFAULTS_FILE", "USER_CONFIG_PATH",
    "load_config", "load_raw_config",
    "PopwardenConfig", "ScoringConfig", "LearningConfig",
    "DecisionsConfig", "StorageConfig", "LoggingConfig",
]

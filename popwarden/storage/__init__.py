"""Persistence backends for popwarden state."""

from popwarden.storage.base import (
    ALL_KEYS,
    COMPLETED_DECISIONS_KEY,
    LEARNING_PATTERNS_KEY,
    PENDING_DECISIONS_KEY,
    USER_PREFERENCES_KEY,
    StorageBackend,
)
from popwarden.storage.memory import MemoryStorage
from popwarden.storage.sqlite import DEFAULT_STATE_PATH, SqliteStorage

__all__ = [
    "StorageBackend", "MemoryStorage", "SqliteStorage", "DEFAULT_STATE_PATH",
    "ALL_KEYS", "LEARNING_PATTERNS_KEY", "PENDING_DECISIONS_KEY",
    "COMPLETED_DECISIONS_KEY", "USER_PREFERENCES_KEY",
]

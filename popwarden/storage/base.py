"""
Storage collaborator protocol.

popwarden persists JSON snapshots under a handful of logical keys through an
async key/value interface modelled on browser extension storage.
"""

from typing import Any, Dict, Iterable, Protocol, runtime_checkable

LEARNING_PATTERNS_KEY = "learningPatterns"
PENDING_DECISIONS_KEY = "pendingDecisions"
COMPLETED_DECISIONS_KEY = "completedDecisions"
USER_PREFERENCES_KEY = "userPreferences"

ALL_KEYS = (
    LEARNING_PATTERNS_KEY,
    PENDING_DECISIONS_KEY,
    COMPLETED_DECISIONS_KEY,
    USER_PREFERENCES_KEY,
)


@runtime_checkable
class StorageBackend(Protocol):
    """Async key/value storage. Implementations raise StorageError on failure."""

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Return {key: value} for the keys that exist."""
        ...

    async def set(self, items: Dict[str, Any]) -> None:
        """Write every key in items."""
        ...

    async def remove(self, keys: Iterable[str]) -> None:
        """Delete keys; missing keys are ignored."""
        ...

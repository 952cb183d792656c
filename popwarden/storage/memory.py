"""In-process storage backend."""

import json
from typing import Any, Dict, Iterable, Optional

from popwarden.errors import StorageError


class MemoryStorage:
    """Dict-backed storage that round-trips values through JSON.

    Values are serialized on write so callers can never share mutable
    state with the store, matching what a real persistent backend does.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._data[key] = self._encode(key, value)

    @staticmethod
    def _encode(key: str, value: Any) -> str:
        try:
            return json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for {key!r} is not JSON serializable: {e}") from e

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        return {key: json.loads(self._data[key]) for key in keys if key in self._data}

    async def set(self, items: Dict[str, Any]) -> None:
        encoded = {key: self._encode(key, value) for key, value in items.items()}
        self._data.update(encoded)

    async def remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def snapshot(self) -> Dict[str, Any]:
        """Synchronous copy of everything stored (for inspection)."""
        return {key: json.loads(value) for key, value in dict(self._data).items()}

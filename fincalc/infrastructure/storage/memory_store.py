"""
In-memory key-value store

Process-local backend used by tests and by deployments that do not need
the cache or queue to survive restarts.
"""

from typing import Dict, List, Optional

from .base import KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed store with write counters for inspection."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self.write_count = 0

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self.write_count += 1

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._data.pop(key, None) is not None:
                removed += 1
        if removed:
            self.write_count += 1
        return removed

    async def keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]

    def snapshot(self) -> Dict[str, str]:
        """Copy of the raw contents."""
        return dict(self._data)

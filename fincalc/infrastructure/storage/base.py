"""
Key-Value Store Interface

Abstract contract for durable string storage. Values are opaque strings
(callers serialize to JSON); keys are flat strings with ':'-separated scopes.
"""

from abc import ABC, abstractmethod
from typing import List, Optional


class KeyValueStore(ABC):
    """
    Abstract durable key-value store.

    Writes must be durable when the awaited call returns; callers rely on
    write-then-continue semantics for at-most-once persistence.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return stored value or None."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Insert or overwrite value."""
        pass

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""
        pass

    @abstractmethod
    async def keys(self, prefix: str = "") -> List[str]:
        """List keys starting with prefix."""
        pass

    async def close(self) -> None:
        """Release underlying resources."""
        return None

"""
JSON file key-value store

Keeps the whole keyspace in a single JSON document and rewrites it
atomically (temp file + os.replace) on every mutation. Intended for the
small cache and queue documents of a single offline client.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

from ...core.exceptions import StorageException
from .base import KeyValueStore

logger = logging.getLogger(__name__)


class JsonFileKeyValueStore(KeyValueStore):
    """Single-document JSON store with atomic rewrites."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._data: Optional[Dict[str, str]] = None
        self._lock = asyncio.Lock()

    async def _ensure_loaded(self) -> Dict[str, str]:
        if self._data is None:
            self._data = await asyncio.to_thread(self._read)
        return self._data

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            content = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            raise StorageException(
                message=f"Failed to read store file {self.path}",
                operation="read",
                original_error=e,
            )
        if not isinstance(content, dict):
            raise StorageException(
                message=f"Store file {self.path} does not contain a JSON object",
                operation="read",
            )
        return {str(k): str(v) for k, v in content.items()}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, sort_keys=True)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StorageException(
                message=f"Failed to write store file {self.path}",
                operation="write",
                original_error=e,
            )

    async def _flush(self, data: Dict[str, str]) -> None:
        await asyncio.to_thread(self._write, data)

    async def get(self, key: str) -> Optional[str]:
        data = await self._ensure_loaded()
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            updated = dict(await self._ensure_loaded())
            updated[key] = value
            await self._flush(updated)
            self._data = updated

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            updated = dict(await self._ensure_loaded())
            removed = 0
            for key in keys:
                if updated.pop(key, None) is not None:
                    removed += 1
            if removed:
                await self._flush(updated)
                self._data = updated
            return removed

    async def keys(self, prefix: str = "") -> List[str]:
        data = await self._ensure_loaded()
        return [key for key in data if key.startswith(prefix)]

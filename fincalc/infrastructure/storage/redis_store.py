"""
Redis key-value store

Durable backend on redis.asyncio. Connection and timeout failures are
retried with exponential backoff before surfacing as StorageException.
"""

import logging
from typing import List, Optional

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ...core.exceptions import StorageException
from .base import KeyValueStore

logger = logging.getLogger(__name__)

_retry_transient = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
    retry=retry_if_exception_type((RedisConnectionError, RedisTimeoutError)),
    reraise=True,
)


class RedisKeyValueStore(KeyValueStore):
    """
    Redis-backed store.

    All keys are namespaced with key_prefix so several services can share
    one Redis database.
    """

    def __init__(self, client: Redis, key_prefix: str = "fincalc"):
        self._redis = client
        self._prefix = f"{key_prefix}:" if key_prefix else ""

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "fincalc") -> "RedisKeyValueStore":
        """Create store from a redis:// URL."""
        client = Redis.from_url(url, decode_responses=True)
        return cls(client, key_prefix=key_prefix)

    def _full_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _strip(self, full_key: str) -> str:
        return full_key[len(self._prefix):]

    @_retry_transient
    async def _get(self, key: str) -> Optional[str]:
        return await self._redis.get(self._full_key(key))

    @_retry_transient
    async def _set(self, key: str, value: str) -> None:
        await self._redis.set(self._full_key(key), value)

    @_retry_transient
    async def _delete(self, *keys: str) -> int:
        return int(await self._redis.delete(*[self._full_key(k) for k in keys]))

    @_retry_transient
    async def _keys(self, prefix: str) -> List[str]:
        found = []
        async for full_key in self._redis.scan_iter(match=f"{self._full_key(prefix)}*"):
            found.append(self._strip(full_key))
        return found

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._get(key)
        except RedisError as e:
            logger.error(f"Redis get failed for {key}: {e}")
            raise StorageException(operation="get", original_error=e)

    async def set(self, key: str, value: str) -> None:
        try:
            await self._set(key, value)
        except RedisError as e:
            logger.error(f"Redis set failed for {key}: {e}")
            raise StorageException(operation="set", original_error=e)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return await self._delete(*keys)
        except RedisError as e:
            logger.error(f"Redis delete failed for {len(keys)} keys: {e}")
            raise StorageException(operation="delete", original_error=e)

    async def keys(self, prefix: str = "") -> List[str]:
        try:
            return await self._keys(prefix)
        except RedisError as e:
            logger.error(f"Redis scan failed for prefix {prefix}: {e}")
            raise StorageException(operation="scan", original_error=e)

    async def close(self) -> None:
        await self._redis.aclose()

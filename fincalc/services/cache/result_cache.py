"""
Result Cache Service

Key/value cache with TTL expiry and capacity-bounded eviction, mirrored
entry-by-entry into a durable KeyValueStore so it survives restarts.

Eviction approximates LRU by creation time: once the entry count exceeds
max_entries the oldest-created entries are removed until back at the limit.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

from opentelemetry import trace
from pydantic import ValidationError

from ...core.clock import Clock, system_clock
from ...domain.cache import CacheEntry, CacheKey, TTL
from ...infrastructure.storage import KeyValueStore
from ...monitoring import metrics

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class _Miss:
    """Sentinel distinguishing a miss from a cached None."""

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "CacheMiss"


CacheMiss = _Miss()


class ResultCache:
    """
    TTL + capacity bounded cache with write-through persistence.

    All reads check expiry; an expired entry is removed from memory and
    from the store before the miss is reported.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock = system_clock,
        namespace: str = "calculation_cache",
        max_entries: int = 100,
        default_ttl: Union[TTL, float] = 300,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.store = store
        self.clock = clock
        self.namespace = namespace
        self.max_entries = max_entries
        self.default_ttl = default_ttl if isinstance(default_ttl, TTL) else TTL(default_ttl)

        # Insertion-ordered; re-setting a key moves it to the end
        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._cleanup_task: Optional[asyncio.Task] = None

    def _storage_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    @staticmethod
    def _key_value(key: Union[str, CacheKey]) -> str:
        return key.value if isinstance(key, CacheKey) else key

    async def load(self) -> int:
        """
        Hydrate the in-memory index from durable storage.

        Expired or unreadable entries are deleted from the store.

        Returns:
            Number of live entries loaded
        """
        with tracer.start_as_current_span("result_cache.load") as span:
            span.set_attribute("namespace", self.namespace)
            now = self.clock.now()
            prefix = self._storage_key("")
            stale: List[str] = []
            loaded: List[CacheEntry] = []

            for storage_key in await self.store.keys(prefix):
                raw = await self.store.get(storage_key)
                if raw is None:
                    continue
                try:
                    entry = CacheEntry.model_validate_json(raw)
                except ValidationError as e:
                    logger.warning(f"Dropping unreadable cache entry {storage_key}: {e}")
                    stale.append(storage_key)
                    continue
                if entry.is_expired(now):
                    stale.append(storage_key)
                    continue
                loaded.append(entry)

            if stale:
                await self.store.delete(*stale)

            loaded.sort(key=lambda e: e.created_at)
            self._entries = {entry.key: entry for entry in loaded}
            evicted = await self._evict_overflow()

            span.set_attribute("loaded", len(self._entries))
            logger.info(
                f"Loaded {len(self._entries)} cache entries for {self.namespace}",
                extra={"stale": len(stale), "evicted": evicted},
            )
            return len(self._entries)

    async def get(self, key: Union[str, CacheKey], default: Any = CacheMiss) -> Any:
        """
        Return cached value, or default (CacheMiss) when absent or expired.
        """
        key = self._key_value(key)
        entry = self._entries.get(key)

        if entry is not None and entry.is_expired(self.clock.now()):
            await self._remove([key], reason="expired")
            entry = None

        if entry is None:
            self._misses += 1
            metrics.cache_requests_total.labels(cache=self.namespace, result="miss").inc()
            return default

        self._hits += 1
        metrics.cache_requests_total.labels(cache=self.namespace, result="hit").inc()
        return entry.value

    async def contains(self, key: Union[str, CacheKey]) -> bool:
        return (await self.get(key)) is not CacheMiss

    async def set(
        self,
        key: Union[str, CacheKey],
        value: Any,
        ttl: Optional[Union[TTL, float]] = None,
    ) -> CacheEntry:
        """
        Insert or overwrite an entry and evict overflow.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time to live (defaults to the cache default)

        Returns:
            Stored entry
        """
        key = self._key_value(key)
        if ttl is None:
            ttl = self.default_ttl
        elif not isinstance(ttl, TTL):
            ttl = TTL(ttl)

        entry = CacheEntry.create(key, value, self.clock.now(), ttl.seconds)

        await self.store.set(self._storage_key(key), entry.model_dump_json())

        self._entries.pop(key, None)
        self._entries[key] = entry

        await self._evict_overflow()

        logger.debug(
            f"Cached {key}",
            extra={"namespace": self.namespace, "ttl": ttl.seconds},
        )
        return entry

    async def delete(self, key: Union[str, CacheKey]) -> bool:
        key = self._key_value(key)
        if key not in self._entries:
            return False
        await self._remove([key], reason="deleted")
        return True

    async def clear(self, pattern: Optional[str] = None) -> int:
        """
        Remove all entries, or those matching pattern.

        A pattern ending in '*' matches as a key prefix; any other pattern
        matches as a substring.

        Returns:
            Number of entries removed
        """
        with tracer.start_as_current_span("result_cache.clear") as span:
            span.set_attribute("namespace", self.namespace)
            span.set_attribute("pattern", pattern or "*")

            if pattern is None:
                matched = list(self._entries)
                # Also sweep keys persisted by other processes sharing the store
                stored = await self.store.keys(self._storage_key(""))
                known = {self._storage_key(k) for k in matched}
                orphans = [k for k in stored if k not in known]
                if orphans:
                    await self.store.delete(*orphans)
            else:
                matched = [k for k in self._entries if self._matches(k, pattern)]

            if matched:
                await self._remove(matched, reason="invalidated")

            span.set_attribute("removed", len(matched))
            logger.info(
                f"Cleared {len(matched)} entries from {self.namespace}",
                extra={"pattern": pattern},
            )
            return len(matched)

    @staticmethod
    def _matches(key: str, pattern: str) -> bool:
        if pattern.endswith("*"):
            return key.startswith(pattern[:-1])
        return pattern in key

    async def cleanup_expired(self) -> int:
        """Remove every expired entry. Returns number removed."""
        now = self.clock.now()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        if expired:
            await self._remove(expired, reason="expired")
            logger.info(f"Cleaned {len(expired)} expired entries from {self.namespace}")
        return len(expired)

    async def _evict_overflow(self) -> int:
        overflow = len(self._entries) - self.max_entries
        if overflow <= 0:
            return 0

        # sorted() is stable, so equal timestamps keep insertion order
        oldest = sorted(self._entries.values(), key=lambda e: e.created_at)[:overflow]
        await self._remove([e.key for e in oldest], reason="capacity")
        return overflow

    async def _remove(self, keys: List[str], reason: str) -> None:
        for key in keys:
            self._entries.pop(key, None)
        await self.store.delete(*[self._storage_key(k) for k in keys])
        metrics.cache_evictions_total.labels(cache=self.namespace, reason=reason).inc(
            len(keys)
        )

    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> List[str]:
        return list(self._entries)

    def stats(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self._hits,
            "misses": self._misses,
        }

    # Periodic cleanup

    def start_cleanup(self, interval_seconds: float) -> None:
        """Start the background expired-entry sweep."""
        if self._cleanup_task and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop(interval_seconds))

    async def stop_cleanup(self) -> None:
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

    async def _cleanup_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.cleanup_expired()
            except Exception as e:
                logger.error(f"Cache cleanup failed for {self.namespace}: {e}")

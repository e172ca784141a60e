"""
Calculation Service

Client-facing facade over the result cache, the offline queue and its
processor. Immediate calculations go straight to the engine (through the
cache); deferred requests are queued and their outcomes delivered to
subscribers.
"""

import logging
import time
from typing import Any, Dict, Optional, Union

from ...constants import CALCULATION_CACHE_NAMESPACE, timestamp_to_iso
from ...core.clock import Clock, system_clock
from ...core.config import Settings
from ...domain.cache import CacheKey
from ...domain.calculations import (
    CalculationMetadata,
    CalculationPriority,
    CalculationResponse,
    CalculationTicket,
    CalculationType,
)
from ...infrastructure.storage import KeyValueStore
from ..cache import CacheMiss, ResultCache
from ..queues import OfflineRequestQueue, QueueProcessor, create_retry_strategy
from ..queues.offline_queue import parse_calculation_type
from ..subscriptions import OutcomeCallback, SubscriptionHub
from .engine import CalculationEngine

logger = logging.getLogger(__name__)


class CalculationService:
    """Cache-first calculation access with offline queueing."""

    def __init__(
        self,
        cache: ResultCache,
        queue: OfflineRequestQueue,
        processor: QueueProcessor,
        hub: SubscriptionHub,
        engine: CalculationEngine,
        clock: Clock = system_clock,
        cleanup_interval_seconds: float = 300.0,
    ):
        self.cache = cache
        self.queue = queue
        self.processor = processor
        self.hub = hub
        self.engine = engine
        self.clock = clock
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._started = False

    @classmethod
    def from_settings(
        cls,
        store: KeyValueStore,
        engine: CalculationEngine,
        settings: Settings,
        clock: Clock = system_clock,
    ) -> "CalculationService":
        """Wire cache, queue, processor and hub from settings."""
        cache = ResultCache(
            store,
            clock=clock,
            namespace=CALCULATION_CACHE_NAMESPACE,
            max_entries=settings.CALCULATION_CACHE_MAX_ENTRIES,
            default_ttl=settings.CALCULATION_CACHE_TTL_SECONDS,
        )
        queue = OfflineRequestQueue(
            store, clock=clock, max_retries=settings.QUEUE_MAX_RETRIES
        )
        hub = SubscriptionHub()
        processor = QueueProcessor(
            queue,
            engine,
            cache,
            hub,
            retry_strategy=create_retry_strategy(
                base_delay_seconds=settings.QUEUE_RETRY_BASE_DELAY_SECONDS,
                max_delay_seconds=settings.QUEUE_RETRY_MAX_DELAY_SECONDS,
                multiplier=settings.QUEUE_RETRY_MULTIPLIER,
                jitter=settings.retry_backoff_enabled,
            ),
            clock=clock,
            interval_seconds=settings.QUEUE_PROCESS_INTERVAL_SECONDS,
        )
        return cls(
            cache,
            queue,
            processor,
            hub,
            engine,
            clock=clock,
            cleanup_interval_seconds=settings.CACHE_CLEANUP_INTERVAL_SECONDS,
        )

    async def start(self) -> None:
        """Restore persisted state and start background processing."""
        if self._started:
            return
        await self.cache.load()
        await self.queue.load()
        self.cache.start_cleanup(self.cleanup_interval_seconds)
        self.processor.start()
        self._started = True
        logger.info(
            "Calculation service started",
            extra={"cache_size": self.cache.size(), "queue_size": len(self.queue)},
        )

    async def stop(self) -> None:
        await self.processor.stop()
        await self.cache.stop_cleanup()
        self._started = False
        logger.info("Calculation service stopped")

    async def calculate(
        self,
        calculation_type: Union[str, CalculationType],
        params: Dict[str, Any],
        use_cache: bool = True,
    ) -> CalculationResponse:
        """
        Compute now, consulting the cache first.

        Compute failures are reported in the response rather than raised.

        Raises:
            UnsupportedOperationException: Unknown calculation type
        """
        calculation_type = parse_calculation_type(calculation_type)
        started = time.perf_counter()
        cache_key = CacheKey.calculation(calculation_type.value, params)

        if use_cache:
            cached = await self.cache.get(cache_key)
            if cached is not CacheMiss:
                return self._response(calculation_type, started, data=cached, cache_hit=True)

        try:
            result = await self.engine.compute(calculation_type, params)
        except Exception as e:
            logger.warning(
                f"Calculation {calculation_type.value} failed: {e}",
                extra={"error_type": type(e).__name__},
            )
            return self._response(calculation_type, started, error=str(e) or type(e).__name__)

        if use_cache:
            try:
                await self.cache.set(cache_key, result)
            except Exception as e:
                logger.error(
                    f"Could not cache {calculation_type.value} result: {e}",
                    extra={"cache_key": cache_key.value},
                )
        return self._response(calculation_type, started, data=result)

    def _response(
        self,
        calculation_type: CalculationType,
        started: float,
        data: Any = None,
        error: Optional[str] = None,
        cache_hit: bool = False,
    ) -> CalculationResponse:
        success = error is None
        return CalculationResponse(
            success=success,
            data=data,
            error=error,
            execution_time_ms=(time.perf_counter() - started) * 1000,
            cache_hit=cache_hit,
            metadata=CalculationMetadata(
                calculation_type=calculation_type,
                timestamp=timestamp_to_iso(self.clock.now()),
                confidence=1.0 if success else 0.0,
            ),
        )

    async def request_calculation(
        self,
        calculation_type: Union[str, CalculationType],
        params: Dict[str, Any],
        priority: Union[str, CalculationPriority] = CalculationPriority.NORMAL,
        use_cache: bool = True,
    ) -> CalculationTicket:
        """
        Return a cached result, or queue the calculation for the processor.
        """
        calculation_type = parse_calculation_type(calculation_type)

        if use_cache:
            cached = await self.cache.get(CacheKey.calculation(calculation_type.value, params))
            if cached is not CacheMiss:
                return CalculationTicket(status="cached", data=cached, cache_hit=True)

        item = await self.processor.enqueue(calculation_type, params, priority)
        return CalculationTicket(calculation_id=item.id, status="queued")

    def subscribe(self, subscriber_id: str, callback: OutcomeCallback) -> None:
        self.hub.subscribe(subscriber_id, callback)

    def unsubscribe(self, subscriber_id: str) -> bool:
        return self.hub.unsubscribe(subscriber_id)

    async def clear_cache(self) -> int:
        return await self.cache.clear()

    def get_calculation_stats(self) -> Dict[str, int]:
        return {
            "cache_size": self.cache.size(),
            "queue_size": len(self.queue),
            "subscriber_count": len(self.hub),
        }

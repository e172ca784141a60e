"""
Queue Processor

Single-flight worker that drains the offline queue: dispatches each due item
to the calculation engine, caches successes, re-queues transient failures
and reports every terminal outcome through the subscription hub.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional, Union

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ...core.clock import Clock, system_clock
from ...core.exceptions import is_retryable
from ...domain.cache import CacheKey, TTL
from ...domain.calculations import (
    CalculationOutcome,
    CalculationPriority,
    CalculationType,
    OutcomeStatus,
    QueuedCalculation,
)
from ...monitoring import metrics
from ..cache import ResultCache
from ..calculations.engine import CalculationEngine
from ..subscriptions import SubscriptionHub
from .offline_queue import OfflineRequestQueue
from .retry import ImmediateRetry, RetryStrategy

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class ProcessorState(str, Enum):
    """Drain state; at most one drain runs at a time."""

    IDLE = "idle"
    DRAINING = "draining"


def describe_error(error: BaseException) -> str:
    message = str(error)
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


class QueueProcessor:
    """
    Drains an OfflineRequestQueue on a fixed interval and on demand.

    Each item is removed from the queue (and the removal persisted) before it
    is computed, so a crash mid-compute loses that attempt rather than
    repeating it.
    """

    def __init__(
        self,
        queue: OfflineRequestQueue,
        engine: CalculationEngine,
        cache: ResultCache,
        hub: SubscriptionHub,
        retry_strategy: Optional[RetryStrategy] = None,
        clock: Clock = system_clock,
        interval_seconds: float = 30.0,
        cache_ttl: Optional[Union[TTL, float]] = None,
    ):
        self.queue = queue
        self.engine = engine
        self.cache = cache
        self.hub = hub
        self.retry_strategy = retry_strategy or ImmediateRetry()
        self.clock = clock
        self.interval_seconds = interval_seconds
        self.cache_ttl = cache_ttl

        self._state = ProcessorState.IDLE
        self._drain_task: Optional[asyncio.Task] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._stats = {
            "drains": 0,
            "dispatched": 0,
            "succeeded": 0,
            "failed": 0,
            "retried": 0,
            "last_drain_at": None,
        }

    @property
    def state(self) -> ProcessorState:
        return self._state

    @property
    def is_draining(self) -> bool:
        return self._state is ProcessorState.DRAINING

    async def enqueue(
        self,
        calculation_type: Union[str, CalculationType],
        params: Optional[Dict[str, Any]] = None,
        priority: Union[str, CalculationPriority] = CalculationPriority.NORMAL,
    ) -> QueuedCalculation:
        """Enqueue an item and start a drain if the processor is idle."""
        item = await self.queue.enqueue(calculation_type, params, priority)
        self.trigger()
        return item

    def trigger(self) -> Optional[asyncio.Task]:
        """
        Schedule a drain unless one is already running.

        Returns:
            The scheduled drain task, or None when a drain is in progress
        """
        if self.is_draining or (self._drain_task and not self._drain_task.done()):
            return None
        self._drain_task = asyncio.create_task(self.drain())
        return self._drain_task

    async def drain(self) -> int:
        """
        Dispatch due items until none remain.

        Returns:
            Number of items dispatched (0 when another drain holds the queue)
        """
        if self.is_draining:
            logger.debug("Drain already in progress; skipping")
            return 0

        self._state = ProcessorState.DRAINING
        dispatched = 0
        try:
            with tracer.start_as_current_span("queue_processor.drain") as span:
                while True:
                    item = self.queue.next_due(self.clock.now())
                    if item is None:
                        break
                    try:
                        await self._dispatch(item)
                    except Exception as e:
                        # Stop and leave the rest of the queue for the next tick.
                        logger.error(
                            f"Stopping drain: dispatch of {item.id} failed: {describe_error(e)}",
                            extra={"calculation_id": item.id},
                        )
                        span.set_status(Status(StatusCode.ERROR, str(e)))
                        break
                    dispatched += 1

                span.set_attribute("dispatched", dispatched)
                span.set_attribute("remaining", len(self.queue))
        finally:
            self._state = ProcessorState.IDLE
            self._stats["drains"] += 1
            self._stats["last_drain_at"] = self.clock.now()

        if dispatched:
            logger.info(
                f"Drained {dispatched} calculations",
                extra={"remaining": len(self.queue)},
            )
        return dispatched

    async def _dispatch(self, item: QueuedCalculation) -> None:
        try:
            await self.queue.remove(item.id)
        except Exception as e:
            logger.error(
                f"Could not dequeue {item.id}; it stays queued: {e}",
                extra={"calculation_id": item.id},
            )
            raise
        attempt = item.retry_count + 1
        self._stats["dispatched"] += 1

        with tracer.start_as_current_span("queue_processor.dispatch") as span:
            span.set_attribute("calculation_id", item.id)
            span.set_attribute("calculation_type", item.type.value)
            span.set_attribute("attempt", attempt)

            try:
                result = await self.engine.compute(item.type, item.params)
            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.set_attribute("retryable", is_retryable(e))
                await self._handle_failure(item, e, attempt)
                return

            cache_key = CacheKey.calculation(item.type.value, item.params)
            try:
                await self.cache.set(cache_key, result, ttl=self.cache_ttl)
            except Exception as e:
                logger.error(
                    f"Could not cache result of {item.id}: {e}",
                    extra={"calculation_id": item.id},
                )

            span.set_status(Status(StatusCode.OK))
            self._stats["succeeded"] += 1
            metrics.queue_items_total.labels(outcome="succeeded").inc()
            logger.info(
                f"Calculation {item.id} succeeded",
                extra={"calculation_type": item.type.value, "attempts": attempt},
            )
            self.hub.broadcast(
                CalculationOutcome(
                    calculation_id=item.id,
                    calculation_type=item.type,
                    status=OutcomeStatus.SUCCEEDED,
                    result=result,
                    errors=item.errors,
                    attempts=attempt,
                    cache_key=cache_key.value,
                    completed_at=self.clock.now(),
                )
            )

    async def _handle_failure(
        self, item: QueuedCalculation, error: Exception, attempt: int
    ) -> None:
        errors = item.errors + [describe_error(error)]
        decision = self.retry_strategy.decide(item, error, attempt)

        if decision.retry:
            retried = item.model_copy(
                update={
                    "retry_count": attempt,
                    "errors": errors,
                    "last_error_type": type(error).__name__,
                    "available_at": self.clock.now() + decision.delay_seconds,
                }
            )
            try:
                await self.queue.requeue(retried)
            except Exception as e:
                logger.error(
                    f"Could not requeue {item.id}: {e}",
                    extra={"calculation_id": item.id},
                )
                errors.append(describe_error(e))
            else:
                self._stats["retried"] += 1
                logger.warning(
                    f"Calculation {item.id} failed, retry {attempt}/{item.max_retries}",
                    extra={
                        "error": str(error),
                        "delay_seconds": decision.delay_seconds,
                    },
                )
                return

        self._stats["failed"] += 1
        metrics.queue_items_total.labels(outcome="failed").inc()
        logger.error(
            f"Calculation {item.id} failed permanently after {attempt} attempts",
            extra={
                "calculation_type": item.type.value,
                "reason": decision.reason,
                "errors": errors,
            },
        )
        self.hub.broadcast(
            CalculationOutcome(
                calculation_id=item.id,
                calculation_type=item.type,
                status=OutcomeStatus.FAILED,
                error=errors[-1],
                errors=errors,
                attempts=attempt,
                completed_at=self.clock.now(),
            )
        )

    # Interval loop

    def start(self) -> None:
        """Start the interval loop and kick off an initial drain."""
        if self._loop_task and not self._loop_task.done():
            return
        self._loop_task = asyncio.create_task(self._run_loop())
        if len(self.queue):
            self.trigger()
        logger.info(
            "Queue processor started",
            extra={"interval_seconds": self.interval_seconds},
        )

    async def stop(self, graceful_timeout: float = 5.0) -> None:
        """Stop the loop and wait briefly for an in-progress drain."""
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._drain_task and not self._drain_task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self._drain_task), graceful_timeout)
            except asyncio.TimeoutError:
                logger.warning("Drain did not finish before shutdown; cancelling")
                self._drain_task.cancel()
                try:
                    await self._drain_task
                except asyncio.CancelledError:
                    pass
        logger.info("Queue processor stopped")

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            task = self.trigger()
            if task is not None:
                try:
                    await task
                except Exception as e:
                    logger.error(f"Queue drain failed: {e}")

    def stats(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "queue_size": len(self.queue),
            "running": bool(self._loop_task and not self._loop_task.done()),
            **self._stats,
        }

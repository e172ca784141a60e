"""
Batch Result Aggregator

Turns a BatchOutcome into the client response and performs the post-batch
side effects: one round of cache invalidation for the touched resource
kinds and one notification to the submitting user.
"""

import logging
from typing import Iterable, List, Optional

from opentelemetry import trace

from ...domain.cache import CacheKey
from ...monitoring import metrics
from ..cache import ResultCache
from ..notifications import NotificationChannel
from .admission import BatchOutcome
from .models import BatchResponse, BatchStatus, BatchSummary
from .resources import ResourceRegistry

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def summarize(outcome: BatchOutcome) -> BatchSummary:
    results = outcome.results
    return BatchSummary(
        total=len(results),
        successful=sum(1 for r in results if r.success),
        failed=sum(1 for r in results if not r.success and not (r.skipped or r.timed_out)),
        skipped=sum(1 for r in results if r.skipped),
        timed_out=sum(1 for r in results if r.timed_out),
        duration=outcome.duration_ms,
        complete=not outcome.timed_out,
    )


class BatchResultAggregator:
    """Builds batch responses and fires their side effects exactly once."""

    def __init__(
        self,
        cache: ResultCache,
        registry: ResourceRegistry,
        channel: NotificationChannel,
    ):
        self.cache = cache
        self.registry = registry
        self.channel = channel

    async def finalize(self, outcome: BatchOutcome, user_id: str) -> BatchResponse:
        """
        Summarize outcome, invalidate caches and notify the user.

        Side-effect failures are logged; the batch itself has already been
        applied, so they never change the response.
        """
        summary = summarize(outcome)
        response = BatchResponse(
            success=summary.complete and summary.successful == summary.total,
            status=outcome.status,
            results=outcome.results,
            summary=summary,
            error=(
                f"Batch operation timed out after {outcome.options.timeout_ms}ms"
                if outcome.timed_out
                else None
            ),
        )

        with tracer.start_as_current_span("batch.finalize") as span:
            span.set_attribute("status", outcome.status.value)
            span.set_attribute("successful", summary.successful)
            span.set_attribute("failed", summary.failed)

            await self.invalidate(user_id, (op.resource for op in outcome.operations))
            await self.notify(
                user_id,
                {
                    "type": "account_update",
                    "data": {
                        "type": "batch_complete",
                        "status": outcome.status.value,
                        "summary": {
                            "total": summary.total,
                            "successful": summary.successful,
                            "failed": summary.failed,
                        },
                    },
                },
            )

        metrics.batch_requests_total.labels(status=outcome.status.value).inc()
        metrics.batch_duration_seconds.observe(outcome.duration_ms / 1000)

        log = logger.warning if outcome.status is BatchStatus.TIMEOUT else logger.info
        log(
            f"Batch {outcome.status.value} for user {user_id}",
            extra={"summary": summary.model_dump()},
        )
        return response

    async def invalidate(self, user_id: str, resource_kinds: Iterable[str]) -> int:
        """
        Clear cached entries for every touched resource kind.

        Returns:
            Number of cache entries removed
        """
        prefixes: List[str] = []
        for kind in sorted(set(resource_kinds)):
            for prefix in self.registry.cache_prefixes(kind):
                if prefix not in prefixes:
                    prefixes.append(prefix)

        removed = 0
        for prefix in prefixes:
            key = f"{prefix}:{user_id}"
            try:
                key = CacheKey.resource(prefix, user_id).value
                removed += int(await self.cache.delete(key))
                removed += await self.cache.clear(f"{key}:*")
            except Exception as e:
                logger.error(
                    f"Cache invalidation failed for {key}: {e}",
                    extra={"user_id": user_id},
                )
        return removed

    async def notify(self, user_id: str, event: dict) -> Optional[bool]:
        try:
            await self.channel.broadcast_to_user(user_id, event)
            return True
        except Exception as e:
            logger.error(
                f"Notification to user {user_id} failed: {e}",
                extra={"event_type": event.get("type")},
            )
            return False

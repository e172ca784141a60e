"""
Batch Admission Controller

Runs the operations of a batch in parallel under a concurrency cap.

Admission is semaphore based: each operation waits for a slot and holds it
until it settles, so at most max_concurrency operations are ever in flight.
Results are written into a pre-sized list by index, keeping results[i]
aligned with operations[i] regardless of completion order.

On timeout the call returns a snapshot of the results. Admission is closed
so queued operations never start, but operations already in flight are not
cancelled; they keep running (and apply their effects) as dangling work
tracked by the controller.
"""

import asyncio
import logging
import time
from typing import List, Optional, Set

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ...core.exceptions import ValidationException
from ...monitoring import metrics
from .models import (
    BatchOperation,
    BatchOperationResult,
    BatchRequest,
    BatchStatus,
    ResolvedBatchOptions,
)
from .resources import ResourceRegistry, execute_operation

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class BatchOutcome:
    """
    Settled (or timed-out) view of one batch execution.

    results is a snapshot taken when the batch returned; late completions of
    dangling operations do not change it.
    """

    def __init__(
        self,
        operations: List[BatchOperation],
        results: List[BatchOperationResult],
        status: BatchStatus,
        duration_ms: int,
        options: ResolvedBatchOptions,
        pending: Set[asyncio.Task],
    ):
        self.operations = operations
        self.results = results
        self.status = status
        self.duration_ms = duration_ms
        self.options = options
        self._pending = pending

    @property
    def timed_out(self) -> bool:
        return self.status is BatchStatus.TIMEOUT

    @property
    def outstanding(self) -> int:
        """Operations from this batch that are still running."""
        return sum(1 for task in self._pending if not task.done())

    async def wait_outstanding(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for dangling operations of this batch.

        Returns:
            True when nothing is left running
        """
        pending = [task for task in self._pending if not task.done()]
        if not pending:
            return True
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        return not still_pending


class BatchAdmissionController:
    """Validates batches and executes them with bounded concurrency."""

    def __init__(
        self,
        registry: ResourceRegistry,
        max_operations: int = 100,
        default_max_concurrency: int = 10,
        max_concurrency_limit: int = 50,
        default_timeout_ms: int = 30000,
        max_timeout_ms: int = 120000,
    ):
        self.registry = registry
        self.max_operations = max_operations
        self.default_max_concurrency = default_max_concurrency
        self.max_concurrency_limit = max_concurrency_limit
        self.default_timeout_ms = default_timeout_ms
        self.max_timeout_ms = max_timeout_ms

        self._dangling: Set[asyncio.Task] = set()

    def validate(self, request: BatchRequest) -> ResolvedBatchOptions:
        """
        Check batch bounds and resolve options against server defaults.

        Raises:
            ValidationException: Empty or oversized batch, or options out of range
        """
        if not request.operations:
            raise ValidationException(
                "Operations array is required and cannot be empty", field="operations"
            )
        if len(request.operations) > self.max_operations:
            raise ValidationException(
                f"Maximum {self.max_operations} operations allowed per batch",
                field="operations",
                details={"received": len(request.operations)},
            )

        options = request.options
        max_concurrency = options.max_concurrency or self.default_max_concurrency
        if options.max_concurrency is not None and not (
            1 <= options.max_concurrency <= self.max_concurrency_limit
        ):
            raise ValidationException(
                f"maxConcurrency must be between 1 and {self.max_concurrency_limit}",
                field="maxConcurrency",
            )

        timeout_ms = options.timeout if options.timeout is not None else self.default_timeout_ms
        if not 1 <= timeout_ms <= self.max_timeout_ms:
            raise ValidationException(
                f"timeout must be between 1 and {self.max_timeout_ms} ms",
                field="timeout",
            )

        return ResolvedBatchOptions(
            continue_on_error=options.continue_on_error,
            max_concurrency=max_concurrency,
            timeout_ms=timeout_ms,
        )

    async def execute(self, request: BatchRequest, user_id: str) -> BatchOutcome:
        """
        Execute a validated batch.

        Raises:
            ValidationException: Before any operation runs, when the batch is invalid
        """
        options = self.validate(request)
        operations = list(request.operations)
        started = time.perf_counter()

        with tracer.start_as_current_span("batch.execute") as span:
            span.set_attribute("user_id", user_id)
            span.set_attribute("operations", len(operations))
            span.set_attribute("max_concurrency", options.max_concurrency)
            span.set_attribute("continue_on_error", options.continue_on_error)

            results: List[Optional[BatchOperationResult]] = [None] * len(operations)
            semaphore = asyncio.Semaphore(options.max_concurrency)
            stop_admission = asyncio.Event()
            admission_closed = False

            known_kinds = set(self.registry.kinds)

            async def run(index: int, operation: BatchOperation) -> None:
                # Metric labels are bounded to registered kinds
                resource_label = (
                    operation.resource if operation.resource in known_kinds else "unsupported"
                )
                async with semaphore:
                    if admission_closed:
                        return
                    if stop_admission.is_set():
                        results[index] = BatchOperationResult.skipped_result(operation.id)
                        metrics.batch_operations_total.labels(
                            resource=resource_label, outcome="skipped"
                        ).inc()
                        return
                    try:
                        data = await execute_operation(self.registry, operation, user_id)
                    except Exception as e:
                        results[index] = BatchOperationResult.failure(
                            operation.id, str(e) or type(e).__name__
                        )
                        metrics.batch_operations_total.labels(
                            resource=resource_label, outcome="failed"
                        ).inc()
                        logger.warning(
                            f"Batch operation {operation.id} failed: {e}",
                            extra={
                                "resource": operation.resource,
                                "type": operation.type,
                                "error_type": type(e).__name__,
                            },
                        )
                        if not options.continue_on_error:
                            stop_admission.set()
                    else:
                        results[index] = BatchOperationResult.ok(operation.id, data)
                        metrics.batch_operations_total.labels(
                            resource=resource_label, outcome="succeeded"
                        ).inc()

            tasks = [
                asyncio.create_task(run(index, operation))
                for index, operation in enumerate(operations)
            ]
            _, pending = await asyncio.wait(tasks, timeout=options.timeout_ms / 1000)

            status = BatchStatus.COMPLETED
            if pending:
                admission_closed = True
                status = BatchStatus.TIMEOUT
                self._track_dangling(pending, user_id)
                span.set_status(Status(StatusCode.ERROR, "batch timeout"))
                logger.warning(
                    f"Batch timed out after {options.timeout_ms}ms",
                    extra={"user_id": user_id, "outstanding": len(pending)},
                )

            snapshot = [
                result
                if result is not None
                else BatchOperationResult.timed_out_result(operations[index].id)
                for index, result in enumerate(results)
            ]
            span.set_attribute("status", status.value)

        return BatchOutcome(
            operations=operations,
            results=snapshot,
            status=status,
            duration_ms=int((time.perf_counter() - started) * 1000),
            options=options,
            pending=set(pending),
        )

    def _track_dangling(self, tasks: Set[asyncio.Task], user_id: str) -> None:
        for task in tasks:
            self._dangling.add(task)
            task.add_done_callback(self._on_dangling_done)
        logger.info(
            f"{len(tasks)} batch operations continue after response",
            extra={"user_id": user_id, "dangling_total": len(self._dangling)},
        )

    def _on_dangling_done(self, task: asyncio.Task) -> None:
        self._dangling.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Dangling batch operation crashed: {task.exception()}")

    def dangling_count(self) -> int:
        return len(self._dangling)

    async def shutdown(self, timeout: float = 5.0) -> int:
        """
        Wait for dangling operations, cancelling any still running after timeout.

        Returns:
            Number of operations cancelled
        """
        if not self._dangling:
            return 0
        _, still_pending = await asyncio.wait(set(self._dangling), timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            await asyncio.gather(*still_pending, return_exceptions=True)
            logger.warning(f"Cancelled {len(still_pending)} dangling batch operations")
        return len(still_pending)

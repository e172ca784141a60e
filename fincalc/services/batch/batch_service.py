"""
Batch Service

Entry point used by the API: executes batches through the admission
controller and the aggregator, runs sequential balance updates, and reports
the advertised limits.
"""

import logging
from typing import Any, Dict

from ...core.config import Settings
from ...core.exceptions import ValidationException
from .admission import BatchAdmissionController
from .aggregator import BatchResultAggregator
from .models import (
    BalanceUpdateRequest,
    BalanceUpdateResponse,
    BalanceUpdateSummary,
    BatchOperationResult,
    BatchRequest,
    BatchResponse,
)

logger = logging.getLogger(__name__)


class BatchService:
    def __init__(
        self,
        controller: BatchAdmissionController,
        aggregator: BatchResultAggregator,
        max_balance_updates: int = 50,
        rate_limit_operations: str = "10 per minute",
        rate_limit_balance_updates: str = "20 per minute",
    ):
        self.controller = controller
        self.aggregator = aggregator
        self.max_balance_updates = max_balance_updates
        self.rate_limit_operations = rate_limit_operations
        self.rate_limit_balance_updates = rate_limit_balance_updates

    @classmethod
    def from_settings(
        cls, aggregator: BatchResultAggregator, settings: Settings
    ) -> "BatchService":
        controller = BatchAdmissionController(
            aggregator.registry,
            max_operations=settings.BATCH_MAX_OPERATIONS,
            default_max_concurrency=settings.BATCH_DEFAULT_MAX_CONCURRENCY,
            max_concurrency_limit=settings.BATCH_MAX_CONCURRENCY_LIMIT,
            default_timeout_ms=settings.BATCH_DEFAULT_TIMEOUT_MS,
            max_timeout_ms=settings.BATCH_MAX_TIMEOUT_MS,
        )
        return cls(
            controller,
            aggregator,
            max_balance_updates=settings.BATCH_MAX_BALANCE_UPDATES,
            rate_limit_operations=settings.BATCH_RATE_LIMIT_OPERATIONS,
            rate_limit_balance_updates=settings.BATCH_RATE_LIMIT_BALANCE_UPDATES,
        )

    async def execute_batch(self, request: BatchRequest, user_id: str) -> BatchResponse:
        outcome = await self.controller.execute(request, user_id)
        return await self.aggregator.finalize(outcome, user_id)

    async def update_balances(
        self, request: BalanceUpdateRequest, user_id: str
    ) -> BalanceUpdateResponse:
        """Apply balance updates one after another, then invalidate and notify once."""
        if not request.updates:
            raise ValidationException(
                "Updates array is required and cannot be empty", field="updates"
            )
        if len(request.updates) > self.max_balance_updates:
            raise ValidationException(
                f"Maximum {self.max_balance_updates} balance updates allowed per batch",
                field="updates",
                details={"received": len(request.updates)},
            )

        accounts = self.aggregator.registry.get("account")
        results = []
        for update in request.updates:
            try:
                account = await accounts.update(user_id, update.id, {"balance": update.balance})
            except Exception as e:
                results.append(BatchOperationResult.failure(update.id, str(e) or type(e).__name__))
            else:
                results.append(BatchOperationResult.ok(update.id, account))

        successful = sum(1 for r in results if r.success)
        await self.aggregator.invalidate(user_id, ["account"])
        await self.aggregator.notify(
            user_id,
            {
                "type": "account_update",
                "data": {"type": "balance_updates", "count": successful},
            },
        )

        logger.info(
            f"Applied {successful}/{len(results)} balance updates",
            extra={"user_id": user_id},
        )
        return BalanceUpdateResponse(
            success=successful == len(results),
            results=results,
            summary=BalanceUpdateSummary(
                total=len(results), successful=successful, failed=len(results) - successful
            ),
        )

    def status(self) -> Dict[str, Any]:
        return {
            "success": True,
            "limits": {
                "maxOperationsPerBatch": self.controller.max_operations,
                "maxBalanceUpdatesPerBatch": self.max_balance_updates,
                "maxConcurrency": self.controller.default_max_concurrency,
                "timeoutMs": self.controller.default_timeout_ms,
            },
            "rateLimit": {
                "operations": self.rate_limit_operations,
                "balanceUpdates": self.rate_limit_balance_updates,
            },
        }

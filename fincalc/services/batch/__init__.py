"""
Batch execution services
"""

from .admission import BatchAdmissionController, BatchOutcome
from .aggregator import BatchResultAggregator, summarize
from .batch_service import BatchService
from .models import (
    BalanceUpdate,
    BalanceUpdateRequest,
    BalanceUpdateResponse,
    BatchOperation,
    BatchOperationResult,
    BatchOptions,
    BatchRequest,
    BatchResponse,
    BatchStatus,
    BatchSummary,
)
from .resources import (
    InMemoryResourceService,
    ResourceRegistry,
    ResourceService,
    create_default_registry,
    execute_operation,
)

__all__ = [
    "BatchAdmissionController",
    "BatchOutcome",
    "BatchResultAggregator",
    "summarize",
    "BatchService",
    "BalanceUpdate",
    "BalanceUpdateRequest",
    "BalanceUpdateResponse",
    "BatchOperation",
    "BatchOperationResult",
    "BatchOptions",
    "BatchRequest",
    "BatchResponse",
    "BatchStatus",
    "BatchSummary",
    "InMemoryResourceService",
    "ResourceRegistry",
    "ResourceService",
    "create_default_registry",
    "execute_operation",
]

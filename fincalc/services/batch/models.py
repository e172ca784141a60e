"""
Batch API models

Request and response shapes for batch execution. Field names on the wire
follow the client contract (camelCase options, resourceId).
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class OperationType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    READ = "read"


class BatchStatus(str, Enum):
    COMPLETED = "completed"
    TIMEOUT = "timeout"


SKIPPED_ERROR = "Skipped: batch stopped after an earlier failure"
TIMED_OUT_ERROR = "Operation timed out"


class BatchOperation(BaseModel):
    """One CRUD operation inside a batch."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, description="Client-assigned operation id")
    # Kept as plain strings so an unknown type or resource fails only its own operation
    type: str = Field(..., description="create | update | delete | read")
    resource: str = Field(..., description="Resource kind (account, goal, scenario)")
    data: Optional[Dict[str, Any]] = None
    resource_id: Optional[str] = Field(default=None, alias="resourceId")


class BatchOptions(BaseModel):
    """Execution options; unset values take the server defaults."""

    model_config = ConfigDict(populate_by_name=True)

    continue_on_error: bool = Field(default=True, alias="continueOnError")
    max_concurrency: Optional[int] = Field(default=None, alias="maxConcurrency")
    timeout: Optional[int] = Field(default=None, description="Aggregate timeout in ms")


class BatchRequest(BaseModel):
    operations: List[BatchOperation] = Field(default_factory=list)
    options: BatchOptions = Field(default_factory=BatchOptions)


class ResolvedBatchOptions(BaseModel):
    continue_on_error: bool
    max_concurrency: int
    timeout_ms: int


class BatchOperationResult(BaseModel):
    """Outcome of one operation; results[i] always answers operations[i]."""

    id: str
    success: bool
    data: Any = None
    error: Optional[str] = None
    skipped: bool = False
    timed_out: bool = False

    @classmethod
    def ok(cls, operation_id: str, data: Any) -> "BatchOperationResult":
        return cls(id=operation_id, success=True, data=data)

    @classmethod
    def failure(cls, operation_id: str, error: str) -> "BatchOperationResult":
        return cls(id=operation_id, success=False, error=error)

    @classmethod
    def skipped_result(cls, operation_id: str) -> "BatchOperationResult":
        return cls(id=operation_id, success=False, error=SKIPPED_ERROR, skipped=True)

    @classmethod
    def timed_out_result(cls, operation_id: str) -> "BatchOperationResult":
        return cls(id=operation_id, success=False, error=TIMED_OUT_ERROR, timed_out=True)


class BatchSummary(BaseModel):
    total: int
    successful: int
    failed: int
    skipped: int = 0
    timed_out: int = 0
    duration: int = Field(..., description="Milliseconds until the response was built")
    complete: bool = True


class BatchResponse(BaseModel):
    success: bool
    status: BatchStatus
    results: List[BatchOperationResult]
    summary: BatchSummary
    error: Optional[str] = None


class BalanceUpdate(BaseModel):
    id: str = Field(..., min_length=1)
    balance: float


class BalanceUpdateRequest(BaseModel):
    updates: List[BalanceUpdate] = Field(default_factory=list)


class BalanceUpdateSummary(BaseModel):
    total: int
    successful: int
    failed: int


class BalanceUpdateResponse(BaseModel):
    success: bool
    results: List[BatchOperationResult]
    summary: BalanceUpdateSummary

"""
Calculation Entities

Queued calculation requests and the records produced when they settle.
"""

import random
import string
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from ...constants import CALCULATION_RESULT_VERSION
from .value_objects import CalculationType, CalculationPriority, OutcomeStatus

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_calculation_id(now: float) -> str:
    """Build a calc_<epoch ms>_<9 base36 chars> identifier."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"calc_{int(now * 1000)}_{suffix}"


class QueuedCalculation(BaseModel):
    """Pending calculation request held in the offline queue."""

    id: str = Field(..., min_length=1)
    type: CalculationType
    params: Dict[str, Any] = Field(default_factory=dict)
    enqueued_at: float = Field(..., description="Epoch seconds of first enqueue")
    sequence: int = Field(..., ge=0, description="Monotonic tie-breaker")
    priority: CalculationPriority = CalculationPriority.NORMAL
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=1, le=10)
    available_at: float = Field(default=0.0, description="Not dispatched before this")
    errors: List[str] = Field(default_factory=list)
    last_error_type: Optional[str] = None

    @model_validator(mode="after")
    def validate_retry_budget(self):
        """retry_count never exceeds max_retries."""
        if self.retry_count > self.max_retries:
            raise ValueError("retry_count cannot exceed max_retries")
        return self

    @property
    def sort_key(self) -> Tuple[int, int]:
        """Total order: priority rank, then sequence."""
        return (self.priority.rank, self.sequence)

    def is_due(self, now: float) -> bool:
        return self.available_at <= now


class CalculationOutcome(BaseModel):
    """Terminal outcome broadcast to subscribers."""

    calculation_id: str
    calculation_type: CalculationType
    status: OutcomeStatus
    result: Any = None
    error: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    attempts: int = 0
    cache_key: Optional[str] = None
    completed_at: float

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.SUCCEEDED


class CalculationMetadata(BaseModel):
    """Metadata attached to every calculation response."""

    calculation_type: CalculationType
    timestamp: str
    version: str = CALCULATION_RESULT_VERSION
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)


class CalculationResponse(BaseModel):
    """Result of an immediate calculation."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    execution_time_ms: float = 0.0
    cache_hit: bool = False
    metadata: CalculationMetadata


class CalculationTicket(BaseModel):
    """Handle returned when a calculation is requested through the queue."""

    calculation_id: Optional[str] = None
    status: str = Field(..., description="cached | queued")
    data: Any = None
    cache_hit: bool = False

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in ("cached", "queued"):
            raise ValueError("status must be 'cached' or 'queued'")
        return v

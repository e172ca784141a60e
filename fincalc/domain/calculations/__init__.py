"""
Calculation Domain Models

Calculation kinds, queue priorities, queued requests and their outcomes.
"""

from .value_objects import CalculationType, CalculationPriority, OutcomeStatus
from .entities import (
    QueuedCalculation,
    CalculationOutcome,
    CalculationMetadata,
    CalculationResponse,
    CalculationTicket,
    generate_calculation_id,
)

__all__ = [
    "CalculationType",
    "CalculationPriority",
    "OutcomeStatus",
    "QueuedCalculation",
    "CalculationOutcome",
    "CalculationMetadata",
    "CalculationResponse",
    "CalculationTicket",
    "generate_calculation_id",
]

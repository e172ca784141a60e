"""
Calculation Value Objects
"""

from enum import Enum


class CalculationType(str, Enum):
    """Calculation kinds the planner can schedule."""

    COMPOUND_INTEREST = "compound_interest"
    MONTE_CARLO = "monte_carlo"
    FIRE_CALCULATION = "fire_calculation"
    DEBT_PAYOFF = "debt_payoff"
    GOAL_PROJECTION = "goal_projection"
    ACCOUNT_PROJECTION = "account_projection"


class CalculationPriority(str, Enum):
    """Queue priority classes (realtime dispatches first)."""

    REALTIME = "realtime"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank; lower ranks dequeue first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    CalculationPriority.REALTIME: 0,
    CalculationPriority.HIGH: 1,
    CalculationPriority.NORMAL: 2,
    CalculationPriority.LOW: 3,
}


class OutcomeStatus(str, Enum):
    """Terminal outcome of a queued calculation."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"

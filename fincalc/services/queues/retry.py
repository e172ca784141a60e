"""
Queue Retry Policies

Retry decisions for failed calculation dispatches.

The default strategy re-dispatches immediately (the item goes to the tail of
its priority class and is picked up within the same drain). Exponential
backoff with jitter is available for deployments that should not hammer a
persistently failing compute dependency.
"""

import random
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field

from ...core.exceptions import is_retryable
from ...domain.calculations import QueuedCalculation


class RetryPolicy(BaseModel):
    """Base retry policy configuration."""

    base_delay_seconds: float = Field(
        default=0.0, ge=0.0, le=3600.0, description="Base delay in seconds"
    )
    max_delay_seconds: float = Field(
        default=300.0, ge=0.0, le=3600.0, description="Maximum delay in seconds"
    )
    multiplier: float = Field(
        default=2.0, ge=1.0, le=10.0, description="Delay multiplier"
    )
    jitter: bool = Field(default=False, description="Add +/-25% jitter to delays")


class RetryDecision(BaseModel):
    """Outcome of consulting a retry strategy after a failed dispatch."""

    retry: bool
    delay_seconds: float = Field(default=0.0, ge=0.0)
    reason: str


class RetryStrategy(ABC):
    """Abstract base class for retry strategies."""

    def decide(
        self, item: QueuedCalculation, error: BaseException, attempt: int
    ) -> RetryDecision:
        """
        Decide whether a failed item is re-queued.

        Args:
            item: Item whose dispatch failed (retry_count not yet incremented)
            error: Exception raised by the dispatch
            attempt: Number of attempts made so far, including this one

        Returns:
            RetryDecision
        """
        if not is_retryable(error):
            return RetryDecision(retry=False, reason="non_retryable")

        if attempt >= item.max_retries:
            return RetryDecision(retry=False, reason="retries_exhausted")

        return RetryDecision(
            retry=True,
            delay_seconds=self.calculate_delay(attempt),
            reason="transient",
        )

    @abstractmethod
    def calculate_delay(self, attempt: int) -> float:
        """Delay in seconds before the given retry may be dispatched."""
        pass


class ImmediateRetry(RetryStrategy):
    """Re-dispatch without waiting."""

    def calculate_delay(self, attempt: int) -> float:
        return 0.0


class ExponentialBackoffRetry(RetryStrategy):
    """
    Exponential backoff retry strategy with optional jitter.

    delay = base * multiplier ** (attempt - 1), capped at max_delay.
    """

    def __init__(self, policy: Optional[RetryPolicy] = None, rng: Optional[random.Random] = None):
        self.policy = policy or RetryPolicy(base_delay_seconds=1.0)
        self._rng = rng or random.Random()

    def calculate_delay(self, attempt: int) -> float:
        delay = self.policy.base_delay_seconds * (
            self.policy.multiplier ** (max(attempt, 1) - 1)
        )
        delay = min(delay, self.policy.max_delay_seconds)

        if self.policy.jitter and delay > 0:
            jitter_amount = delay * 0.25
            delay += self._rng.uniform(-jitter_amount, jitter_amount)

        return max(delay, 0.0)


def create_retry_strategy(
    base_delay_seconds: float = 0.0,
    max_delay_seconds: float = 300.0,
    multiplier: float = 2.0,
    jitter: bool = False,
) -> RetryStrategy:
    """Immediate retry when base delay is zero, otherwise exponential backoff."""
    if base_delay_seconds <= 0:
        return ImmediateRetry()
    return ExponentialBackoffRetry(
        RetryPolicy(
            base_delay_seconds=base_delay_seconds,
            max_delay_seconds=max_delay_seconds,
            multiplier=multiplier,
            jitter=jitter,
        )
    )

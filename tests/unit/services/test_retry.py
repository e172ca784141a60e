"""
Unit tests for queue retry strategies.
"""

import random

import pytest

from fincalc.core.exceptions import TransientException, UnsupportedOperationException, ValidationException
from fincalc.domain.calculations import CalculationType, QueuedCalculation
from fincalc.services.queues import (
    ExponentialBackoffRetry,
    ImmediateRetry,
    RetryPolicy,
    create_retry_strategy,
)


@pytest.fixture
def item():
    return QueuedCalculation(
        id="calc_1",
        type=CalculationType.MONTE_CARLO,
        enqueued_at=0.0,
        sequence=0,
        max_retries=3,
    )


class TestRetryDecisions:
    def test_transient_error_retried_until_budget_spent(self, item):
        strategy = ImmediateRetry()
        error = TransientException()

        assert strategy.decide(item, error, attempt=1).retry
        assert strategy.decide(item, error, attempt=2).retry

        final = strategy.decide(item, error, attempt=3)
        assert not final.retry
        assert final.reason == "retries_exhausted"

    @pytest.mark.parametrize(
        "error",
        [
            ValidationException("principal is required"),
            UnsupportedOperationException("Unsupported calculation type: x"),
            TypeError("bad params"),
            ValueError("negative rate"),
        ],
    )
    def test_non_retryable_errors_fail_on_first_attempt(self, item, error):
        decision = ImmediateRetry().decide(item, error, attempt=1)

        assert not decision.retry
        assert decision.reason == "non_retryable"

    def test_unknown_errors_are_treated_as_transient(self, item):
        assert ImmediateRetry().decide(item, ConnectionError("reset"), attempt=1).retry
        assert ImmediateRetry().decide(item, RuntimeError("boom"), attempt=1).retry

    def test_immediate_retry_has_no_delay(self, item):
        assert ImmediateRetry().decide(item, RuntimeError(), attempt=1).delay_seconds == 0.0


class TestExponentialBackoffRetry:
    def test_delay_grows_and_is_capped(self):
        strategy = ExponentialBackoffRetry(
            RetryPolicy(base_delay_seconds=1.0, multiplier=2.0, max_delay_seconds=5.0)
        )

        assert [strategy.calculate_delay(a) for a in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_within_quarter(self):
        strategy = ExponentialBackoffRetry(
            RetryPolicy(base_delay_seconds=4.0, jitter=True), rng=random.Random(7)
        )

        for _ in range(50):
            assert 3.0 <= strategy.calculate_delay(1) <= 5.0

    def test_decision_carries_delay(self, item):
        strategy = ExponentialBackoffRetry(RetryPolicy(base_delay_seconds=2.0))
        assert strategy.decide(item, RuntimeError(), attempt=2).delay_seconds == 4.0


class TestCreateRetryStrategy:
    def test_zero_base_delay_means_immediate(self):
        assert isinstance(create_retry_strategy(0), ImmediateRetry)

    def test_positive_base_delay_means_backoff(self):
        strategy = create_retry_strategy(0.5, max_delay_seconds=10, multiplier=3)
        assert isinstance(strategy, ExponentialBackoffRetry)
        assert strategy.policy.multiplier == 3

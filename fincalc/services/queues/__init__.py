"""
Offline calculation queue services
"""

from .offline_queue import OfflineRequestQueue
from .processor import ProcessorState, QueueProcessor
from .retry import (
    ExponentialBackoffRetry,
    ImmediateRetry,
    RetryDecision,
    RetryPolicy,
    RetryStrategy,
    create_retry_strategy,
)

__all__ = [
    "OfflineRequestQueue",
    "ProcessorState",
    "QueueProcessor",
    "ExponentialBackoffRetry",
    "ImmediateRetry",
    "RetryDecision",
    "RetryPolicy",
    "RetryStrategy",
    "create_retry_strategy",
]

"""
Subscription Hub

Fan-out of terminal calculation outcomes to registered observers.
"""

import logging
from typing import Callable, Dict, List

from ..domain.calculations import CalculationOutcome

logger = logging.getLogger(__name__)

OutcomeCallback = Callable[[CalculationOutcome], None]


class SubscriptionHub:
    """
    Synchronous, best-effort broadcaster.

    Every subscriber receives every outcome; a subscriber that raises is
    logged and skipped, and delivery continues with the rest.
    """

    def __init__(self):
        self._subscribers: Dict[str, OutcomeCallback] = {}

    def subscribe(self, subscriber_id: str, callback: OutcomeCallback) -> None:
        """Register callback under id, replacing any previous registration."""
        if not callable(callback):
            raise TypeError("callback must be callable")
        self._subscribers[subscriber_id] = callback

    def unsubscribe(self, subscriber_id: str) -> bool:
        return self._subscribers.pop(subscriber_id, None) is not None

    def broadcast(self, outcome: CalculationOutcome) -> int:
        """
        Deliver outcome to every current subscriber.

        Returns:
            Number of subscribers that accepted the outcome without raising
        """
        delivered = 0
        # Snapshot so callbacks may (un)subscribe during delivery
        for subscriber_id, callback in list(self._subscribers.items()):
            try:
                callback(outcome)
                delivered += 1
            except Exception:
                logger.error(
                    f"Subscriber {subscriber_id} failed handling {outcome.calculation_id}",
                    exc_info=True,
                )
        return delivered

    @property
    def subscriber_ids(self) -> List[str]:
        return list(self._subscribers)

    def __len__(self) -> int:
        return len(self._subscribers)

"""
Offline Request Queue

Durable, priority-ordered list of pending calculation requests.

Items are kept in a strict total order of (priority rank, sequence). Every
mutation is written to the key-value store before it is applied in memory, so
a failed write leaves the queue unchanged and a restart resumes with the same
pending work.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Union

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from ...constants import QUEUE_SEQUENCE_KEY, QUEUE_STORAGE_KEY
from ...core.clock import Clock, system_clock
from ...core.exceptions import UnsupportedOperationException, ValidationException
from ...domain.calculations import (
    CalculationPriority,
    CalculationType,
    QueuedCalculation,
    generate_calculation_id,
)
from ...infrastructure.storage import KeyValueStore
from ...monitoring import metrics

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def parse_calculation_type(value: Union[str, CalculationType]) -> CalculationType:
    try:
        return CalculationType(value)
    except ValueError:
        raise UnsupportedOperationException(
            f"Unsupported calculation type: {value}", kind=str(value)
        )


def parse_priority(value: Union[str, CalculationPriority]) -> CalculationPriority:
    try:
        return CalculationPriority(value)
    except ValueError:
        raise ValidationException(f"Invalid priority: {value}", field="priority")


class OfflineRequestQueue:
    """Persistent priority queue of QueuedCalculation items."""

    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock = system_clock,
        max_retries: int = 3,
    ):
        self.store = store
        self.clock = clock
        self.max_retries = max_retries

        self._items: List[QueuedCalculation] = []
        self._next_sequence = 0
        self._lock = asyncio.Lock()

    async def load(self) -> int:
        """
        Restore queue contents and sequence counter from storage.

        Returns:
            Number of items restored
        """
        async with self._lock:
            raw_items = await self.store.get(QUEUE_STORAGE_KEY)
            raw_sequence = await self.store.get(QUEUE_SEQUENCE_KEY)

            items: List[QueuedCalculation] = []
            if raw_items:
                try:
                    decoded = json.loads(raw_items)
                except json.JSONDecodeError as e:
                    logger.error(f"Discarding corrupt calculation queue: {e}")
                    decoded = []
                for payload in decoded:
                    try:
                        items.append(QueuedCalculation.model_validate(payload))
                    except ValidationError as e:
                        logger.warning(f"Dropping unreadable queued calculation: {e}")

            stored_sequence = int(raw_sequence) if raw_sequence else 0
            highest = max((item.sequence for item in items), default=-1)

            self._items = sorted(items, key=lambda i: i.sort_key)
            self._next_sequence = max(stored_sequence, highest + 1)

            logger.info(
                f"Loaded {len(self._items)} queued calculations",
                extra={"next_sequence": self._next_sequence},
            )
            return len(self._items)

    async def enqueue(
        self,
        calculation_type: Union[str, CalculationType],
        params: Optional[Dict[str, Any]] = None,
        priority: Union[str, CalculationPriority] = CalculationPriority.NORMAL,
        max_retries: Optional[int] = None,
    ) -> QueuedCalculation:
        """
        Add a calculation request.

        Args:
            calculation_type: Kind of calculation
            params: Calculation parameters
            priority: Priority class
            max_retries: Attempts before terminal failure

        Returns:
            Queued item (persisted)

        Raises:
            UnsupportedOperationException: Unknown calculation type
            ValidationException: Malformed params or priority
        """
        calculation_type = parse_calculation_type(calculation_type)
        priority = parse_priority(priority)
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise ValidationException("params must be an object", field="params")

        with tracer.start_as_current_span("offline_queue.enqueue") as span:
            span.set_attribute("calculation_type", calculation_type.value)
            span.set_attribute("priority", priority.value)

            async with self._lock:
                now = self.clock.now()
                item = QueuedCalculation(
                    id=generate_calculation_id(now),
                    type=calculation_type,
                    params=params,
                    enqueued_at=now,
                    sequence=self._take_sequence(),
                    priority=priority,
                    max_retries=max_retries or self.max_retries,
                    available_at=now,
                )
                await self._commit(self._inserted(self._items, item))

            span.set_attribute("calculation_id", item.id)
            span.set_attribute("queue_size", len(self._items))
            span.set_status(Status(StatusCode.OK))
            metrics.queue_items_total.labels(outcome="enqueued").inc()

            logger.info(
                f"Queued calculation {item.id}",
                extra={
                    "calculation_type": calculation_type.value,
                    "priority": priority.value,
                    "sequence": item.sequence,
                },
            )
            return item

    def next_due(self, now: Optional[float] = None) -> Optional[QueuedCalculation]:
        """First item in queue order whose available_at has passed."""
        if now is None:
            now = self.clock.now()
        for item in self._items:
            if item.is_due(now):
                return item
        return None

    def peek(self) -> Optional[QueuedCalculation]:
        return self._items[0] if self._items else None

    async def remove(self, calculation_id: str) -> Optional[QueuedCalculation]:
        """Remove an item by id and persist. Returns the removed item."""
        async with self._lock:
            for index, item in enumerate(self._items):
                if item.id == calculation_id:
                    await self._commit(self._items[:index] + self._items[index + 1 :])
                    return item
        return None

    async def requeue(self, item: QueuedCalculation) -> QueuedCalculation:
        """
        Re-append an item at the tail of its priority class.

        The item receives a fresh sequence number; retry bookkeeping is the
        caller's responsibility.
        """
        async with self._lock:
            remaining = [i for i in self._items if i.id != item.id]
            requeued = item.model_copy(update={"sequence": self._take_sequence()})
            await self._commit(self._inserted(remaining, requeued))

        metrics.queue_items_total.labels(outcome="requeued").inc()
        return requeued

    def get(self, calculation_id: str) -> Optional[QueuedCalculation]:
        for item in self._items:
            if item.id == calculation_id:
                return item
        return None

    def list(self) -> List[QueuedCalculation]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    async def clear(self) -> int:
        async with self._lock:
            count = len(self._items)
            await self._commit([])
        logger.info(f"Cleared {count} queued calculations")
        return count

    def _take_sequence(self) -> int:
        sequence = self._next_sequence
        self._next_sequence += 1
        return sequence

    @staticmethod
    def _inserted(
        items: List[QueuedCalculation], item: QueuedCalculation
    ) -> List[QueuedCalculation]:
        return sorted(items + [item], key=lambda i: i.sort_key)

    async def _commit(self, items: List[QueuedCalculation]) -> None:
        payload = json.dumps([item.model_dump(mode="json") for item in items])
        await self.store.set(QUEUE_STORAGE_KEY, payload)
        await self.store.set(QUEUE_SEQUENCE_KEY, str(self._next_sequence))
        self._items = items

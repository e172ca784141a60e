"""
Batch resource services

Per-resource CRUD collaborators invoked by individual batch operations, and
the registry that routes an operation to its service.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ...constants import timestamp_to_iso
from ...core.clock import Clock, system_clock
from ...core.exceptions import (
    ResourceNotFoundException,
    UnsupportedOperationException,
    ValidationException,
)
from .models import BatchOperation, OperationType

logger = logging.getLogger(__name__)


class ResourceService(ABC):
    """Async CRUD for one resource kind, scoped by user."""

    @abstractmethod
    async def create(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def update(
        self, user_id: str, resource_id: str, data: Dict[str, Any]
    ) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def delete(self, user_id: str, resource_id: str) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def read(self, user_id: str, resource_id: str) -> Dict[str, Any]:
        pass


class InMemoryResourceService(ResourceService):
    """Dictionary-backed resource service."""

    def __init__(self, kind: str, clock: Clock = system_clock):
        self.kind = kind
        self.clock = clock
        self._records: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def create(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        async with self._lock:
            now = timestamp_to_iso(self.clock.now())
            record = {
                **(data or {}),
                "id": str(uuid.uuid4()),
                "user_id": user_id,
                "created_at": now,
                "updated_at": now,
            }
            self._records[(user_id, record["id"])] = record
            return dict(record)

    async def update(
        self, user_id: str, resource_id: str, data: Dict[str, Any]
    ) -> Dict[str, Any]:
        async with self._lock:
            record = self._require(user_id, resource_id)
            # id and owner are immutable
            changes = {
                k: v for k, v in (data or {}).items() if k not in ("id", "user_id")
            }
            record.update(changes, updated_at=timestamp_to_iso(self.clock.now()))
            return dict(record)

    async def delete(self, user_id: str, resource_id: str) -> Dict[str, Any]:
        async with self._lock:
            self._require(user_id, resource_id)
            del self._records[(user_id, resource_id)]
            return {"id": resource_id, "deleted": True}

    async def read(self, user_id: str, resource_id: str) -> Dict[str, Any]:
        return dict(self._require(user_id, resource_id))

    def _require(self, user_id: str, resource_id: str) -> Dict[str, Any]:
        record = self._records.get((user_id, resource_id))
        if record is None:
            raise ResourceNotFoundException(self.kind, resource_id)
        return record

    def count(self, user_id: Optional[str] = None) -> int:
        if user_id is None:
            return len(self._records)
        return sum(1 for uid, _ in self._records if uid == user_id)


@dataclass
class ResourceRegistration:
    service: ResourceService
    cache_prefixes: List[str] = field(default_factory=list)


class ResourceRegistry:
    """Maps resource kinds to services and their cache prefixes."""

    def __init__(self):
        self._registrations: Dict[str, ResourceRegistration] = {}

    def register(
        self,
        kind: str,
        service: ResourceService,
        cache_prefixes: Optional[List[str]] = None,
    ) -> None:
        self._registrations[kind] = ResourceRegistration(
            service=service, cache_prefixes=list(cache_prefixes or [])
        )

    def get(self, kind: str) -> ResourceService:
        registration = self._registrations.get(kind)
        if registration is None:
            raise UnsupportedOperationException(
                f"Unsupported resource type: {kind}", kind=kind
            )
        return registration.service

    def cache_prefixes(self, kind: str) -> List[str]:
        registration = self._registrations.get(kind)
        return list(registration.cache_prefixes) if registration else []

    @property
    def kinds(self) -> List[str]:
        return list(self._registrations)


def create_default_registry(clock: Clock = system_clock) -> ResourceRegistry:
    """Accounts, goals and scenarios backed by in-memory services."""
    registry = ResourceRegistry()
    registry.register(
        "account",
        InMemoryResourceService("account", clock),
        cache_prefixes=["accounts", "networth"],
    )
    registry.register(
        "goal", InMemoryResourceService("goal", clock), cache_prefixes=["goals"]
    )
    registry.register(
        "scenario",
        InMemoryResourceService("scenario", clock),
        cache_prefixes=["scenarios"],
    )
    return registry


async def execute_operation(
    registry: ResourceRegistry, operation: BatchOperation, user_id: str
) -> Dict[str, Any]:
    """
    Route one batch operation to its resource service.

    Raises:
        UnsupportedOperationException: Unknown resource kind or operation type
        ValidationException: Missing resourceId for update, delete or read
        ResourceNotFoundException: Referenced resource does not exist
    """
    service = registry.get(operation.resource)

    try:
        operation_type = OperationType(operation.type)
    except ValueError:
        raise UnsupportedOperationException(
            f"Unsupported operation type: {operation.type}", kind=operation.type
        )

    if operation_type is OperationType.CREATE:
        return await service.create(user_id, {**(operation.data or {}), "user_id": user_id})

    if not operation.resource_id:
        raise ValidationException(
            f"Resource ID required for {operation_type.value}", field="resourceId"
        )

    if operation_type is OperationType.UPDATE:
        return await service.update(user_id, operation.resource_id, operation.data or {})
    if operation_type is OperationType.DELETE:
        return await service.delete(user_id, operation.resource_id)
    return await service.read(user_id, operation.resource_id)

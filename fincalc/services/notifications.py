"""
Live-client notification channel

Pushes batch events to a user's connected clients. The transport is
pluggable: an in-memory channel for tests and single-process deployments,
and Redis pub/sub on a per-user channel for multi-instance deployments.
"""

import json
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Dict, List, Tuple

import structlog
from redis.asyncio import Redis

from ..constants import USER_EVENTS_CHANNEL

logger = structlog.get_logger()

EventListener = Callable[[Dict[str, Any]], None]


class NotificationChannel(ABC):
    """Delivers events to every live connection of a user."""

    @abstractmethod
    async def broadcast_to_user(self, user_id: str, event: Dict[str, Any]) -> None:
        pass

    async def close(self) -> None:
        return None


class InMemoryNotificationChannel(NotificationChannel):
    """Records events and forwards them to in-process listeners."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self._listeners: Dict[str, List[EventListener]] = defaultdict(list)

    def listen(self, user_id: str, listener: EventListener) -> None:
        self._listeners[user_id].append(listener)

    def events_for(self, user_id: str) -> List[Dict[str, Any]]:
        return [event for uid, event in self.events if uid == user_id]

    async def broadcast_to_user(self, user_id: str, event: Dict[str, Any]) -> None:
        self.events.append((user_id, event))
        for listener in list(self._listeners.get(user_id, ())):
            try:
                listener(event)
            except Exception:
                logger.error(
                    "Notification listener failed",
                    user_id=user_id,
                    event_type=event.get("type", "unknown"),
                    exc_info=True,
                )


class RedisNotificationChannel(NotificationChannel):
    """Publishes JSON events on user:{user_id}:events."""

    def __init__(self, redis: Redis):
        if redis is None:
            raise TypeError("redis client is required")
        self.redis = redis

    async def broadcast_to_user(self, user_id: str, event: Dict[str, Any]) -> None:
        if not user_id:
            raise ValueError("user_id is required (cannot be empty)")

        channel_name = USER_EVENTS_CHANNEL.format(user_id=user_id)
        try:
            receivers = await self.redis.publish(channel_name, json.dumps(event, default=str))
            logger.debug(
                "Notification published",
                user_id=user_id,
                event_type=event.get("type", "unknown"),
                receivers=receivers,
            )
        except Exception as e:
            logger.error(
                "Failed to publish notification",
                user_id=user_id,
                error=str(e),
                exc_info=True,
            )
            raise

    async def close(self) -> None:
        await self.redis.aclose()

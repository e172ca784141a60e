"""
Unit tests for live-client notification channels.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from fincalc.services.notifications import InMemoryNotificationChannel, RedisNotificationChannel


class TestInMemoryNotificationChannel:
    @pytest.mark.asyncio
    async def test_records_and_forwards(self):
        channel = InMemoryNotificationChannel()
        received = []
        channel.listen("user-1", received.append)
        channel.listen("user-1", MagicMock(side_effect=RuntimeError("closed socket")))

        await channel.broadcast_to_user("user-1", {"type": "account_update"})
        await channel.broadcast_to_user("user-2", {"type": "account_update"})

        assert received == [{"type": "account_update"}]
        assert len(channel.events_for("user-1")) == 1
        assert len(channel.events) == 2


class TestRedisNotificationChannel:
    @pytest.fixture
    def redis_client(self):
        client = MagicMock()
        client.publish = AsyncMock(return_value=1)
        client.aclose = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_publishes_on_user_channel(self, redis_client):
        channel = RedisNotificationChannel(redis_client)

        await channel.broadcast_to_user("user-1", {"type": "account_update", "data": {"count": 2}})

        name, payload = redis_client.publish.await_args.args
        assert name == "user:user-1:events"
        assert json.loads(payload) == {"type": "account_update", "data": {"count": 2}}

    @pytest.mark.asyncio
    async def test_publish_errors_propagate(self, redis_client):
        redis_client.publish = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(ConnectionError):
            await RedisNotificationChannel(redis_client).broadcast_to_user("user-1", {"type": "x"})

    @pytest.mark.asyncio
    async def test_requires_user_id(self, redis_client):
        with pytest.raises(ValueError):
            await RedisNotificationChannel(redis_client).broadcast_to_user("", {"type": "x"})

    def test_requires_client(self):
        with pytest.raises(TypeError):
            RedisNotificationChannel(None)

    @pytest.mark.asyncio
    async def test_close(self, redis_client):
        await RedisNotificationChannel(redis_client).close()
        redis_client.aclose.assert_awaited_once()

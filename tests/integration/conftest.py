"""
Integration test fixtures: the ASGI app with in-memory collaborators.
"""

import httpx
import pytest

from fincalc.core.config import Settings
from fincalc.main import create_app
from fincalc.services.batch import create_default_registry
from fincalc.services.notifications import InMemoryNotificationChannel


@pytest.fixture
def registry():
    return create_default_registry()


@pytest.fixture
def channel():
    return InMemoryNotificationChannel()


@pytest.fixture
async def app(store, registry, channel):
    """Application with lifespan entered (httpx does not run it)."""
    application = create_app(Settings(), store=store, registry=registry, channel=channel)
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http


@pytest.fixture
def user_headers():
    return {"X-User-Id": "user-1"}

"""
Key-value store factory
"""

import logging

from ...core.config import Settings
from .base import KeyValueStore
from .file_store import JsonFileKeyValueStore
from .memory_store import InMemoryKeyValueStore
from .redis_store import RedisKeyValueStore

logger = logging.getLogger(__name__)


def create_key_value_store(settings: Settings) -> KeyValueStore:
    """Build the backend selected by STORAGE_BACKEND."""
    backend = settings.STORAGE_BACKEND
    if backend == "redis":
        logger.info("Using Redis key-value store", extra={"url": settings.REDIS_URL})
        return RedisKeyValueStore.from_url(
            settings.REDIS_URL, key_prefix=settings.REDIS_KEY_PREFIX
        )
    if backend == "file":
        logger.info(
            "Using JSON file key-value store",
            extra={"path": settings.STORAGE_FILE_PATH},
        )
        return JsonFileKeyValueStore(settings.STORAGE_FILE_PATH)

    logger.info("Using in-memory key-value store")
    return InMemoryKeyValueStore()

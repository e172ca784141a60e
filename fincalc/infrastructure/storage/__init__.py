"""
Durable key-value storage

Backends used to persist the result cache and the offline calculation queue.
"""

from .base import KeyValueStore
from .memory_store import InMemoryKeyValueStore
from .file_store import JsonFileKeyValueStore
from .redis_store import RedisKeyValueStore
from .factory import create_key_value_store

__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "RedisKeyValueStore",
    "create_key_value_store",
]

"""
Cache Domain Models

Value objects and entities for the result cache.
"""

from .value_objects import CacheKey, TTL, canonical_json
from .entities import CacheEntry

__all__ = ["CacheKey", "TTL", "canonical_json", "CacheEntry"]

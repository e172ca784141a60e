"""
Cache Value Objects

Immutable value objects for cache keys and expiry.
Key generation canonicalizes parameters so that logically equal requests
always map to the same key regardless of dict ordering.
"""

import hashlib
import json
import re
from dataclasses import dataclass
from typing import Any, Union

from ...constants import MAX_CACHE_KEY_LENGTH


def canonical_json(value: Any) -> str:
    """Serialize value with sorted keys and compact separators."""
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), default=str, ensure_ascii=True
    )


@dataclass(frozen=True)
class CacheKey:
    """
    Immutable cache key value object.

    Enforces key naming conventions and provides validation.
    """

    value: str

    RESOURCE_PREFIX_PATTERN = re.compile(r"^[a-z_]+$")

    def __post_init__(self) -> None:
        """Validate cache key format."""
        if not self.value:
            raise ValueError("Cache key cannot be empty")

        if len(self.value) > MAX_CACHE_KEY_LENGTH:
            raise ValueError(
                f"Cache key too long (max {MAX_CACHE_KEY_LENGTH} characters)"
            )

        if any(char.isspace() for char in self.value):
            raise ValueError("Cache key cannot contain whitespace")

    @classmethod
    def calculation(cls, calculation_type: Union[str, Any], params: Any) -> "CacheKey":
        """Create calculation result key from type and canonicalized params."""
        type_value = getattr(calculation_type, "value", calculation_type)
        if not type_value:
            raise ValueError("Calculation type is required for cache key")
        digest = hashlib.sha256(canonical_json(params).encode("utf-8")).hexdigest()
        return cls(f"calc:{type_value}:{digest}")

    @classmethod
    def calculation_type_pattern(cls, calculation_type: Union[str, Any]) -> str:
        """Pattern matching every cached result of one calculation type."""
        type_value = getattr(calculation_type, "value", calculation_type)
        return f"calc:{type_value}:*"

    @classmethod
    def resource(cls, prefix: str, user_id: str) -> "CacheKey":
        """Create per-user resource key used for API response invalidation."""
        if not cls.RESOURCE_PREFIX_PATTERN.match(prefix):
            raise ValueError("Invalid resource prefix format")
        if not user_id:
            raise ValueError("User ID is required for resource keys")
        return cls(f"{prefix}:{user_id}")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TTL:
    """
    Time To Live value object for cache expiration.

    Provides type-safe TTL configuration with validation.
    """

    seconds: float

    def __post_init__(self) -> None:
        """Validate TTL value."""
        if self.seconds <= 0:
            raise ValueError("TTL must be positive")
        if self.seconds > 86400 * 365:  # Max 1 year
            raise ValueError("TTL too large (max 1 year)")

    @classmethod
    def from_seconds(cls, seconds: float) -> "TTL":
        """Create TTL from seconds."""
        return cls(seconds)

    @classmethod
    def minutes(cls, minutes: float) -> "TTL":
        """Create TTL from minutes."""
        return cls(minutes * 60)

    @classmethod
    def hours(cls, hours: float) -> "TTL":
        """Create TTL from hours."""
        return cls(hours * 3600)

    @classmethod
    def calculation_result(cls) -> "TTL":
        """Calculation result TTL (5 minutes)."""
        return cls.minutes(5)

    def __str__(self) -> str:
        return f"{self.seconds:g}s"

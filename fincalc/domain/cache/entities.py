"""
Cache Entities

Entries held by the result cache and mirrored into durable storage.
"""

from typing import Any

from pydantic import BaseModel, Field, model_validator


class CacheEntry(BaseModel):
    """Cached calculation or response value with absolute expiry."""

    key: str = Field(..., min_length=1)
    value: Any = None
    created_at: float = Field(..., description="Epoch seconds when stored")
    expires_at: float = Field(..., description="Epoch seconds after which unreadable")

    @model_validator(mode="after")
    def validate_expiry(self):
        """An entry must expire after it was created."""
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")
        return self

    @classmethod
    def create(cls, key: str, value: Any, now: float, ttl_seconds: float) -> "CacheEntry":
        """Create entry stamped with the current time."""
        return cls(key=key, value=value, created_at=now, expires_at=now + ttl_seconds)

    def is_expired(self, now: float) -> bool:
        """Entries are unreadable from expires_at onwards."""
        return now >= self.expires_at

    def remaining_ttl(self, now: float) -> float:
        return max(0.0, self.expires_at - now)

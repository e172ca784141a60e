"""
Fincalc Application Configuration

Configuration management with environment variable support.
Implements validated defaults for storage, cache, queue and batch limits.
"""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation and secure defaults."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Environment settings
    ENVIRONMENT: str = Field(
        default="development", description="Application environment"
    )
    SERVICE_NAME: str = Field(default="fincalc-api", description="Service name")
    SERVICE_VERSION: str = Field(default="0.1.0", description="Service version")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Log renderer (json|console)")

    # HTTP server
    API_HOST: str = Field(default="0.0.0.0", description="Bind address")
    API_PORT: int = Field(default=8000, ge=1, le=65535, description="Bind port")

    # Durable key-value storage
    STORAGE_BACKEND: str = Field(
        default="memory", description="Key-value backend (memory|file|redis)"
    )
    STORAGE_FILE_PATH: str = Field(
        default="./fincalc-store.json", description="JSON store path for file backend"
    )
    REDIS_URL: str = Field(
        default="redis://localhost:6379", description="Redis connection URL"
    )
    REDIS_KEY_PREFIX: str = Field(
        default="fincalc", description="Prefix applied to every Redis key"
    )

    # Result cache
    CALCULATION_CACHE_TTL_SECONDS: int = Field(
        default=300, ge=1, le=86400, description="Calculation result TTL"
    )
    CALCULATION_CACHE_MAX_ENTRIES: int = Field(
        default=100, ge=1, le=100000, description="Calculation cache capacity"
    )
    API_CACHE_TTL_SECONDS: int = Field(
        default=300, ge=1, le=86400, description="API response cache TTL"
    )
    API_CACHE_MAX_ENTRIES: int = Field(
        default=1000, ge=1, le=100000, description="API response cache capacity"
    )
    CACHE_CLEANUP_INTERVAL_SECONDS: float = Field(
        default=300.0, gt=0, le=86400, description="Expired entry sweep interval"
    )

    # Offline calculation queue
    QUEUE_PROCESS_INTERVAL_SECONDS: float = Field(
        default=30.0, gt=0, le=3600, description="Queue processor tick interval"
    )
    QUEUE_MAX_RETRIES: int = Field(
        default=3, ge=1, le=10, description="Attempts before terminal failure"
    )
    QUEUE_RETRY_BASE_DELAY_SECONDS: float = Field(
        default=0.0,
        ge=0.0,
        le=3600.0,
        description="Base retry delay (0 re-dispatches immediately)",
    )
    QUEUE_RETRY_MAX_DELAY_SECONDS: float = Field(
        default=300.0, ge=0.0, le=3600.0, description="Maximum retry delay"
    )
    QUEUE_RETRY_MULTIPLIER: float = Field(
        default=2.0, ge=1.0, le=10.0, description="Retry delay multiplier"
    )

    # Batch operations
    BATCH_MAX_OPERATIONS: int = Field(
        default=100, ge=1, le=1000, description="Maximum operations per batch"
    )
    BATCH_MAX_BALANCE_UPDATES: int = Field(
        default=50, ge=1, le=1000, description="Maximum balance updates per batch"
    )
    BATCH_DEFAULT_MAX_CONCURRENCY: int = Field(
        default=10, ge=1, le=100, description="Default in-flight operation cap"
    )
    BATCH_MAX_CONCURRENCY_LIMIT: int = Field(
        default=50, ge=1, le=500, description="Highest maxConcurrency a client may ask for"
    )
    BATCH_DEFAULT_TIMEOUT_MS: int = Field(
        default=30000, ge=1, le=600000, description="Default batch timeout"
    )
    BATCH_MAX_TIMEOUT_MS: int = Field(
        default=120000, ge=1, le=600000, description="Highest timeout a client may ask for"
    )
    BATCH_RATE_LIMIT_OPERATIONS: str = Field(
        default="10 per minute", description="Advertised batch rate limit"
    )
    BATCH_RATE_LIMIT_BALANCE_UPDATES: str = Field(
        default="20 per minute", description="Advertised balance batch rate limit"
    )

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value."""
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log renderer."""
        if v not in ("json", "console"):
            raise ValueError("LOG_FORMAT must be 'json' or 'console'")
        return v

    @field_validator("STORAGE_BACKEND")
    @classmethod
    def validate_storage_backend(cls, v):
        """Validate storage backend name."""
        allowed = ["memory", "file", "redis"]
        if v not in allowed:
            raise ValueError(f"STORAGE_BACKEND must be one of: {allowed}")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def retry_backoff_enabled(self) -> bool:
        """Whether failed calculations wait before being re-dispatched."""
        return self.QUEUE_RETRY_BASE_DELAY_SECONDS > 0


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings_cache() -> Settings:
    """Drop the cached settings so the next lookup re-reads the environment."""
    get_settings.cache_clear()
    return get_settings()

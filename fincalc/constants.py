"""
Fincalc Global Constants

Centralized location for storage keys and limits shared across modules.
"""

from datetime import datetime, timezone

# Storage keys
CALCULATION_CACHE_NAMESPACE = "calculation_cache"
API_CACHE_NAMESPACE = "api_cache"
QUEUE_STORAGE_KEY = "calculation_queue"
QUEUE_SEQUENCE_KEY = "calculation_queue:sequence"

# Calculation metadata
CALCULATION_RESULT_VERSION = "1.0.0"

# Cache key limits
MAX_CACHE_KEY_LENGTH = 250

# Caller ids are embedded in per-user cache keys and channel names
MAX_USER_ID_LENGTH = 128

# Live-client notification channel pattern
USER_EVENTS_CHANNEL = "user:{user_id}:events"


# Timestamp Functions
def get_current_timestamp() -> datetime:
    """Get current timestamp with UTC timezone."""
    return datetime.now(timezone.utc)


def timestamp_to_iso(epoch_seconds: float) -> str:
    """Render an epoch timestamp as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()


# Application Constants
APP_NAME = "Fincalc"
APP_VERSION = "0.1.0"

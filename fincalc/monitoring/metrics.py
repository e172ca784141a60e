"""
Prometheus metrics

Counters and histograms for cache, queue and batch activity, registered on
a dedicated registry so repeated app construction (tests, reloads) never
collides with the default global registry.
"""

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

registry = CollectorRegistry(auto_describe=True)

cache_requests_total = Counter(
    "fincalc_cache_requests_total",
    "Result cache lookups",
    ["cache", "result"],
    registry=registry,
)

cache_evictions_total = Counter(
    "fincalc_cache_evictions_total",
    "Result cache removals",
    ["cache", "reason"],
    registry=registry,
)

queue_items_total = Counter(
    "fincalc_queue_items_total",
    "Offline calculation queue transitions",
    ["outcome"],
    registry=registry,
)

batch_requests_total = Counter(
    "fincalc_batch_requests_total",
    "Batch requests by final status",
    ["status"],
    registry=registry,
)

batch_operations_total = Counter(
    "fincalc_batch_operations_total",
    "Batch operations by resource and outcome",
    ["resource", "outcome"],
    registry=registry,
)

batch_duration_seconds = Histogram(
    "fincalc_batch_duration_seconds",
    "Wall time until a batch response is produced",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
    registry=registry,
)


def render_latest() -> bytes:
    """Prometheus text exposition of all fincalc metrics."""
    return generate_latest(registry)

"""Prometheus metrics definitions for the harvester.

Defines counters and histograms for monitoring:
- External API traffic and latency
- Window (sub-range) outcomes
- Repository (entity) outcomes
- Contributor record capture

Usage:
    from repo_harvester.observability.metrics import ENTITIES_PROCESSED

    ENTITIES_PROCESSED.labels(status="processed").inc()

`run --metrics-out` writes the exposition text at the end of a run.
"""

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Private registry so tests and repeated runs stay isolated
REGISTRY = CollectorRegistry(auto_describe=True)

API_REQUESTS = Counter(
    name="harvester_api_requests_total",
    documentation="Total external API requests",
    labelnames=["endpoint", "status"],  # search/commits, ok/error/rate_limited
    registry=REGISTRY,
)

API_REQUEST_DURATION = Histogram(
    name="harvester_api_request_duration_seconds",
    documentation="External API request latency",
    labelnames=["endpoint"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    registry=REGISTRY,
)

SUB_RANGES = Counter(
    name="harvester_sub_ranges_total",
    documentation="Search windows by outcome",
    labelnames=["outcome"],  # fetched, skipped, split, truncated
    registry=REGISTRY,
)

ENTITIES_PROCESSED = Counter(
    name="harvester_entities_total",
    documentation="Repositories by processing outcome",
    labelnames=["status"],  # processed, skipped, failed
    registry=REGISTRY,
)

SUB_RECORDS = Counter(
    name="harvester_sub_records_total",
    documentation="Contributor records by store outcome",
    labelnames=["outcome"],  # inserted, duplicate
    registry=REGISTRY,
)

CHECKPOINT_SAVES = Counter(
    name="harvester_checkpoint_saves_total",
    documentation="Checkpoint writes",
    labelnames=["status"],  # ok, failed
    registry=REGISTRY,
)


def get_metrics_text() -> bytes:
    """Render all metrics in Prometheus exposition format."""
    return generate_latest(REGISTRY)


def reset_metrics() -> None:
    """Reset all metric values (for testing)."""
    for collector in (
        API_REQUESTS,
        API_REQUEST_DURATION,
        SUB_RANGES,
        ENTITIES_PROCESSED,
        SUB_RECORDS,
        CHECKPOINT_SAVES,
    ):
        collector.clear()

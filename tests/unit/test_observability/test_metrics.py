"""Tests for Prometheus metrics definitions."""

from repo_harvester.observability.metrics import (
    ENTITIES_PROCESSED,
    REGISTRY,
    SUB_RANGES,
    get_metrics_text,
    reset_metrics,
)


def _value(name, labels):
    return REGISTRY.get_sample_value(name, labels)


def test_counters_are_exported():
    SUB_RANGES.labels(outcome="split").inc()
    ENTITIES_PROCESSED.labels(status="processed").inc(3)

    text = get_metrics_text().decode()

    assert 'harvester_sub_ranges_total{outcome="split"} 1.0' in text
    assert _value("harvester_entities_total", {"status": "processed"}) == 3.0


def test_reset_clears_labelled_values():
    SUB_RANGES.labels(outcome="fetched").inc()

    reset_metrics()

    assert _value("harvester_sub_ranges_total", {"outcome": "fetched"}) is None

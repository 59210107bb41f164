"""Observability module.

Provides:
- Run ID context management for log correlation
- Structured logging with context propagation
- Prometheus metrics for monitoring

Usage:
    from repo_harvester.observability import run_id_context, get_logger

    with run_id_context():
        get_logger("pipeline").info("harvest_started")
"""

from repo_harvester.observability.context import (
    set_run_id,
    get_run_id,
    clear_run_id,
    run_id_context,
)
from repo_harvester.observability.logging import (
    get_logger,
    configure_logging,
    add_run_id_processor,
    bind_context,
    clear_context,
)
from repo_harvester.observability.metrics import (
    API_REQUESTS,
    API_REQUEST_DURATION,
    SUB_RANGES,
    ENTITIES_PROCESSED,
    SUB_RECORDS,
    CHECKPOINT_SAVES,
    get_metrics_text,
    reset_metrics,
)

__all__ = [
    # Context
    "set_run_id",
    "get_run_id",
    "clear_run_id",
    "run_id_context",
    # Logging
    "get_logger",
    "configure_logging",
    "add_run_id_processor",
    "bind_context",
    "clear_context",
    # Metrics
    "API_REQUESTS",
    "API_REQUEST_DURATION",
    "SUB_RANGES",
    "ENTITIES_PROCESSED",
    "SUB_RECORDS",
    "CHECKPOINT_SAVES",
    "get_metrics_text",
    "reset_metrics",
]

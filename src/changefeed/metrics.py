"""
Prometheus metrics for change feed processing.

Focused on essential metrics:
- Pages fetched and events handled per partition
- Progress handler emissions
- Partition failures by error category
- Active partition count
- Handler latency

Metrics register with the default prometheus registry; exposing them over
HTTP (start_http_server) is left to the hosting application.
"""

import logging

from prometheus_client import REGISTRY, Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


def _create_counter(name: str, description: str, labelnames=None) -> Counter:
    try:
        return Counter(name, description, labelnames=labelnames or [])
    except ValueError:
        # Already registered (module reloaded in the same process)
        return REGISTRY._names_to_collectors[name]


def _create_gauge(name: str, description: str, labelnames=None) -> Gauge:
    try:
        return Gauge(name, description, labelnames=labelnames or [])
    except ValueError:
        return REGISTRY._names_to_collectors[name]


def _create_histogram(name: str, description: str, labelnames=None, buckets=None) -> Histogram:
    kwargs = {"labelnames": labelnames or []}
    if buckets:
        kwargs["buckets"] = buckets
    try:
        return Histogram(name, description, **kwargs)
    except ValueError:
        return REGISTRY._names_to_collectors[name]


# =============================================================================
# Core Metrics
# =============================================================================

batches_fetched_counter = _create_counter(
    "changefeed_batches_fetched_total",
    "Total change feed pages fetched from the store",
    labelnames=["partition_id"],
)

events_handled_counter = _create_counter(
    "changefeed_events_handled_total",
    "Total events passed through the user handler",
    labelnames=["partition_id"],
)

progress_emissions_counter = _create_counter(
    "changefeed_progress_emissions_total",
    "Total progress handler invocations",
)

partition_failures_counter = _create_counter(
    "changefeed_partition_failures_total",
    "Partitions that stopped on an error, by error category",
    labelnames=["error_category"],
)

active_partitions_gauge = _create_gauge(
    "changefeed_active_partitions",
    "Number of partitions currently being read",
)

handler_duration_seconds = _create_histogram(
    "changefeed_handler_duration_seconds",
    "Time spent in the user event handler per event",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)


# =============================================================================
# Convenience Functions
# =============================================================================


def record_batch_fetched(partition_id: str) -> None:
    batches_fetched_counter.labels(partition_id=partition_id).inc()


def record_event_handled(partition_id: str, duration_seconds: float) -> None:
    events_handled_counter.labels(partition_id=partition_id).inc()
    handler_duration_seconds.observe(duration_seconds)


def record_progress_emission() -> None:
    progress_emissions_counter.inc()


def record_partition_failure(error_category: str) -> None:
    partition_failures_counter.labels(error_category=error_category).inc()


__all__ = [
    "batches_fetched_counter",
    "events_handled_counter",
    "progress_emissions_counter",
    "partition_failures_counter",
    "active_partitions_gauge",
    "handler_duration_seconds",
    "record_batch_fetched",
    "record_event_handled",
    "record_progress_emission",
    "record_partition_failure",
]

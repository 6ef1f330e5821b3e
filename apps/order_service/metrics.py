"""Prometheus metrics definitions for the Order Service.

All metric objects are module-level singletons registered on the default
registry and exposed at /metrics by the app factory.

Usage:
    from apps.order_service import metrics

    metrics.batch_submissions_total.labels(status="PARTIAL").inc()
    metrics.admission_rejections_total.inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ============================================================================
# Batch Submission Metrics
# ============================================================================

batch_submissions_total = Counter(
    "order_service_batch_submissions_total",
    "Total batch submissions processed",
    ["status"],  # status: SUCCESS, PARTIAL, FAILURE
)

batch_orders_total = Counter(
    "order_service_batch_orders_total",
    "Orders seen by batch submission, by per-order outcome",
    ["outcome"],  # outcome: submitted, ineligible, failed
)

batch_duration = Histogram(
    "order_service_batch_duration_seconds",
    "End-to-end time to process one admitted batch",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

trade_service_errors_total = Counter(
    "order_service_trade_service_errors_total",
    "Failed bulk calls to the trade service",
    ["kind"],  # kind: client, server, connectivity, empty_response, invalid_response
)

persist_retries_total = Counter(
    "order_service_persist_retries_total",
    "Retries of the persist transaction after a transient database error",
)

# ============================================================================
# Admission Control Metrics
# ============================================================================

admission_rejections_total = Counter(
    "order_service_admission_rejections_total",
    "Batch requests rejected with 503 because the service was overloaded",
)

overload_check_duration = Histogram(
    "order_service_overload_check_duration_seconds",
    "Time spent in one overload check",
    buckets=(0.00001, 0.00005, 0.0001, 0.0005, 0.001, 0.005, 0.01),
)

resource_utilization = Gauge(
    "order_service_resource_utilization",
    "Last sampled utilization ratio per resource",
    ["resource"],  # resource: thread_pool, database_pool, memory
)

# ============================================================================
# Service Health Metrics
# ============================================================================

database_connection_status = Gauge(
    "order_service_database_connection_status",
    "Database connection status (1=up, 0=down)",
)


def initialize_metrics() -> None:
    """Set gauge defaults at startup; health checks update them afterwards."""
    database_connection_status.set(0)
    for resource in ("thread_pool", "database_pool", "memory"):
        resource_utilization.labels(resource=resource).set(0)


# ============================================================================
# Metric Names Registry (for contract testing)
# ============================================================================

METRIC_NAMES = [
    "order_service_batch_submissions_total",
    "order_service_batch_orders_total",
    "order_service_batch_duration_seconds",
    "order_service_trade_service_errors_total",
    "order_service_persist_retries_total",
    "order_service_admission_rejections_total",
    "order_service_overload_check_duration_seconds",
    "order_service_resource_utilization",
    "order_service_database_connection_status",
]

METRIC_LABELS = {
    "order_service_batch_submissions_total": ["status"],
    "order_service_batch_orders_total": ["outcome"],
    "order_service_batch_duration_seconds": [],
    "order_service_trade_service_errors_total": ["kind"],
    "order_service_persist_retries_total": [],
    "order_service_admission_rejections_total": [],
    "order_service_overload_check_duration_seconds": [],
    "order_service_resource_utilization": ["resource"],
    "order_service_database_connection_status": [],
}

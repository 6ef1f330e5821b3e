"""In-process throughput statistics for batch submission.

Complements the Prometheus counters with a snapshot the system status
endpoint can return directly (rates and averages since start or last reset).
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Any

from apps.order_service import metrics
from apps.order_service.schemas import BatchSubmitResponse

logger = logging.getLogger(__name__)


class BulkSubmissionPerformanceMonitor:
    """Accumulates batch outcomes; safe to share between worker threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reset_locked()

    def _reset_locked(self) -> None:
        self._total_batches = 0
        self._total_orders = 0
        self._successful_orders = 0
        self._failed_orders = 0
        self._total_seconds = 0.0
        self._batch_statuses: Counter[str] = Counter()

    def record(self, result: BatchSubmitResponse, elapsed_seconds: float, ineligible: int = 0) -> None:
        """Record one completed batch.

        Args:
            result: Final batch result
            elapsed_seconds: Wall time spent processing the batch
            ineligible: How many of the failed orders never reached the trade service
        """
        with self._lock:
            self._total_batches += 1
            self._total_orders += result.total_requested
            self._successful_orders += result.successful
            self._failed_orders += result.failed
            self._total_seconds += elapsed_seconds
            self._batch_statuses[result.status] += 1

        metrics.batch_submissions_total.labels(status=result.status).inc()
        metrics.batch_duration.observe(elapsed_seconds)
        metrics.batch_orders_total.labels(outcome="submitted").inc(result.successful)
        metrics.batch_orders_total.labels(outcome="ineligible").inc(ineligible)
        metrics.batch_orders_total.labels(outcome="failed").inc(result.failed - ineligible)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            total_ms = self._total_seconds * 1000
            return {
                "total_batches": self._total_batches,
                "total_orders": self._total_orders,
                "successful_orders": self._successful_orders,
                "failed_orders": self._failed_orders,
                "batch_statuses": dict(self._batch_statuses),
                "success_rate": (
                    self._successful_orders / self._total_orders if self._total_orders else 0.0
                ),
                "average_ms_per_order": (
                    total_ms / self._total_orders if self._total_orders else 0.0
                ),
                "orders_per_second": (
                    self._total_orders / self._total_seconds if self._total_seconds > 0 else 0.0
                ),
            }

    def reset(self) -> None:
        with self._lock:
            self._reset_locked()
        logger.info("Bulk submission statistics reset")

"""Admission gate for batch submission.

The gate runs as a FastAPI dependency of the batch endpoint, so a rejected
request never reaches validation, the database or the trade service. A
rejection is a SystemOverloadedError, turned into 503 + Retry-After by the
exception handlers.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends

from apps.order_service import metrics
from apps.order_service.app_context import AppContext
from apps.order_service.dependencies import get_context
from apps.order_service.exceptions import SystemOverloadedError
from apps.order_service.overload_detector import OverloadDecision, OverloadDetector
from libs.common.logging import log_with_context

logger = logging.getLogger(__name__)


class AdmissionGate:
    """Admit or reject one inbound batch based on the overload detector."""

    def __init__(self, detector: OverloadDetector) -> None:
        self.detector = detector

    def admit(self) -> None:
        """Return normally when admitted.

        Raises:
            SystemOverloadedError: When the detector reports overload
        """
        decision = self.detector.evaluate()
        if not decision.overloaded:
            return

        metrics.admission_rejections_total.inc()
        details = _rejection_details(decision)
        log_with_context(
            logger,
            "WARNING",
            "Batch rejected: system overloaded",
            retry_after=decision.retry_after_seconds,
            **details,
        )
        raise SystemOverloadedError(decision.retry_after_seconds, details=details)


def _rejection_details(decision: OverloadDecision) -> dict[str, Any]:
    details: dict[str, Any] = {
        "overloadReason": SystemOverloadedError.DEFAULT_REASON,
        "recommendedAction": "retry_with_exponential_backoff",
        "exceededLimits": list(decision.reasons),
    }
    if decision.sample is not None:
        details["threadPoolUtilization"] = f"{decision.sample.thread_pool * 100:.1f}%"
        details["databasePoolUtilization"] = f"{decision.sample.database_pool * 100:.1f}%"
        details["memoryUtilization"] = f"{decision.sample.memory * 100:.1f}%"
    return details


async def require_admission(ctx: AppContext = Depends(get_context)) -> None:
    """FastAPI dependency guarding the batch endpoint.

    Declared async so the check runs on the event loop and does not occupy a
    worker thread it is trying to measure.
    """
    ctx.admission_gate.admit()

"""Health check and admission control diagnostics.

Router defined at module level; dependencies come from app.state through the
providers in dependencies.py.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends

from apps.order_service import metrics
from apps.order_service.app_context import AppContext
from apps.order_service.config import OrderServiceConfig
from apps.order_service.dependencies import get_config, get_context, get_version
from apps.order_service.schemas import HealthResponse, OverloadStatusResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
def root(
    version: str = Depends(get_version),
    config: OrderServiceConfig = Depends(get_config),
) -> dict[str, Any]:
    """Basic service information."""
    return {
        "service": "order_service",
        "version": version,
        "status": "running",
        "environment": config.environment,
    }


@router.get("/health", tags=["health"])
def health_check(
    ctx: AppContext = Depends(get_context),
    version: str = Depends(get_version),
) -> HealthResponse:
    """
    Health check endpoint.

    Status is "unhealthy" when the database is unreachable, "degraded" while
    the admission gate would reject batches, otherwise "healthy".
    """
    db_connected = ctx.db.check_connection()
    metrics.database_connection_status.set(1 if db_connected else 0)

    decision = ctx.overload_detector.evaluate()

    overall_status: Literal["healthy", "degraded", "unhealthy"]
    if not db_connected:
        overall_status = "unhealthy"
    elif decision.overloaded:
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return HealthResponse(
        status=overall_status,
        version=version,
        database_connected=db_connected,
        overloaded=decision.overloaded,
        timestamp=datetime.now(UTC),
        details={"overload_reasons": list(decision.reasons)} if decision.reasons else None,
    )


@router.get("/api/v1/system/overload", tags=["system"])
def overload_status(ctx: AppContext = Depends(get_context)) -> OverloadStatusResponse:
    """Current utilization, thresholds, admission decision and detector statistics."""
    status = ctx.overload_detector.status()
    return OverloadStatusResponse(
        overloaded=status["overloaded"],
        retry_after_seconds=status["retry_after_seconds"],
        detection_enabled=status["detection_enabled"],
        utilization=status["utilization"],
        probe_errors=status["probe_errors"],
        thresholds=status["thresholds"],
        detector=status["detector"],
        submissions=ctx.submission_service.monitor.snapshot(),
        timestamp=datetime.now(UTC),
    )

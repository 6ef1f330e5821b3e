"""Batch order submission endpoint.

POST /api/v1/orders/batch/submit

    1. admission gate (dependency): 503 + Retry-After when overloaded
    2. batch shape validation: 400 on missing/empty/oversize/null ids
    3. bulk submission: always 200 with one result per requested id

The handler is a plain ``def``, so it runs on the worker thread pool that the
thread pool probe measures, and may block on the trade service and database.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends

from apps.order_service.admission import require_admission
from apps.order_service.app_context import AppContext
from apps.order_service.batch_loader import validate_order_ids
from apps.order_service.config import OrderServiceConfig
from apps.order_service.dependencies import get_config, get_context
from apps.order_service.schemas import BatchSubmitRequest, BatchSubmitResponse, ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/batch/submit",
    response_model=BatchSubmitResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_admission)],
    responses={
        400: {"model": ErrorResponse, "description": "Malformed batch request"},
        503: {"model": ErrorResponse, "description": "Service overloaded; see Retry-After"},
    },
)
def submit_batch(
    request: BatchSubmitRequest | None = Body(None),
    ctx: AppContext = Depends(get_context),
    config: OrderServiceConfig = Depends(get_config),
) -> BatchSubmitResponse:
    """Submit a batch of NEW orders to the trade service in one bulk call.

    Returns:
        BatchSubmitResponse with status SUCCESS, PARTIAL or FAILURE and one
        result per requested id, in request order

    Raises:
        BatchValidationError: Malformed batch (handled as 400)
    """
    order_ids = validate_order_ids(
        request.order_ids if request is not None else None,
        config.max_batch_size,
    )

    logger.info("Batch admitted", extra={"batch_size": len(order_ids)})
    return ctx.submission_service.submit_batch(order_ids)

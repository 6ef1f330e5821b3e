"""Exception handlers mapping service errors to ErrorResponse bodies.

    BatchValidationError, malformed request body   400  VALIDATION_ERROR
    SystemOverloadedError                          503  SERVICE_OVERLOADED + Retry-After
    PersistenceError                               500  DATABASE_ERROR
    any other exception                            500  INTERNAL_ERROR
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from apps.order_service.exceptions import (
    INTERNAL_ERROR,
    VALIDATION_ERROR,
    BatchValidationError,
    OrderServiceError,
    SystemOverloadedError,
)
from apps.order_service.schemas import ErrorResponse

logger = logging.getLogger(__name__)


def _error_body(
    code: str,
    message: str,
    retry_after: int | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return ErrorResponse(
        code=code,
        message=message,
        retry_after=retry_after,
        timestamp=datetime.now(UTC),
        details=details,
    ).model_dump(mode="json", by_alias=True, exclude_none=True)


async def batch_validation_handler(request: Request, exc: BatchValidationError) -> JSONResponse:
    """Handle batch shape validation errors."""
    logger.debug("Batch validation failed", extra={"error": exc.message})
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(exc.code, exc.message, details=exc.details),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle unparseable bodies (bad JSON, non-integer ids) as 400 rather than 422."""
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")} for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(
            VALIDATION_ERROR,
            "Request body is required and must contain orderIds array",
            details={"errors": errors},
        ),
    )


async def system_overloaded_handler(request: Request, exc: SystemOverloadedError) -> JSONResponse:
    """Handle admission rejections: 503 with Retry-After matching the body."""
    retry_after = exc.retry_after_seconds
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_error_body(exc.code, exc.message, retry_after=retry_after, details=exc.details),
        headers={"Retry-After": str(retry_after)},
    )


async def order_service_error_handler(request: Request, exc: OrderServiceError) -> JSONResponse:
    """Handle service errors that escaped the batch pipeline."""
    logger.error(
        "Unhandled order service error",
        extra={"error_type": type(exc).__name__, "error": exc.message, "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(exc.code, exc.message, details=exc.details),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: log with traceback, return a generic 500 body."""
    logger.error(
        "Unhandled exception",
        extra={"error_type": type(exc).__name__, "path": request.url.path},
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(INTERNAL_ERROR, "An unexpected error occurred. Please try again later."),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BatchValidationError, batch_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SystemOverloadedError, system_overloaded_handler)  # type: ignore[arg-type]
    app.add_exception_handler(OrderServiceError, order_service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)

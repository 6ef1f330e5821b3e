"""
Exception hierarchy for the Order Service.

Every error carries a stable ``code`` (the value clients see in the
ErrorResponse body), a human readable ``message`` and whether the caller may
safely retry the same request.

Trade service errors are raised by the venue client and never escape the
batch endpoint: the orchestrator converts them into per-order failures. Only
validation and overload errors become non-200 HTTP responses.
"""

from __future__ import annotations

from typing import Any

from libs.common.exceptions import PlatformError

# Error codes exposed in ErrorResponse.code
SERVICE_OVERLOADED = "SERVICE_OVERLOADED"
VALIDATION_ERROR = "VALIDATION_ERROR"
TRADE_SERVICE_ERROR = "TRADE_SERVICE_ERROR"
DATABASE_ERROR = "DATABASE_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"


class OrderServiceError(PlatformError):
    """Base exception for Order Service errors."""

    code = INTERNAL_ERROR
    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class BatchValidationError(OrderServiceError):
    """Malformed batch request (non-retryable, HTTP 400)."""

    code = VALIDATION_ERROR


class SystemOverloadedError(OrderServiceError):
    """
    Raised by the admission gate when the process is under resource pressure.

    Maps to HTTP 503 with a Retry-After header equal to retry_after_seconds.
    """

    code = SERVICE_OVERLOADED
    retryable = True

    DEFAULT_MESSAGE = "System temporarily overloaded - please retry in a few minutes"
    DEFAULT_REASON = "system_resource_exhaustion"

    def __init__(
        self,
        retry_after_seconds: int,
        message: str = DEFAULT_MESSAGE,
        overload_reason: str = DEFAULT_REASON,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.retry_after_seconds = retry_after_seconds
        self.overload_reason = overload_reason


class BulkRequestBuildError(OrderServiceError):
    """An eligible order failed the strict field check while building the venue request."""

    code = VALIDATION_ERROR


class TradeServiceError(OrderServiceError):
    """Base exception for trade service call failures.

    No local state has been mutated when one of these is raised.
    """

    code = TRADE_SERVICE_ERROR


class TradeServiceClientError(TradeServiceError):
    """Trade service rejected the request with a 4xx (non-retryable)."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message, {"statusCode": status_code})
        self.status_code = status_code


class TradeServiceServerError(TradeServiceError):
    """Trade service answered with a 5xx (retryable by the caller)."""

    retryable = True

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message, {"statusCode": status_code})
        self.status_code = status_code


class TradeServiceConnectivityError(TradeServiceError):
    """Timeout or network failure reaching the trade service (retryable)."""

    retryable = True


class TradeServiceEmptyResponseError(TradeServiceError):
    """Trade service returned success without a response body."""

    pass


class TradeServiceResponseError(TradeServiceError):
    """Trade service returned a body that does not match the bulk response contract."""

    pass


class PersistenceError(OrderServiceError):
    """
    Local persistence failed after the trade service accepted orders.

    Only the persist step may be retried. Resubmitting the batch would create
    duplicate trade orders.
    """

    code = DATABASE_ERROR
    retryable = True

"""
HTTP client for the trade service bulk endpoint.

One call to submit_bulk() is exactly one POST to /api/v1/tradeOrders/bulk.
The client never retries; resubmitting is left to the caller.

Outcomes are classified into the TradeServiceError hierarchy:

    4xx                      TradeServiceClientError        (non-retryable)
    5xx                      TradeServiceServerError        (retryable)
    timeout / network error  TradeServiceConnectivityError  (retryable)
    2xx with empty body      TradeServiceEmptyResponseError
    2xx with unusable body   TradeServiceResponseError

A 2xx JSON object is accepted even when some result items are malformed;
those items are dropped and their line items end up without a result.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from apps.order_service import metrics
from apps.order_service.exceptions import (
    TradeServiceClientError,
    TradeServiceConnectivityError,
    TradeServiceEmptyResponseError,
    TradeServiceResponseError,
    TradeServiceServerError,
)
from apps.order_service.schemas import (
    BulkTradeOrderRequest,
    BulkTradeOrderResponse,
    TradeOrderResult,
)
from libs.common.logging.http_client import get_traced_sync_client

logger = logging.getLogger(__name__)

# Upstream error bodies are echoed into messages, truncated to this length
_MAX_ERROR_BODY_CHARS = 500


class TradeServiceClient:
    """
    Synchronous client for the trade service.

    Example:
        >>> client = TradeServiceClient("http://globeco-trade-service:8082")
        >>> response = client.submit_bulk(BulkTradeOrderRequest(trade_orders=[...]))
        >>> response.successful
        3
    """

    BULK_PATH = "/api/v1/tradeOrders/bulk"

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        connect_timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize trade service client.

        Args:
            base_url: Base URL of the trade service (e.g., "http://localhost:8082")
            timeout: Read/write/pool timeout in seconds (default: 60.0)
            connect_timeout: Connect timeout in seconds (default: 10.0)
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = get_traced_sync_client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            transport=transport,
        )

    def close(self) -> None:
        """Close HTTP client."""
        self.client.close()

    def health_check(self) -> bool:
        """Return True if the trade service answers its health endpoint with 200."""
        try:
            response = self.client.get("/actuator/health")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"Trade service health check failed: {e}")
            return False

    def submit_bulk(self, request: BulkTradeOrderRequest) -> BulkTradeOrderResponse:
        """
        Submit all trade orders of a batch in one call.

        Args:
            request: Bulk request; line item i is reported back as requestIndex i

        Returns:
            Parsed bulk response

        Raises:
            TradeServiceError: Any subclass, see module docstring
        """
        payload = request.model_dump(mode="json", by_alias=True)
        order_count = len(request.trade_orders)

        logger.info(
            f"Submitting {order_count} trade orders to trade service",
            extra={"order_count": order_count, "url": f"{self.base_url}{self.BULK_PATH}"},
        )

        try:
            response = self.client.post(self.BULK_PATH, json=payload)
        except httpx.TimeoutException as e:
            metrics.trade_service_errors_total.labels(kind="connectivity").inc()
            logger.error(
                "Trade service request timed out",
                extra={"order_count": order_count, "timeout": self.timeout, "error": str(e)},
            )
            raise TradeServiceConnectivityError(
                f"Trade service connectivity error: request timed out ({type(e).__name__})"
            ) from e
        except httpx.TransportError as e:
            metrics.trade_service_errors_total.labels(kind="connectivity").inc()
            logger.error(
                "Trade service unreachable",
                extra={"order_count": order_count, "error": str(e)},
            )
            raise TradeServiceConnectivityError(f"Trade service connectivity error: {e}") from e
        except httpx.HTTPError as e:
            metrics.trade_service_errors_total.labels(kind="connectivity").inc()
            logger.error(
                "Trade service request failed",
                extra={"order_count": order_count, "error_type": type(e).__name__, "error": str(e)},
            )
            raise TradeServiceConnectivityError(
                f"Trade service connectivity error: {type(e).__name__}: {e}"
            ) from e

        return self._parse_response(response)

    def _parse_response(self, response: httpx.Response) -> BulkTradeOrderResponse:
        status_code = response.status_code

        if 400 <= status_code < 500:
            metrics.trade_service_errors_total.labels(kind="client").inc()
            body = response.text[:_MAX_ERROR_BODY_CHARS]
            logger.error(
                f"Trade service rejected bulk request: {status_code}",
                extra={"status_code": status_code, "response": body},
            )
            message = f"Trade service HTTP client error: {status_code} {response.reason_phrase}"
            if body:
                message = f"{message} - {body}"
            raise TradeServiceClientError(status_code, message)

        if status_code >= 500:
            metrics.trade_service_errors_total.labels(kind="server").inc()
            logger.error(
                f"Trade service server error: {status_code}",
                extra={"status_code": status_code, "response": response.text[:_MAX_ERROR_BODY_CHARS]},
            )
            raise TradeServiceServerError(
                status_code, f"Trade service server error: {status_code} {response.reason_phrase}"
            )

        if not 200 <= status_code < 300:
            metrics.trade_service_errors_total.labels(kind="invalid_response").inc()
            raise TradeServiceResponseError(
                f"Trade service returned unexpected status {status_code}"
            )

        if not response.content.strip():
            metrics.trade_service_errors_total.labels(kind="empty_response").inc()
            logger.error("Trade service returned empty body", extra={"status_code": status_code})
            raise TradeServiceEmptyResponseError("Trade service returned null response body")

        try:
            data = response.json()
        except ValueError as e:
            metrics.trade_service_errors_total.labels(kind="invalid_response").inc()
            raise TradeServiceResponseError(
                f"Trade service returned malformed response: {e}"
            ) from e

        if data is None:
            metrics.trade_service_errors_total.labels(kind="empty_response").inc()
            raise TradeServiceEmptyResponseError("Trade service returned null response body")

        if not isinstance(data, dict):
            metrics.trade_service_errors_total.labels(kind="invalid_response").inc()
            raise TradeServiceResponseError(
                f"Trade service returned malformed response: expected a JSON object, "
                f"got {type(data).__name__}"
            )

        # Valid items may already be trade orders; a bad item or envelope field never discards them
        raw_results = data.get("results")
        if raw_results is None:
            raw_results = []
        elif not isinstance(raw_results, list):
            logger.error(
                "Trade service results is not a list; no line item can be matched",
                extra={"results_type": type(raw_results).__name__},
            )
            raw_results = []

        envelope = {key: value for key, value in data.items() if key != "results"}
        try:
            bulk_response = BulkTradeOrderResponse.model_validate(envelope)
        except ValidationError as e:
            logger.warning(
                "Trade service response summary does not match bulk contract; ignoring it",
                extra={"errors": e.errors(include_url=False)},
            )
            bulk_response = BulkTradeOrderResponse()

        bulk_response.results = self._parse_results(raw_results)

        logger.info(
            "Trade service bulk response received",
            extra={
                "status": bulk_response.status,
                "successful": bulk_response.successful,
                "failed": bulk_response.failed,
                "result_count": len(bulk_response.results),
            },
        )
        return bulk_response

    @staticmethod
    def _parse_results(raw_results: list[Any]) -> list[TradeOrderResult]:
        """Validate result items one at a time, skipping the ones that do not parse.

        A skipped item leaves its line item without a result, which the
        orchestrator reports as a failure for that order only.
        """
        results: list[TradeOrderResult] = []
        for position, item in enumerate(raw_results):
            try:
                results.append(TradeOrderResult.model_validate(item))
            except ValidationError as e:
                logger.error(
                    "Skipping malformed trade service result item",
                    extra={
                        "item_position": position,
                        "request_index": item.get("requestIndex") if isinstance(item, dict) else None,
                        "errors": e.errors(include_url=False),
                    },
                )
        return results

"""
Bulk submission orchestrator.

submit_batch() takes an admitted, validated list of order ids through:

    load     one query, split into eligible / ineligible positions
    build    one trade order line item per eligible order, in request order
    call     exactly one POST to the trade service, outside any transaction
    reconcile venue results matched to orders by line item position
    persist  one transaction recording every accepted trade order
    aggregate one result per requested id, in request order

Transaction boundary: the venue call happens strictly before the persist
transaction opens. Until the call returns nothing local has changed, so a
failed call leaves every order as it was and the caller may retry the batch.
Once the venue has accepted orders, only the persist step is retried; the
venue is never called again for the same batch.

Position bookkeeping: ``positions[p]`` is the request index of the order sent
as line item ``p``. Venue results carry ``requestIndex`` = line item position,
so each result is routed back through that list, never by order id.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from psycopg import DatabaseError

from apps.order_service.batch_loader import BatchLoader, EligibleOrder, LoadedBatch, OrderReader
from apps.order_service.exceptions import (
    BulkRequestBuildError,
    PersistenceError,
    TradeServiceError,
)
from apps.order_service.performance_monitor import BulkSubmissionPerformanceMonitor
from apps.order_service.schemas import (
    BatchStatus,
    BatchSubmitResponse,
    BulkTradeOrderRequest,
    BulkTradeOrderResponse,
    Order,
    OrderResultStatus,
    OrderSubmitResult,
    TradeOrderPost,
    TradeOrderResult,
)

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Order submitted successfully"
NO_RESULT_MESSAGE = "no result returned from trade service for this order"
NO_ELIGIBLE_ORDERS_MESSAGE = "No eligible orders to submit"


class SubmissionStore(OrderReader, Protocol):
    def persist_submissions(self, assignments: Sequence[tuple[int, int]]) -> set[int]: ...


class TradeVenue(Protocol):
    def submit_bulk(self, request: BulkTradeOrderRequest) -> BulkTradeOrderResponse: ...


@dataclass(frozen=True)
class _Outcome:
    status: OrderResultStatus
    message: str
    trade_order_id: int | None = None

    @classmethod
    def success(cls, trade_order_id: int) -> _Outcome:
        return cls("SUCCESS", SUCCESS_MESSAGE, trade_order_id)

    @classmethod
    def failure(cls, message: str, trade_order_id: int | None = None) -> _Outcome:
        return cls("FAILURE", message, trade_order_id)


@dataclass(frozen=True)
class _Accepted:
    """A line item the venue accepted, waiting to be persisted."""

    request_index: int
    order_id: int
    trade_order_id: int


# ============================================================================
# Build
# ============================================================================


def _require_submittable(order: Order) -> None:
    if not order.portfolio_id:
        raise BulkRequestBuildError(f"Portfolio ID is required for order {order.id}")
    if not order.order_type:
        raise BulkRequestBuildError(f"Order type is required for order {order.id}")
    if not order.security_id:
        raise BulkRequestBuildError(f"Security ID is required for order {order.id}")
    if order.quantity is None or order.quantity <= 0:
        raise BulkRequestBuildError(f"Quantity must be positive for order {order.id}")
    if order.limit_price is None or order.limit_price <= 0:
        raise BulkRequestBuildError(f"Limit price must be positive for order {order.id}")
    if order.order_timestamp is None:
        raise BulkRequestBuildError(f"Order timestamp is required for order {order.id}")
    if order.blotter_id is None:
        raise BulkRequestBuildError(f"Blotter ID is required for order {order.id}")


def build_bulk_request(eligible: Sequence[EligibleOrder]) -> BulkTradeOrderRequest:
    """Build the venue request; line item ``p`` is ``eligible[p]``.

    Raises:
        BulkRequestBuildError: If any order lacks a required field. The whole
            build is aborted, not just the offending item.
    """
    if not eligible:
        raise BulkRequestBuildError("Orders list cannot be null or empty")

    line_items: list[TradeOrderPost] = []
    for entry in eligible:
        order = entry.order
        _require_submittable(order)
        line_items.append(
            TradeOrderPost(
                order_id=order.id,
                portfolio_id=order.portfolio_id,
                order_type=order.order_type,
                security_id=order.security_id,
                quantity=order.quantity,
                limit_price=order.limit_price,
                trade_timestamp=order.order_timestamp,
                blotter_id=order.blotter_id,
            )
        )
    return BulkTradeOrderRequest(trade_orders=line_items)


# ============================================================================
# Orchestrator
# ============================================================================


class BulkSubmissionService:
    """
    Submits batches of orders to the trade service and records the outcome.

    Example:
        >>> service = BulkSubmissionService(db, trade_client)
        >>> result = service.submit_batch([101, 102, 103])
        >>> result.status
        'PARTIAL'
    """

    def __init__(
        self,
        db: SubmissionStore,
        trade_client: TradeVenue,
        monitor: BulkSubmissionPerformanceMonitor | None = None,
    ) -> None:
        self._db = db
        self._trade_client = trade_client
        self._loader = BatchLoader(db)
        self.monitor = monitor or BulkSubmissionPerformanceMonitor()

    def submit_batch(self, order_ids: Sequence[int]) -> BatchSubmitResponse:
        """Process one batch start to finish.

        Args:
            order_ids: Validated ids (1..max batch size, no nulls, duplicates allowed)

        Returns:
            Batch result with one entry per requested id, in request order
        """
        started = time.perf_counter()

        try:
            batch = self._loader.load(order_ids)
        except DatabaseError as e:
            batch = LoadedBatch(order_ids=list(order_ids))
            message = f"Bulk submission failed: unable to load orders ({type(e).__name__})"
            outcomes = {i: _Outcome.failure(message) for i in range(batch.total_requested)}
            result = self._aggregate(batch, outcomes, failure_message=message)
        else:
            result = self._submit_loaded(batch)

        elapsed = time.perf_counter() - started
        self.monitor.record(result, elapsed, ineligible=len(batch.ineligible))

        logger.info(
            f"Batch submission complete: {result.status}",
            extra={
                "status": result.status,
                "total_requested": result.total_requested,
                "successful": result.successful,
                "failed": result.failed,
                "duration_ms": round(elapsed * 1000, 2),
            },
        )
        return result

    def _submit_loaded(self, batch: LoadedBatch) -> BatchSubmitResponse:
        outcomes: dict[int, _Outcome] = {
            index: _Outcome.failure(reason) for index, reason in batch.ineligible.items()
        }

        if not batch.eligible:
            return self._aggregate(batch, outcomes, failure_message=NO_ELIGIBLE_ORDERS_MESSAGE)

        try:
            request = build_bulk_request(batch.eligible)
        except BulkRequestBuildError as e:
            logger.error(
                "Bulk request build failed",
                extra={"error": e.message, "eligible": len(batch.eligible)},
            )
            return self._fail_eligible(batch, outcomes, f"Bulk submission failed: {e.message}")

        # Venue call: no transaction is open and nothing has been written
        try:
            response = self._trade_client.submit_bulk(request)
        except TradeServiceError as e:
            logger.error(
                "Bulk submission to trade service failed",
                extra={
                    "error_type": type(e).__name__,
                    "error": e.message,
                    "retryable": e.retryable,
                    "eligible": len(batch.eligible),
                },
            )
            return self._fail_eligible(batch, outcomes, f"Bulk submission failed: {e.message}")

        accepted = self._reconcile(batch.eligible, response, outcomes)
        self._persist(accepted, outcomes)
        return self._aggregate(batch, outcomes)

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    def _reconcile(
        self,
        eligible: Sequence[EligibleOrder],
        response: BulkTradeOrderResponse,
        outcomes: dict[int, _Outcome],
    ) -> list[_Accepted]:
        positions = [entry.request_index for entry in eligible]

        results_by_position: dict[int, TradeOrderResult] = {}
        for result in response.results:
            position = result.request_index
            if not 0 <= position < len(positions):
                logger.warning(
                    "Trade service returned result for unknown position",
                    extra={"position": position, "line_items": len(positions)},
                )
                continue
            if position in results_by_position:
                logger.warning(
                    "Trade service returned duplicate result for position; keeping first",
                    extra={"position": position},
                )
                continue
            results_by_position[position] = result

        accepted: list[_Accepted] = []
        for position, entry in enumerate(eligible):
            request_index = positions[position]
            result = results_by_position.get(position)
            if result is None:
                outcomes[request_index] = _Outcome.failure(NO_RESULT_MESSAGE)
            elif not result.succeeded:
                outcomes[request_index] = _Outcome.failure(
                    result.message or f"Trade service reported {result.status} for this order"
                )
            elif result.trade_order is None or result.trade_order.id is None:
                outcomes[request_index] = _Outcome.failure(
                    "Trade service reported success without a trade order id"
                )
            else:
                accepted.append(
                    _Accepted(
                        request_index=request_index,
                        order_id=entry.order.id,
                        trade_order_id=result.trade_order.id,
                    )
                )

        missing = len(positions) - len(results_by_position)
        if missing:
            logger.warning(
                "Trade service response missing results",
                extra={"line_items": len(positions), "missing": missing},
            )
        return accepted

    # ------------------------------------------------------------------
    # Persist
    # ------------------------------------------------------------------

    def _persist(self, accepted: Sequence[_Accepted], outcomes: dict[int, _Outcome]) -> None:
        # A repeated id can only be recorded once; later positions keep their trade order id
        to_record: list[_Accepted] = []
        recorded_ids: set[int] = set()
        for item in accepted:
            if item.order_id in recorded_ids:
                outcomes[item.request_index] = _Outcome.failure(
                    f"Duplicate order id in batch; trade order {item.trade_order_id} was not recorded",
                    item.trade_order_id,
                )
                logger.warning(
                    "Unrecorded trade order for duplicate order id",
                    extra={"order_id": item.order_id, "trade_order_id": item.trade_order_id},
                )
                continue
            recorded_ids.add(item.order_id)
            to_record.append(item)

        if not to_record:
            return

        try:
            updated = self._db.persist_submissions(
                [(item.order_id, item.trade_order_id) for item in to_record]
            )
        except PersistenceError as e:
            logger.error(
                "Trade orders created but not recorded locally; reconciliation required",
                extra={
                    "error": e.message,
                    "assignments": {item.order_id: item.trade_order_id for item in to_record},
                },
            )
            for item in to_record:
                outcomes[item.request_index] = _Outcome.failure(
                    f"Trade order {item.trade_order_id} was created but recording it failed; "
                    "do not resubmit this order",
                    item.trade_order_id,
                )
            return

        for item in to_record:
            if item.order_id in updated:
                outcomes[item.request_index] = _Outcome.success(item.trade_order_id)
            else:
                logger.warning(
                    "Order left NEW before submission was recorded",
                    extra={"order_id": item.order_id, "trade_order_id": item.trade_order_id},
                )
                outcomes[item.request_index] = _Outcome.failure(
                    "Order was modified by another request before submission could be "
                    f"recorded; trade order {item.trade_order_id} was not recorded",
                    item.trade_order_id,
                )

    # ------------------------------------------------------------------
    # Aggregate
    # ------------------------------------------------------------------

    def _fail_eligible(
        self,
        batch: LoadedBatch,
        outcomes: dict[int, _Outcome],
        message: str,
    ) -> BatchSubmitResponse:
        for entry in batch.eligible:
            outcomes[entry.request_index] = _Outcome.failure(message)
        return self._aggregate(batch, outcomes, failure_message=message)

    def _aggregate(
        self,
        batch: LoadedBatch,
        outcomes: dict[int, _Outcome],
        failure_message: str | None = None,
    ) -> BatchSubmitResponse:
        results: list[OrderSubmitResult] = []
        for request_index, order_id in enumerate(batch.order_ids):
            outcome = outcomes.get(request_index) or _Outcome.failure(NO_RESULT_MESSAGE)
            results.append(
                OrderSubmitResult(
                    order_id=order_id,
                    status=outcome.status,
                    message=outcome.message,
                    trade_order_id=outcome.trade_order_id,
                    request_index=request_index,
                )
            )

        total = len(results)
        successful = sum(1 for r in results if r.status == "SUCCESS")
        failed = total - successful
        eligible_count = len(batch.eligible)

        status: BatchStatus
        if successful == 0:
            status = "FAILURE"
            message = failure_message or f"All {eligible_count} eligible orders failed to submit"
        elif successful == eligible_count:
            status = "SUCCESS"
            if failed == 0:
                message = f"All {total} orders submitted successfully"
            else:
                message = (
                    f"{successful} of {total} orders submitted successfully, "
                    f"{failed} not eligible for submission"
                )
        else:
            status = "PARTIAL"
            message = f"{successful} of {total} orders submitted successfully, {failed} failed"

        return BatchSubmitResponse(
            status=status,
            message=message,
            total_requested=total,
            successful=successful,
            failed=failed,
            results=results,
        )

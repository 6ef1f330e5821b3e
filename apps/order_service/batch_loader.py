"""
Batch validation, loading and eligibility filtering.

validate_order_ids() checks the shape of the request before anything else
happens. BatchLoader then reads every requested order in one query and splits
the request positions into eligible orders and ineligible ones, each
ineligible position carrying the reason it was held back. Filtering never
raises: ineligible orders are reported per order in the final result.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from apps.order_service.exceptions import BatchValidationError
from apps.order_service.schemas import ORDER_STATUS_NEW, Order

logger = logging.getLogger(__name__)

ORDER_NOT_FOUND = "Order not found"


class OrderReader(Protocol):
    def get_orders_by_ids(self, order_ids: Sequence[int]) -> dict[int, Order]: ...


def validate_order_ids(order_ids: Sequence[int | None] | None, max_batch_size: int) -> list[int]:
    """Validate the batch shape and return the ids as a plain list.

    Raises:
        BatchValidationError: missing list, empty list, oversize batch or null ids
    """
    if order_ids is None:
        raise BatchValidationError("Request body is required and must contain orderIds array")
    if len(order_ids) == 0:
        raise BatchValidationError("Order IDs list cannot be empty")
    if len(order_ids) > max_batch_size:
        raise BatchValidationError(
            f"Batch size {len(order_ids)} exceeds maximum allowed size of {max_batch_size}",
            {"requestedSize": len(order_ids), "maxBatchSize": max_batch_size},
        )
    if any(order_id is None for order_id in order_ids):
        raise BatchValidationError("Order IDs cannot contain null values")
    return [int(order_id) for order_id in order_ids if order_id is not None]


def missing_submission_fields(order: Order) -> list[str]:
    """Names of the fields that keep ``order`` from being sent to the trade service."""
    missing: list[str] = []
    if not order.portfolio_id:
        missing.append("portfolioId")
    if not order.security_id:
        missing.append("securityId")
    if not order.order_type:
        missing.append("orderType")
    if order.quantity is None or order.quantity <= 0:
        missing.append("quantity (must be positive)")
    if order.limit_price is None or order.limit_price <= 0:
        missing.append("limitPrice (must be positive)")
    if order.order_timestamp is None:
        missing.append("orderTimestamp")
    if order.blotter_id is None:
        missing.append("blotterId")
    return missing


def ineligibility_reason(order: Order | None) -> str | None:
    """Why ``order`` cannot be submitted, or None when it can."""
    if order is None:
        return ORDER_NOT_FOUND
    if order.status != ORDER_STATUS_NEW:
        return f"Order is not in {ORDER_STATUS_NEW} status (current status: {order.status})"
    if order.trade_order_id is not None:
        return f"Order has already been submitted (trade order id {order.trade_order_id})"
    missing = missing_submission_fields(order)
    if missing:
        return f"Order is missing data required for submission: {', '.join(missing)}"
    return None


@dataclass(frozen=True)
class EligibleOrder:
    request_index: int
    order: Order


@dataclass
class LoadedBatch:
    """Requested ids split into eligible orders and per-position rejection reasons."""

    order_ids: list[int]
    eligible: list[EligibleOrder] = field(default_factory=list)
    ineligible: dict[int, str] = field(default_factory=dict)

    @property
    def total_requested(self) -> int:
        return len(self.order_ids)


class BatchLoader:
    """Loads a batch with one query and filters it to submittable orders."""

    def __init__(self, db: OrderReader) -> None:
        self._db = db

    def load(self, order_ids: Sequence[int]) -> LoadedBatch:
        orders = self._db.get_orders_by_ids(order_ids)
        batch = LoadedBatch(order_ids=list(order_ids))

        for request_index, order_id in enumerate(order_ids):
            order = orders.get(order_id)
            reason = ineligibility_reason(order)
            if reason is None and order is not None:
                batch.eligible.append(EligibleOrder(request_index=request_index, order=order))
            else:
                batch.ineligible[request_index] = reason or ORDER_NOT_FOUND

        if batch.ineligible:
            logger.info(
                "Filtered ineligible orders from batch",
                extra={
                    "requested": batch.total_requested,
                    "eligible": len(batch.eligible),
                    "ineligible_order_ids": [order_ids[i] for i in sorted(batch.ineligible)],
                },
            )
        return batch

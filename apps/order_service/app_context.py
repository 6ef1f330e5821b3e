"""Application context for dependency injection in the Order Service.

AppContext holds every long-lived collaborator the routes need. The lifespan
builds one at startup and stores it on app.state; tests build one from mocks
and pass it to create_app().

Usage:
    @router.post("/batch/submit")
    def submit(ctx: AppContext = Depends(get_context)):
        return ctx.submission_service.submit_batch(order_ids)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from apps.order_service.admission import AdmissionGate
    from apps.order_service.bulk_submission import BulkSubmissionService
    from apps.order_service.overload_detector import OverloadDetector
    from apps.order_service.schemas import BulkTradeOrderRequest, BulkTradeOrderResponse, Order


class OrderDatabaseProtocol(Protocol):
    """Database operations used by the batch pipeline and health checks."""

    def get_orders_by_ids(self, order_ids: Sequence[int]) -> dict[int, Order]:
        """Load requested orders keyed by id."""
        ...

    def persist_submissions(self, assignments: Sequence[tuple[int, int]]) -> set[int]:
        """Record (order_id, trade_order_id) pairs; return ids updated."""
        ...

    def pool_stats(self) -> dict[str, int]:
        """Connection pool counters."""
        ...

    def check_connection(self) -> bool:
        """Check database connectivity."""
        ...

    def close(self) -> None:
        """Release pooled connections."""
        ...


class TradeServiceClientProtocol(Protocol):
    """Trade service operations used by the batch pipeline."""

    def submit_bulk(self, request: BulkTradeOrderRequest) -> BulkTradeOrderResponse:
        """Submit one bulk request."""
        ...

    def close(self) -> None:
        """Close the HTTP client."""
        ...


@dataclass
class AppContext:
    """Central context for all application dependencies.

    Attributes:
        db: Order database (connection pool owner)
        trade_client: Trade service HTTP client
        overload_detector: Per-process overload detector
        admission_gate: Gate consulted before every batch
        submission_service: Batch orchestrator
    """

    db: OrderDatabaseProtocol
    trade_client: TradeServiceClientProtocol
    overload_detector: OverloadDetector
    admission_gate: AdmissionGate
    submission_service: BulkSubmissionService

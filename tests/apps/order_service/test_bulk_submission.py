"""
Tests for the bulk submission orchestrator.

An in-memory order store applies the same conditional NEW -> SUBMITTED
update as the database, so every test can reload orders afterwards and check
what was (or was not) written.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from unittest.mock import MagicMock

import httpx
import pytest
from psycopg import OperationalError

from apps.order_service.batch_loader import EligibleOrder
from apps.order_service.bulk_submission import (
    NO_RESULT_MESSAGE,
    BulkSubmissionService,
    build_bulk_request,
)
from apps.order_service.exceptions import (
    BulkRequestBuildError,
    PersistenceError,
    TradeServiceClientError,
    TradeServiceConnectivityError,
    TradeServiceServerError,
)
from apps.order_service.schemas import (
    BulkTradeOrderRequest,
    BulkTradeOrderResponse,
    Order,
)
from apps.order_service.trade_service_client import TradeServiceClient
from tests.fixtures.orders import make_order


class InMemoryOrderStore:
    def __init__(self, orders: Sequence[Order]):
        self.orders = {order.id: order for order in orders}
        self.persist_calls: list[list[tuple[int, int]]] = []
        self.persist_error: Exception | None = None
        self.load_error: Exception | None = None

    def get_orders_by_ids(self, order_ids):
        if self.load_error is not None:
            raise self.load_error
        return {i: self.orders[i] for i in dict.fromkeys(order_ids) if i in self.orders}

    def persist_submissions(self, assignments):
        self.persist_calls.append(list(assignments))
        if self.persist_error is not None:
            raise self.persist_error
        updated = set()
        for order_id, trade_order_id in assignments:
            order = self.orders.get(order_id)
            if order is None or order.status != "NEW" or order.trade_order_id is not None:
                continue
            self.orders[order_id] = order.model_copy(
                update={
                    "status": "SUBMITTED",
                    "trade_order_id": trade_order_id,
                    "version": order.version + 1,
                }
            )
            updated.add(order_id)
        return updated


class RecordingVenue:
    """Venue stub. ``respond`` maps the outgoing request to a response dict."""

    def __init__(self, respond: Callable[[BulkTradeOrderRequest], dict] | None = None):
        self.requests: list[BulkTradeOrderRequest] = []
        self.error: Exception | None = None
        self._respond = respond or accept_all

    def submit_bulk(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return BulkTradeOrderResponse.model_validate(self._respond(request))

    @property
    def sent_order_ids(self) -> list[int]:
        return [item.order_id for item in self.requests[-1].trade_orders]


def _result(position: int, trade_order_id: int | None, status: str = "SUCCESS", message=None):
    result = {"requestIndex": position, "status": status, "message": message}
    if trade_order_id is not None:
        result["tradeOrder"] = {"id": trade_order_id}
    return result


def accept_all(request: BulkTradeOrderRequest) -> dict:
    return {
        "status": "SUCCESS",
        "results": [
            _result(p, 9000 + item.order_id) for p, item in enumerate(request.trade_orders)
        ],
    }


def _service(orders, venue=None):
    store = InMemoryOrderStore(orders)
    venue = venue or RecordingVenue()
    return BulkSubmissionService(store, venue), store, venue


class TestBuildBulkRequest:
    def test_line_items_follow_eligible_order(self):
        eligible = [EligibleOrder(2, make_order(30)), EligibleOrder(0, make_order(10))]
        request = build_bulk_request(eligible)
        assert [item.order_id for item in request.trade_orders] == [30, 10]
        assert request.trade_orders[0].trade_timestamp == make_order(30).order_timestamp

    def test_empty_list_rejected(self):
        with pytest.raises(BulkRequestBuildError, match="cannot be null or empty"):
            build_bulk_request([])

    def test_missing_field_aborts_whole_build(self):
        eligible = [EligibleOrder(0, make_order(1)), EligibleOrder(1, make_order(2, portfolio_id=None))]
        with pytest.raises(BulkRequestBuildError, match="Portfolio ID is required for order 2"):
            build_bulk_request(eligible)


class TestSubmitBatchHappyPath:
    def test_all_eligible_all_accepted(self):
        service, store, venue = _service([make_order(1), make_order(2), make_order(3)])

        result = service.submit_batch([1, 2, 3])

        assert result.status == "SUCCESS"
        assert result.successful == 3
        assert result.failed == 0
        assert result.message == "All 3 orders submitted successfully"
        assert len(venue.requests) == 1
        for entry in result.results:
            assert entry.status == "SUCCESS"
            assert entry.trade_order_id == 9000 + entry.order_id
            reloaded = store.orders[entry.order_id]
            assert reloaded.status == "SUBMITTED"
            assert reloaded.trade_order_id == entry.trade_order_id
        assert store.persist_calls == [[(1, 9001), (2, 9002), (3, 9003)]]

    def test_ineligible_order_is_skipped_and_reported(self):
        service, store, venue = _service(
            [make_order(1), make_order(2, status="SUBMITTED", trade_order_id=555), make_order(3)]
        )

        result = service.submit_batch([1, 2, 3])

        assert venue.sent_order_ids == [1, 3]
        assert [r.order_id for r in result.results] == [1, 2, 3]
        assert [r.request_index for r in result.results] == [0, 1, 2]
        skipped = result.results[1]
        assert skipped.status == "FAILURE"
        assert skipped.trade_order_id is None
        assert "not in NEW status" in skipped.message
        assert result.status == "SUCCESS"
        assert result.message == "2 of 3 orders submitted successfully, 1 not eligible for submission"
        assert store.orders[2].trade_order_id == 555

    def test_filtered_ids_do_not_make_batch_partial(self):
        # Overall status counts eligible orders only: every eligible order
        # succeeded, so the batch is SUCCESS while failed still counts the
        # filtered id
        service, _, _ = _service([make_order(1), make_order(2), make_order(3, status="FILLED")])

        result = service.submit_batch([1, 2, 3])

        assert result.status == "SUCCESS"
        assert (result.total_requested, result.successful, result.failed) == (3, 2, 1)
        assert result.results[2].status == "FAILURE"

    def test_eligible_failure_alongside_filtered_id_is_partial(self):
        def reject_second(request):
            return {
                "status": "PARTIAL",
                "results": [_result(0, 9001), _result(1, None, "FAILURE", "rejected")],
            }

        service, _, _ = _service(
            [make_order(1), make_order(2), make_order(3, status="FILLED")],
            RecordingVenue(reject_second),
        )

        result = service.submit_batch([1, 2, 3])

        assert result.status == "PARTIAL"
        assert (result.successful, result.failed) == (1, 2)

    def test_missing_order_is_reported(self):
        service, _, venue = _service([make_order(1)])
        result = service.submit_batch([404, 1])
        assert venue.sent_order_ids == [1]
        assert result.results[0].message == "Order not found"
        assert result.results[1].status == "SUCCESS"

    def test_results_routed_by_position_not_order_id(self):
        def respond(request):
            # Results arrive out of order and carry unrelated orderId echoes
            return {
                "status": "SUCCESS",
                "results": [
                    {"requestIndex": 1, "status": "SUCCESS", "tradeOrder": {"id": 222, "orderId": 999}},
                    {"requestIndex": 0, "status": "SUCCESS", "tradeOrder": {"id": 111, "orderId": 999}},
                ],
            }

        service, store, _ = _service([make_order(5), make_order(6)], RecordingVenue(respond))
        result = service.submit_batch([6, 5])

        assert [(r.order_id, r.trade_order_id) for r in result.results] == [(6, 111), (5, 222)]
        assert store.orders[6].trade_order_id == 111


class TestSubmitBatchVenueOutcomes:
    def test_missing_position_marks_only_that_order(self):
        def respond(request):
            return {"status": "PARTIAL", "results": [_result(0, 70), _result(2, 72)]}

        service, store, _ = _service(
            [make_order(1), make_order(2), make_order(3)], RecordingVenue(respond)
        )

        result = service.submit_batch([1, 2, 3])

        assert result.status == "PARTIAL"
        assert result.successful == 2
        assert result.results[1].status == "FAILURE"
        assert result.results[1].message == NO_RESULT_MESSAGE
        assert store.orders[2].status == "NEW"
        assert result.message == "2 of 3 orders submitted successfully, 1 failed"

    def test_venue_failure_item_uses_venue_message(self):
        def respond(request):
            return {
                "status": "PARTIAL",
                "results": [_result(0, 70), _result(1, None, "FAILURE", "Security not tradable")],
            }

        service, store, _ = _service([make_order(1), make_order(2)], RecordingVenue(respond))
        result = service.submit_batch([1, 2])

        assert result.results[1].message == "Security not tradable"
        assert store.orders[2].trade_order_id is None

    def test_success_without_trade_order_id_is_failure(self):
        def respond(request):
            return {"status": "SUCCESS", "results": [_result(0, None)]}

        service, store, _ = _service([make_order(1)], RecordingVenue(respond))
        result = service.submit_batch([1])
        assert result.status == "FAILURE"
        assert "without a trade order id" in result.results[0].message
        assert store.persist_calls == []

    def test_out_of_range_and_duplicate_positions_ignored(self):
        def respond(request):
            return {
                "status": "SUCCESS",
                "results": [_result(0, 70), _result(0, 71), _result(5, 75), _result(-1, 76)],
            }

        service, _, _ = _service([make_order(1)], RecordingVenue(respond))
        result = service.submit_batch([1])
        assert result.results[0].trade_order_id == 70

    @pytest.mark.parametrize(
        "error",
        [
            TradeServiceServerError(503, "Trade service server error: 503 Service Unavailable"),
            TradeServiceConnectivityError("Trade service connectivity error: refused"),
            TradeServiceClientError(400, "Trade service HTTP client error: 400 Bad Request"),
        ],
    )
    def test_venue_error_fails_batch_without_mutation(self, error):
        venue = RecordingVenue()
        venue.error = error
        service, store, _ = _service([make_order(1), make_order(2, status="CANCELLED")], venue)
        before = dict(store.orders)

        result = service.submit_batch([1, 2])

        assert result.status == "FAILURE"
        assert result.successful == 0
        assert result.failed == 2
        assert result.results[0].message == f"Bulk submission failed: {error.message}"
        assert "not in NEW status" in result.results[1].message
        assert store.orders == before
        assert store.persist_calls == []
        assert len(venue.requests) == 1


class TestSubmitBatchFailureModes:
    def test_no_eligible_orders_skips_venue(self):
        service, _, venue = _service([make_order(1, status="SUBMITTED", trade_order_id=1)])
        result = service.submit_batch([1, 2])
        assert result.status == "FAILURE"
        assert result.message == "No eligible orders to submit"
        assert venue.requests == []

    def test_resubmitting_completed_batch_does_not_call_venue_again(self):
        service, _, venue = _service([make_order(1), make_order(2)])

        first = service.submit_batch([1, 2])
        second = service.submit_batch([1, 2])

        assert first.status == "SUCCESS"
        assert second.status == "FAILURE"
        assert second.successful == 0
        assert len(venue.requests) == 1

    def test_load_failure_fails_every_id(self):
        service, store, venue = _service([make_order(1)])
        store.load_error = OperationalError("connection refused")

        result = service.submit_batch([1, 2])

        assert result.status == "FAILURE"
        assert [r.status for r in result.results] == ["FAILURE", "FAILURE"]
        assert "unable to load orders" in result.message
        assert venue.requests == []

    def test_persistence_failure_keeps_trade_order_ids_and_never_resubmits(self):
        service, store, venue = _service([make_order(1), make_order(2)])
        store.persist_error = PersistenceError("Failed to record submitted orders: gone")

        result = service.submit_batch([1, 2])

        assert len(venue.requests) == 1
        assert result.status == "FAILURE"
        for entry in result.results:
            assert entry.trade_order_id == 9000 + entry.order_id
            assert "do not resubmit" in entry.message
        assert store.orders[1].status == "NEW"

    def test_concurrent_submission_loses_conditional_update(self):
        service, store, _ = _service([make_order(1), make_order(2)])
        original_persist = store.persist_submissions

        def racing_persist(assignments):
            # Another request records order 2 first
            store.orders[2] = store.orders[2].model_copy(
                update={"status": "SUBMITTED", "trade_order_id": 4242}
            )
            return original_persist(assignments)

        store.persist_submissions = racing_persist

        result = service.submit_batch([1, 2])

        assert result.status == "PARTIAL"
        assert result.results[1].status == "FAILURE"
        assert result.results[1].trade_order_id == 9002
        assert "modified by another request" in result.results[1].message
        assert store.orders[2].trade_order_id == 4242

    def test_duplicate_ids_record_first_position_only(self):
        service, store, venue = _service([make_order(1)])

        result = service.submit_batch([1, 1])

        assert venue.sent_order_ids == [1, 1]
        assert store.persist_calls == [[(1, 9001)]]
        assert result.results[0].status == "SUCCESS"
        assert result.results[1].status == "FAILURE"
        assert result.results[1].message.startswith("Duplicate order id in batch")
        assert result.status == "PARTIAL"

    def test_malformed_venue_item_keeps_accepted_orders(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "status": "SUCCESS",
                    "results": [
                        _result(0, 9001),
                        _result(1, 9002),
                        {"status": "SUCCESS", "tradeOrder": {"id": 9003}},
                    ],
                },
            )

        venue = TradeServiceClient("http://trade.test", transport=httpx.MockTransport(handler))
        service, store, _ = _service([make_order(1), make_order(2), make_order(3)], venue)

        result = service.submit_batch([1, 2, 3])

        assert result.status == "PARTIAL"
        assert (result.successful, result.failed) == (2, 1)
        assert [r.trade_order_id for r in result.results[:2]] == [9001, 9002]
        assert result.results[2].message == NO_RESULT_MESSAGE
        assert store.orders[1].trade_order_id == 9001
        assert store.orders[2].trade_order_id == 9002
        assert store.orders[3].status == "NEW"

    def test_unexpected_http_error_still_returns_full_result(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.DecodingError("bad gzip stream", request=request)

        venue = TradeServiceClient("http://trade.test", transport=httpx.MockTransport(handler))
        service, store, _ = _service([make_order(1)], venue)

        result = service.submit_batch([1])

        assert result.status == "FAILURE"
        assert result.results[0].order_id == 1
        assert "DecodingError" in result.results[0].message
        assert store.persist_calls == []


class TestMonitorIntegration:
    def test_each_batch_is_recorded(self):
        monitor = MagicMock()
        store = InMemoryOrderStore([make_order(1)])
        service = BulkSubmissionService(store, RecordingVenue(), monitor=monitor)

        result = service.submit_batch([1, 2])

        recorded, elapsed = monitor.record.call_args[0]
        assert recorded is result
        assert elapsed >= 0
        assert monitor.record.call_args[1] == {"ineligible": 1}

"""
Pydantic schemas for the Order Service.

Three groups of models live here:
- the batch submission API (camelCase on the wire, snake_case in Python)
- the trade service bulk contract, which the venue owns
- the order row as loaded from PostgreSQL
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from libs.common.schemas import TimestampSerializerMixin

# ============================================================================
# Type Aliases
# ============================================================================

OrderResultStatus: TypeAlias = Literal["SUCCESS", "FAILURE"]
BatchStatus: TypeAlias = Literal["SUCCESS", "PARTIAL", "FAILURE"]

# Venue expects JSON numbers, pydantic renders Decimal as a string
JsonDecimal = Annotated[
    Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")
]

ORDER_STATUS_NEW = "NEW"
ORDER_STATUS_SUBMITTED = "SUBMITTED"


# ============================================================================
# Persistence Model
# ============================================================================


class Order(BaseModel):
    """Order row as read by the batch loader.

    Submission fields are optional here because incomplete rows exist in the
    table; eligibility is decided by the loader, not by parsing.
    """

    id: int
    status: str
    trade_order_id: int | None = None
    portfolio_id: str | None = None
    security_id: str | None = None
    order_type: str | None = None
    quantity: Decimal | None = None
    limit_price: Decimal | None = None
    order_timestamp: datetime | None = None
    blotter_id: int | None = None
    version: int = 1


# ============================================================================
# Batch Submission API
# ============================================================================


class BatchSubmitRequest(BaseModel):
    """POST /api/v1/orders/batch/submit body.

    orderIds is left loosely typed so shape problems (missing list, nulls,
    oversize) are reported with the service's own validation messages.
    """

    order_ids: list[int | None] | None = Field(None, alias="orderIds")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"examples": [{"orderIds": [101, 102, 103]}]},
    )


class OrderSubmitResult(BaseModel):
    """Outcome for one requested order id, at its position in the request."""

    order_id: int = Field(..., alias="orderId")
    status: OrderResultStatus
    message: str
    trade_order_id: int | None = Field(None, alias="tradeOrderId")
    request_index: int = Field(..., alias="requestIndex")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class BatchSubmitResponse(BaseModel):
    """Aggregate batch outcome. Always one result per requested id, in request order."""

    status: BatchStatus
    message: str
    total_requested: int = Field(..., alias="totalRequested")
    successful: int
    failed: int
    results: list[OrderSubmitResult] = Field(default_factory=list)

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "status": "PARTIAL",
                    "message": "2 of 3 orders submitted successfully, 1 failed",
                    "totalRequested": 3,
                    "successful": 2,
                    "failed": 1,
                    "results": [
                        {
                            "orderId": 101,
                            "status": "SUCCESS",
                            "message": "Order submitted successfully",
                            "tradeOrderId": 9001,
                            "requestIndex": 0,
                        },
                        {
                            "orderId": 102,
                            "status": "FAILURE",
                            "message": "Order is not in NEW status (current status: SUBMITTED)",
                            "requestIndex": 1,
                        },
                        {
                            "orderId": 103,
                            "status": "SUCCESS",
                            "message": "Order submitted successfully",
                            "tradeOrderId": 9002,
                            "requestIndex": 2,
                        },
                    ],
                }
            ]
        },
    )


class ErrorResponse(TimestampSerializerMixin, BaseModel):
    """Error body for 400, 503 and 500 responses."""

    code: str
    message: str
    retry_after: int | None = Field(None, alias="retryAfter")
    timestamp: datetime
    details: dict[str, Any] | None = None

    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Trade Service Bulk Contract
# ============================================================================


class TradeOrderPost(BaseModel):
    """One line item of the bulk trade order request."""

    order_id: int = Field(..., alias="orderId")
    portfolio_id: str = Field(..., alias="portfolioId")
    order_type: str = Field(..., alias="orderType")
    security_id: str = Field(..., alias="securityId")
    quantity: JsonDecimal
    limit_price: JsonDecimal = Field(..., alias="limitPrice")
    trade_timestamp: datetime = Field(..., alias="tradeTimestamp")
    blotter_id: int = Field(..., alias="blotterId")

    model_config = ConfigDict(populate_by_name=True)


class BulkTradeOrderRequest(BaseModel):
    trade_orders: list[TradeOrderPost] = Field(..., alias="tradeOrders", min_length=1, max_length=1000)

    model_config = ConfigDict(populate_by_name=True)


class TradeOrderResponse(BaseModel):
    """Trade order created by the venue. Only ``id`` matters to reconciliation."""

    id: int | None = None
    order_id: int | None = Field(None, alias="orderId")
    portfolio_id: str | None = Field(None, alias="portfolioId")
    order_type: str | None = Field(None, alias="orderType")
    security_id: str | None = Field(None, alias="securityId")
    quantity: Decimal | None = None
    limit_price: Decimal | None = Field(None, alias="limitPrice")
    version: int | None = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TradeOrderResult(BaseModel):
    """Venue outcome for the line item at ``request_index`` of the outgoing request."""

    request_index: int = Field(..., alias="requestIndex")
    status: str
    message: str | None = None
    trade_order: TradeOrderResponse | None = Field(None, alias="tradeOrder")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def succeeded(self) -> bool:
        return self.status.upper() == "SUCCESS"


class BulkTradeOrderResponse(BaseModel):
    status: str | None = None
    message: str | None = None
    total_requested: int | None = Field(None, alias="totalRequested")
    successful: int | None = None
    failed: int | None = None
    results: list[TradeOrderResult] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ============================================================================
# Health & Admission Status Schemas
# ============================================================================


class HealthResponse(TimestampSerializerMixin, BaseModel):
    """Health check response."""

    status: Literal["healthy", "degraded", "unhealthy"]
    service: str = "order_service"
    version: str
    database_connected: bool
    overloaded: bool
    timestamp: datetime
    details: dict[str, Any] | None = None


class OverloadStatusResponse(TimestampSerializerMixin, BaseModel):
    """Admission control diagnostics for GET /api/v1/system/overload."""

    overloaded: bool
    retry_after_seconds: int
    detection_enabled: bool
    utilization: dict[str, float]
    probe_errors: dict[str, str]
    thresholds: dict[str, float]
    detector: dict[str, Any]
    submissions: dict[str, Any]
    timestamp: datetime

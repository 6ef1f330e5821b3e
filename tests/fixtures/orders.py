"""Order row factories shared by order_service tests."""

from datetime import UTC, datetime
from decimal import Decimal

from apps.order_service.schemas import Order


def make_order(order_id: int, **overrides) -> Order:
    """Build a complete, submittable NEW order."""
    values = {
        "id": order_id,
        "status": "NEW",
        "trade_order_id": None,
        "portfolio_id": f"PORT{order_id:04d}",
        "security_id": f"SEC{order_id:04d}",
        "order_type": "BUY",
        "quantity": Decimal("100"),
        "limit_price": Decimal("25.50"),
        "order_timestamp": datetime(2026, 3, 2, 14, 30, tzinfo=UTC),
        "blotter_id": 7,
        "version": 1,
    }
    values.update(overrides)
    return Order(**values)

"""Create orders table read and updated by the bulk submission pipeline.

Revision ID: 7c3e91a4d2b8
Revises: None
Create Date: 2026-10-17 09:00:00 UTC

Migration naming convention:
- Filename: YYYYMMDD_HHMMSS_slug.py (chronological sorting)
- Revision ID: Random hash (collision-proof for parallel branches)
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "7c3e91a4d2b8"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "orders",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="NEW"),
        sa.Column("trade_order_id", sa.BigInteger, nullable=True),
        sa.Column("portfolio_id", sa.String(length=64), nullable=True),
        sa.Column("security_id", sa.String(length=64), nullable=True),
        sa.Column("order_type", sa.String(length=20), nullable=True),
        sa.Column("quantity", sa.Numeric(18, 8), nullable=True),
        sa.Column("limit_price", sa.Numeric(18, 8), nullable=True),
        sa.Column("order_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("blotter_id", sa.BigInteger, nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.CheckConstraint(
            "status IN ('NEW', 'SUBMITTED', 'FILLED', 'CANCELLED')",
            name="ck_orders_status",
        ),
    )
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ux_orders_trade_order_id", "orders", ["trade_order_id"], unique=True)


def downgrade() -> None:
    op.drop_index("ux_orders_trade_order_id", table_name="orders")
    op.drop_index("ix_orders_status", table_name="orders")
    op.drop_table("orders")

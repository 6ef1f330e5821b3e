"""
Database operations for the Order Service.

The batch pipeline touches the ``orders`` table exactly twice per batch:

- one read of every requested order (``WHERE id = ANY(...)``)
- one conditional multi-row update, inside one transaction, that moves the
  orders the trade service accepted from NEW to SUBMITTED

The update only matches rows still in NEW without a trade order id, so a row
claimed by a concurrent batch is left alone and reported back as not updated.

Connections come from a psycopg_pool.ConnectionPool whose statistics also feed
the database pool resource probe.
"""

from __future__ import annotations

import logging
from collections.abc import Generator, Sequence
from contextlib import contextmanager
from typing import Any

import psycopg
from psycopg import DatabaseError, OperationalError
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from apps.order_service import metrics
from apps.order_service.exceptions import PersistenceError
from apps.order_service.schemas import ORDER_STATUS_NEW, ORDER_STATUS_SUBMITTED, Order

logger = logging.getLogger(__name__)

_ORDER_COLUMNS = (
    "id, status, trade_order_id, portfolio_id, security_id, order_type, "
    "quantity, limit_price, order_timestamp, blotter_id, version"
)

_SELECT_ORDERS_SQL = f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = ANY(%s)"

_MARK_SUBMITTED_SQL = """
    UPDATE orders AS o
    SET status = %s,
        trade_order_id = v.trade_order_id,
        version = o.version + 1,
        updated_at = NOW()
    FROM unnest(%s::bigint[], %s::bigint[]) AS v(id, trade_order_id)
    WHERE o.id = v.id
      AND o.status = %s
      AND o.trade_order_id IS NULL
    RETURNING o.id
"""


class OrderDatabase:
    """
    PostgreSQL access for batch order submission.

    Args:
        db_conn_string: PostgreSQL connection string
        min_size: Minimum pooled connections
        max_size: Maximum pooled connections
        timeout: Seconds to wait for a free connection
        statement_timeout_ms: Statement timeout applied inside transaction()
        persist_max_attempts: Attempts for persist_submissions() on OperationalError
        pool: Pre-built pool (tests)

    Examples:
        >>> db = OrderDatabase("postgresql://localhost/orders")
        >>> orders = db.get_orders_by_ids([1, 2, 3])
        >>> updated = db.persist_submissions([(1, 9001), (3, 9002)])
    """

    def __init__(
        self,
        db_conn_string: str,
        *,
        min_size: int = 2,
        max_size: int = 10,
        timeout: float = 10.0,
        statement_timeout_ms: int = 5000,
        persist_max_attempts: int = 3,
        pool: ConnectionPool | None = None,
    ) -> None:
        if not db_conn_string:
            raise ValueError("db_conn_string cannot be empty")

        self.db_conn_string = db_conn_string
        self.statement_timeout_ms = statement_timeout_ms
        self.persist_max_attempts = persist_max_attempts

        # Pool opens lazily; connections are created on first use
        self._pool = pool or ConnectionPool(
            db_conn_string,
            min_size=min_size,
            max_size=max_size,
            timeout=timeout,
        )

        logger.info(
            "OrderDatabase initialized with connection pool",
            extra={
                "db": db_conn_string.split("@")[1] if "@" in db_conn_string else "local",
                "pool_min": min_size,
                "pool_max": max_size,
                "pool_timeout": timeout,
            },
        )

    def close(self) -> None:
        """Close connection pool. Safe to call multiple times."""
        self._pool.close()
        logger.info("OrderDatabase connection pool closed")

    def pool_stats(self) -> dict[str, int]:
        """Current pool counters (pool_size, pool_available, pool_max, ...)."""
        return dict(self._pool.get_stats())

    @contextmanager
    def transaction(self) -> Generator[psycopg.Connection, None, None]:
        """
        Run the enclosed statements in one transaction.

        Commits on normal exit. On any exception the transaction is rolled
        back, a warning is logged and the exception is re-raised. The
        configured statement timeout applies to every statement inside.

        Examples:
            >>> with db.transaction() as conn:
            ...     db.mark_orders_submitted([(1, 9001)], conn=conn)
        """
        with self._pool.connection() as conn:
            with conn.transaction():
                try:
                    with conn.cursor() as cur:
                        cur.execute(
                            "SELECT set_config('statement_timeout', %s, true)",
                            (str(self.statement_timeout_ms),),
                        )
                    yield conn
                    logger.debug("Transaction committed successfully")
                except Exception as e:
                    logger.warning(
                        "Transaction rolled back due to error",
                        extra={"error_type": type(e).__name__, "error_message": str(e)},
                    )
                    raise

    def get_orders_by_ids(self, order_ids: Sequence[int]) -> dict[int, Order]:
        """
        Load every requested order in one query.

        Args:
            order_ids: Requested ids; duplicates are fine

        Returns:
            Mapping of id to Order for the ids that exist

        Raises:
            DatabaseError: If the query fails
        """
        unique_ids = list(dict.fromkeys(order_ids))
        if not unique_ids:
            return {}

        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(_SELECT_ORDERS_SQL, (unique_ids,))
                    rows = cur.fetchall()
        except DatabaseError as e:
            logger.error(
                "Failed to load orders for batch submission",
                extra={"order_count": len(unique_ids), "error": str(e)},
            )
            raise

        return {row["id"]: Order(**row) for row in rows}

    def mark_orders_submitted(
        self,
        assignments: Sequence[tuple[int, int]],
        conn: psycopg.Connection,
    ) -> set[int]:
        """
        Move orders from NEW to SUBMITTED with their trade order ids.

        Must run inside transaction(). Rows that are no longer NEW, or that
        already carry a trade order id, are not touched.

        Args:
            assignments: (order_id, trade_order_id) pairs with unique order ids
            conn: Connection from transaction()

        Returns:
            Ids of the rows actually updated
        """
        if not assignments:
            return set()

        order_ids = [order_id for order_id, _ in assignments]
        trade_order_ids = [trade_order_id for _, trade_order_id in assignments]

        with conn.cursor() as cur:
            cur.execute(
                _MARK_SUBMITTED_SQL,
                (ORDER_STATUS_SUBMITTED, order_ids, trade_order_ids, ORDER_STATUS_NEW),
            )
            updated = {row[0] for row in cur.fetchall()}

        return updated

    def persist_submissions(self, assignments: Sequence[tuple[int, int]]) -> set[int]:
        """
        Record accepted trade orders in a single transaction, retrying transient errors.

        Only this database step is retried. The trade service call that
        produced ``assignments`` is never repeated.

        Args:
            assignments: (order_id, trade_order_id) pairs with unique order ids

        Returns:
            Ids of the rows actually updated

        Raises:
            PersistenceError: If the transaction cannot be committed
        """
        if not assignments:
            return set()

        retrying = Retrying(
            stop=stop_after_attempt(self.persist_max_attempts),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
            retry=retry_if_exception_type(OperationalError),
            before_sleep=self._log_persist_retry,
            reraise=True,
        )

        updated: set[int] = set()
        try:
            for attempt in retrying:
                with attempt:
                    with self.transaction() as conn:
                        updated = self.mark_orders_submitted(assignments, conn=conn)
        except DatabaseError as e:
            logger.error(
                "Failed to persist trade order assignments",
                extra={
                    "assignments": [list(pair) for pair in assignments],
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            raise PersistenceError(
                f"Failed to record submitted orders: {e}",
                {"tradeOrderIds": [trade_order_id for _, trade_order_id in assignments]},
            ) from e

        logger.info(
            "Persisted submitted orders",
            extra={"requested": len(assignments), "updated": len(updated)},
        )
        return updated

    @staticmethod
    def _log_persist_retry(retry_state: RetryCallState) -> None:
        metrics.persist_retries_total.inc()
        exc: Any = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retrying persist transaction",
            extra={"attempt": retry_state.attempt_number, "error": str(exc)},
        )

    def check_connection(self) -> bool:
        """
        Check if database connection is healthy.

        Returns:
            True if connected, False otherwise
        """
        try:
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                    return True

        except Exception as e:
            logger.error(f"Database connection check failed: {e}")
            return False

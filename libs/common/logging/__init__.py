"""JSON logging with request trace IDs, shared by platform services.

Usage:
    from libs.common.logging import configure_logging, log_with_context

    configure_logging(service_name="order_service", log_level="INFO")
    log_with_context(logger, "INFO", "Batch admitted", batch_size=25)
"""

from libs.common.logging.config import TraceIDFilter, configure_logging, log_with_context
from libs.common.logging.context import (
    TRACE_ID_HEADER,
    LogContext,
    clear_trace_id,
    generate_trace_id,
    get_trace_id,
    reset_trace_id,
    set_trace_id,
)
from libs.common.logging.formatter import JSONFormatter

__all__ = [
    "configure_logging",
    "log_with_context",
    "JSONFormatter",
    "TraceIDFilter",
    "TRACE_ID_HEADER",
    "LogContext",
    "generate_trace_id",
    "get_trace_id",
    "set_trace_id",
    "reset_trace_id",
    "clear_trace_id",
]

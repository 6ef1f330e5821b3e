"""Root logger setup for platform services.

configure_logging() is called once at startup. It replaces whatever handlers
the root logger had with a single stdout handler writing JSON lines stamped
with the current trace ID.

Example:
    >>> configure_logging(service_name="order_service", log_level="DEBUG")
    >>> logging.getLogger(__name__).info("ready", extra={"port": 8010})
"""

import logging
import sys

from libs.common.logging.context import get_trace_id
from libs.common.logging.formatter import JSONFormatter


class TraceIDFilter(logging.Filter):
    """Copies the context's trace ID onto each record (None outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = get_trace_id()
        return True


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    include_context: bool = True,
) -> logging.Logger:
    """Install JSON logging on the root logger and return it.

    Raises:
        ValueError: If log_level is not a standard level name
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(service_name=service_name, include_context=include_context))
    handler.addFilter(TraceIDFilter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    return root


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **fields: object,
) -> None:
    """Log ``message`` with ``fields`` as the JSON "context" object.

    Example:
        >>> log_with_context(logger, "WARNING", "Batch rejected", retry_after=120)
    """
    logger.log(logging.getLevelName(level.upper()), message, extra={"context": fields})

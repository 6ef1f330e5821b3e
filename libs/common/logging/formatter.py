"""One-JSON-object-per-line log formatter.

Example line:
    {
        "timestamp": "2026-03-02T14:05:09.120Z",
        "level": "WARNING",
        "service": "order_service",
        "trace_id": "1f0c...",
        "message": "Batch rejected: system overloaded",
        "context": {"retry_after": 180, "exceededLimits": ["thread_pool"]},
        "source": {"file": ".../admission.py", "line": 48, "function": "admit"}
    }
"""

import json
import logging
import traceback
from datetime import UTC, datetime
from typing import Any

# Attributes present on every LogRecord; anything else arrived through extra=
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "trace_id", "context", "taskName"}


def _utc_millis(created: float) -> str:
    return datetime.fromtimestamp(created, tz=UTC).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


class JSONFormatter(logging.Formatter):
    """Render records as JSON lines.

    ``extra={"context": {...}}`` is emitted as-is under "context". Without it,
    every non-standard attribute passed through ``extra`` is gathered instead,
    so plain ``logger.info(msg, extra={"order_count": 3})`` calls still carry
    their fields.
    """

    def __init__(self, service_name: str, include_context: bool = True, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.service_name = service_name
        self.include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _utc_millis(record.created),
            "level": record.levelname,
            "service": self.service_name,
            "trace_id": getattr(record, "trace_id", None),
            "message": record.getMessage(),
        }

        context = self._context(record) if self.include_context else None
        if context:
            entry["context"] = context

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
            }

        entry["source"] = {"file": record.pathname, "line": record.lineno, "function": record.funcName}
        return json.dumps(entry, default=str)

    @staticmethod
    def _context(record: logging.LogRecord) -> dict[str, Any]:
        explicit = getattr(record, "context", None)
        if isinstance(explicit, dict):
            return dict(explicit)
        return {k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS}

"""Per-request trace ID.

Held in a ContextVar. Starlette copies the context into the worker thread
running a synchronous handler, so log lines written from the batch pipeline
carry the ID bound by the middleware for that request.
"""

import contextvars
import uuid
from types import TracebackType

TRACE_ID_HEADER = "X-Trace-ID"

_current_trace_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "trace_id", default=None
)


def generate_trace_id() -> str:
    return str(uuid.uuid4())


def get_trace_id() -> str | None:
    return _current_trace_id.get()


def set_trace_id(trace_id: str) -> contextvars.Token[str | None]:
    """Bind ``trace_id`` to the current context.

    Returns:
        Token accepted by reset_trace_id()

    Raises:
        ValueError: If trace_id is empty
    """
    if not trace_id:
        raise ValueError("Trace ID cannot be empty")
    return _current_trace_id.set(trace_id)


def reset_trace_id(token: contextvars.Token[str | None]) -> None:
    """Restore whatever trace ID was bound before the matching set_trace_id()."""
    _current_trace_id.reset(token)


def clear_trace_id() -> None:
    _current_trace_id.set(None)


class LogContext:
    """Bind a trace ID for the duration of a ``with`` block.

    For work that does not arrive over HTTP (scripts, tests). The previous ID,
    if any, is restored on exit.

    Example:
        >>> with LogContext("batch-42") as trace_id:
        ...     logger.info("inside")  # trace_id == "batch-42"
    """

    def __init__(self, trace_id: str | None = None) -> None:
        self.trace_id = trace_id or generate_trace_id()
        self._token: contextvars.Token[str | None] | None = None

    def __enter__(self) -> str:
        self._token = set_trace_id(self.trace_id)
        return self.trace_id

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            reset_trace_id(self._token)
            self._token = None

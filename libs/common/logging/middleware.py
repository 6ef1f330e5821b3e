"""ASGI middleware binding a trace ID to each HTTP request.

The ID comes from the X-Trace-ID request header, or is generated. It is bound
for the lifetime of the request and echoed on the response, including error
responses written by exception handlers.

Example:
    >>> app = FastAPI()
    >>> add_trace_id_middleware(app)
"""

from collections.abc import Awaitable, Callable, MutableMapping
from typing import Any

from fastapi import FastAPI
from starlette.types import ASGIApp

from libs.common.logging.context import (
    TRACE_ID_HEADER,
    generate_trace_id,
    reset_trace_id,
    set_trace_id,
)

Message = MutableMapping[str, Any]

_HEADER_KEY = TRACE_ID_HEADER.lower().encode()


class ASGITraceIDMiddleware:
    """Plain ASGI rather than BaseHTTPMiddleware, so it wraps exception handler responses too."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(
        self,
        scope: MutableMapping[str, Any],
        receive: Callable[[], Awaitable[Message]],
        send: Callable[[Message], Awaitable[None]],
    ) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        inbound = dict(scope.get("headers", [])).get(_HEADER_KEY)
        trace_id = inbound.decode() if inbound else generate_trace_id()

        async def send_with_trace_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                message["headers"] = [*message.get("headers", []), (_HEADER_KEY, trace_id.encode())]
            await send(message)

        token = set_trace_id(trace_id)
        try:
            await self.app(scope, receive, send_with_trace_id)
        finally:
            reset_trace_id(token)


def add_trace_id_middleware(app: FastAPI) -> None:
    app.add_middleware(ASGITraceIDMiddleware)

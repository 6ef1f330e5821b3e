"""httpx client for outbound calls that carries the current trace ID.

Example:
    >>> client = get_traced_sync_client("http://trade-service:8082", timeout=30.0)
    >>> client.post("/api/v1/tradeOrders/bulk", json=payload)  # sends X-Trace-ID when bound
"""

from typing import Any

import httpx

from libs.common.logging.context import TRACE_ID_HEADER, get_trace_id


class TracedHTTPXSyncClient(httpx.Client):
    def request(self, method: str, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        trace_id = get_trace_id()
        if trace_id:
            kwargs["headers"] = {**dict(kwargs.get("headers") or {}), TRACE_ID_HEADER: trace_id}
        return super().request(method, url, **kwargs)


def get_traced_sync_client(
    base_url: str = "",
    timeout: float | httpx.Timeout = 10.0,
    **kwargs: Any,
) -> TracedHTTPXSyncClient:
    """Build a TracedHTTPXSyncClient; extra kwargs (e.g. ``transport``) go to httpx.Client."""
    return TracedHTTPXSyncClient(base_url=base_url, timeout=timeout, **kwargs)

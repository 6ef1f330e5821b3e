"""
Read-only utilization probes for admission control.

Each probe reports one resource as a ratio in [0, 1]:

- worker threads: anyio's default CapacityLimiter, which runs every
  synchronous FastAPI handler
- database connections: psycopg_pool.ConnectionPool statistics
- memory: process RSS (psutil) against a configured budget, or host RAM

A probe never raises. Failures and missing instrumentation come back as a
ProbeReading with ``error`` set and no utilization, and the overload detector
treats such readings as zero utilization. Probes take no locks; a reading is a
best-effort snapshot.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Protocol

import psutil  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

THREAD_POOL = "thread_pool"
DATABASE_POOL = "database_pool"
MEMORY = "memory"


@dataclass(frozen=True)
class ProbeReading:
    """Result of one probe read: a utilization or an error, never both."""

    resource: str
    utilization: float | None = None
    error: str | None = None
    active: int | None = None
    capacity: int | None = None

    @classmethod
    def measured(
        cls,
        resource: str,
        active: int,
        capacity: int,
    ) -> ProbeReading:
        if capacity <= 0:
            return cls.unavailable(resource, f"capacity is {capacity}")
        ratio = min(max(active / capacity, 0.0), 1.0)
        return cls(resource=resource, utilization=ratio, active=active, capacity=capacity)

    @classmethod
    def unavailable(cls, resource: str, error: str) -> ProbeReading:
        return cls(resource=resource, error=error)

    @property
    def ok(self) -> bool:
        return self.utilization is not None

    def utilization_or_zero(self) -> float:
        return self.utilization if self.utilization is not None else 0.0


class ResourceProbe(Protocol):
    resource: str

    def read(self) -> ProbeReading: ...


class _BaseProbe:
    """Turns any exception raised while measuring into an unavailable reading."""

    resource = ""

    def read(self) -> ProbeReading:
        try:
            return self._measure()
        except Exception as exc:
            logger.debug(
                "Resource probe failed",
                extra={"resource": self.resource, "error": str(exc)},
            )
            return ProbeReading.unavailable(self.resource, f"{type(exc).__name__}: {exc}")

    def _measure(self) -> ProbeReading:
        raise NotImplementedError


class ThreadPoolProbe(_BaseProbe):
    """Busy worker threads over the worker thread limit.

    ``limiter`` is anyio's default thread CapacityLimiter, captured inside the
    event loop at startup (it cannot be looked up from a worker thread).
    ``core_threads`` of 0 means core equals the limit.
    """

    resource = THREAD_POOL

    def __init__(self, limiter: object | None, core_threads: int = 0) -> None:
        self._limiter = limiter
        self._core_threads = core_threads

    @property
    def core_threads(self) -> int:
        if self._core_threads > 0:
            return self._core_threads
        if self._limiter is None:
            return 0
        return int(self._limiter.total_tokens)  # type: ignore[attr-defined]

    def _measure(self) -> ProbeReading:
        if self._limiter is None:
            return ProbeReading.unavailable(self.resource, "no thread limiter registered")
        active = int(self._limiter.borrowed_tokens)  # type: ignore[attr-defined]
        total = int(self._limiter.total_tokens)  # type: ignore[attr-defined]
        return ProbeReading.measured(self.resource, active, total)


class DatabasePoolProbe(_BaseProbe):
    """Checked-out connections over the pool maximum.

    ``stats_source`` returns psycopg_pool statistics (``pool_size``,
    ``pool_available``, ``pool_max``). When ``pool_max`` is missing the
    currently opened connections are used as the denominator.
    """

    resource = DATABASE_POOL

    def __init__(self, stats_source: Callable[[], Mapping[str, int]] | None) -> None:
        self._stats_source = stats_source

    def _measure(self) -> ProbeReading:
        if self._stats_source is None:
            return ProbeReading.unavailable(self.resource, "no database pool registered")
        stats = self._stats_source()
        size = int(stats.get("pool_size", 0))
        available = int(stats.get("pool_available", 0))
        active = max(size - available, 0)
        capacity = int(stats.get("pool_max") or size)
        return ProbeReading.measured(self.resource, active, capacity)


class MemoryProbe(_BaseProbe):
    """Process resident memory over ``limit_bytes`` (host total RAM when 0)."""

    resource = MEMORY

    def __init__(self, limit_bytes: int = 0, process: psutil.Process | None = None) -> None:
        self._limit_bytes = limit_bytes
        self._process = process or psutil.Process()

    def _measure(self) -> ProbeReading:
        rss = int(self._process.memory_info().rss)
        limit = self._limit_bytes or int(psutil.virtual_memory().total)
        return ProbeReading.measured(self.resource, rss, limit)

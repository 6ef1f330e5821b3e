"""
Overload detection for batch admission control.

The detector samples the three resource probes and answers two questions:

    is_overloaded()         any utilization at or above its threshold, or the
                            busy worker count at or above the core-pool margin
    retry_after_seconds()   how long a rejected client should wait, in
                            [base, max] seconds, nondecreasing in every
                            utilization

Failure semantics are fail-open. A probe that cannot be read contributes zero
utilization, and an unexpected error inside the detector yields "not
overloaded" and the base delay.

The detector is an ordinary object owned by the application context, so each
app instance (and each test) gets its own statistics.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from apps.order_service import metrics
from apps.order_service.config import OrderServiceConfig
from apps.order_service.resource_probes import (
    DATABASE_POOL,
    MEMORY,
    THREAD_POOL,
    ProbeReading,
    ResourceProbe,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverloadThresholds:
    thread_pool: float = 0.90
    database_pool: float = 0.95
    memory: float = 0.85
    request_ratio: float = 0.90

    @classmethod
    def from_config(cls, config: OrderServiceConfig) -> OverloadThresholds:
        return cls(
            thread_pool=config.thread_pool_threshold,
            database_pool=config.database_pool_threshold,
            memory=config.memory_threshold,
            request_ratio=config.request_ratio_threshold,
        )

    def as_dict(self) -> dict[str, float]:
        return {
            THREAD_POOL: self.thread_pool,
            DATABASE_POOL: self.database_pool,
            MEMORY: self.memory,
            "request_ratio": self.request_ratio,
        }


@dataclass(frozen=True)
class RetryAfterPolicy:
    """Maps utilization onto a Retry-After delay.

    delay = base + (max - base) * clamp(max(w_t * t, w_d * d, w_m * m), 0, 1)
    """

    base_seconds: int = 60
    max_seconds: int = 300
    thread_pool_weight: float = 1.0
    database_pool_weight: float = 1.0
    memory_weight: float = 1.0

    @classmethod
    def from_config(cls, config: OrderServiceConfig) -> RetryAfterPolicy:
        return cls(
            base_seconds=config.retry_after_base_seconds,
            max_seconds=config.retry_after_max_seconds,
        )


@dataclass(frozen=True)
class ResourceSample:
    """Utilization snapshot; unreadable resources are recorded as 0.0."""

    thread_pool: float
    database_pool: float
    memory: float
    active_threads: int | None = None
    core_threads: int = 0
    probe_errors: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_readings(
        cls,
        thread_reading: ProbeReading,
        database_reading: ProbeReading,
        memory_reading: ProbeReading,
        core_threads: int = 0,
    ) -> ResourceSample:
        readings = (thread_reading, database_reading, memory_reading)
        return cls(
            thread_pool=thread_reading.utilization_or_zero(),
            database_pool=database_reading.utilization_or_zero(),
            memory=memory_reading.utilization_or_zero(),
            active_threads=thread_reading.active,
            core_threads=core_threads,
            probe_errors={r.resource: r.error for r in readings if r.error is not None},
        )

    def as_dict(self) -> dict[str, float]:
        return {
            THREAD_POOL: self.thread_pool,
            DATABASE_POOL: self.database_pool,
            MEMORY: self.memory,
        }


@dataclass(frozen=True)
class OverloadDecision:
    overloaded: bool
    retry_after_seconds: int
    reasons: tuple[str, ...] = ()
    sample: ResourceSample | None = None


def overload_reasons(sample: ResourceSample, thresholds: OverloadThresholds) -> tuple[str, ...]:
    """Return the names of every limit the sample meets or exceeds (empty when healthy)."""
    reasons: list[str] = []
    if sample.thread_pool >= thresholds.thread_pool:
        reasons.append(THREAD_POOL)
    if sample.database_pool >= thresholds.database_pool:
        reasons.append(DATABASE_POOL)
    if sample.memory >= thresholds.memory:
        reasons.append(MEMORY)
    if (
        sample.active_threads is not None
        and sample.core_threads > 0
        and sample.active_threads / sample.core_threads >= thresholds.request_ratio
    ):
        reasons.append("request_ratio")
    return tuple(reasons)


def compute_retry_after(sample: ResourceSample, policy: RetryAfterPolicy) -> int:
    severity = max(
        policy.thread_pool_weight * sample.thread_pool,
        policy.database_pool_weight * sample.database_pool,
        policy.memory_weight * sample.memory,
    )
    severity = min(max(severity, 0.0), 1.0)
    delay = policy.base_seconds + round((policy.max_seconds - policy.base_seconds) * severity)
    return min(max(delay, policy.base_seconds), policy.max_seconds)


class OverloadDetector:
    """Per-process overload detector with self-timing statistics.

    Example:
        >>> detector = OverloadDetector(thread_probe, db_probe, memory_probe)
        >>> decision = detector.evaluate()
        >>> if decision.overloaded:
        ...     raise SystemOverloadedError(decision.retry_after_seconds)
    """

    def __init__(
        self,
        thread_probe: ResourceProbe,
        database_probe: ResourceProbe,
        memory_probe: ResourceProbe,
        thresholds: OverloadThresholds | None = None,
        retry_policy: RetryAfterPolicy | None = None,
        *,
        enabled: bool = True,
        clock: Callable[[], int] = time.perf_counter_ns,
    ) -> None:
        self._thread_probe = thread_probe
        self._database_probe = database_probe
        self._memory_probe = memory_probe
        self.thresholds = thresholds or OverloadThresholds()
        self.retry_policy = retry_policy or RetryAfterPolicy()
        self.enabled = enabled
        self._clock = clock

        # Guards only the two counters below
        self._stats_lock = threading.Lock()
        self._total_checks = 0
        self._total_check_ns = 0

    @classmethod
    def from_config(
        cls,
        config: OrderServiceConfig,
        thread_probe: ResourceProbe,
        database_probe: ResourceProbe,
        memory_probe: ResourceProbe,
    ) -> OverloadDetector:
        return cls(
            thread_probe,
            database_probe,
            memory_probe,
            thresholds=OverloadThresholds.from_config(config),
            retry_policy=RetryAfterPolicy.from_config(config),
            enabled=config.overload_detection_enabled,
        )

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def sample(self) -> ResourceSample:
        sample = ResourceSample.from_readings(
            self._thread_probe.read(),
            self._database_probe.read(),
            self._memory_probe.read(),
            core_threads=getattr(self._thread_probe, "core_threads", 0),
        )
        for resource, value in sample.as_dict().items():
            metrics.resource_utilization.labels(resource=resource).set(value)
        return sample

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def is_overloaded(self) -> bool:
        return self.evaluate().overloaded

    def retry_after_seconds(self) -> int:
        try:
            return compute_retry_after(self.sample(), self.retry_policy)
        except Exception:
            logger.warning("Retry-After estimation failed; using base delay", exc_info=True)
            return self.retry_policy.base_seconds

    def evaluate(self) -> OverloadDecision:
        """Take one sample and derive both the overload flag and the retry delay."""
        base = self.retry_policy.base_seconds
        if not self.enabled:
            return OverloadDecision(overloaded=False, retry_after_seconds=base)

        started = self._clock()
        try:
            sample = self.sample()
            reasons = overload_reasons(sample, self.thresholds)
            try:
                retry_after = compute_retry_after(sample, self.retry_policy)
            except Exception:
                logger.warning("Retry-After estimation failed; using base delay", exc_info=True)
                retry_after = base
            return OverloadDecision(
                overloaded=bool(reasons),
                retry_after_seconds=retry_after,
                reasons=reasons,
                sample=sample,
            )
        except Exception:
            logger.warning("Overload check failed; admitting request", exc_info=True)
            return OverloadDecision(overloaded=False, retry_after_seconds=base)
        finally:
            self._record_check(self._clock() - started)

    # ------------------------------------------------------------------
    # Self statistics
    # ------------------------------------------------------------------

    def _record_check(self, elapsed_ns: int) -> None:
        with self._stats_lock:
            self._total_checks += 1
            self._total_check_ns += elapsed_ns
        metrics.overload_check_duration.observe(elapsed_ns / 1e9)

    @property
    def total_checks(self) -> int:
        return self._total_checks

    @property
    def average_check_ms(self) -> float:
        with self._stats_lock:
            if self._total_checks == 0:
                return 0.0
            return self._total_check_ns / self._total_checks / 1e6

    def statistics(self) -> dict[str, Any]:
        return {
            "total_checks": self.total_checks,
            "average_check_ms": round(self.average_check_ms, 4),
        }

    def reset_statistics(self) -> None:
        with self._stats_lock:
            self._total_checks = 0
            self._total_check_ns = 0
        logger.info("Overload detector statistics reset")

    def status(self) -> dict[str, Any]:
        """Full diagnostic view used by the system status endpoint."""
        sample = self.sample()
        reasons = overload_reasons(sample, self.thresholds) if self.enabled else ()
        return {
            "overloaded": bool(reasons),
            "reasons": list(reasons),
            "retry_after_seconds": compute_retry_after(sample, self.retry_policy),
            "detection_enabled": self.enabled,
            "utilization": sample.as_dict(),
            "probe_errors": dict(sample.probe_errors),
            "thresholds": self.thresholds.as_dict(),
            "detector": self.statistics(),
        }

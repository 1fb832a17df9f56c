"""
Metrics for convergence polls.

This module tracks how long polled conditions take to settle:
- Attempts and wall-clock time per poll
- Converged / timed out / failed counts
- Which call sites are the slowest to converge
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import Counter as TallyCounter
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Deque, Dict, List, Optional

if TYPE_CHECKING:
    from prometheus_client import CollectorRegistry, Counter, Histogram

logger = logging.getLogger(__name__)

OUTCOME_CONVERGED = "converged"
OUTCOME_TIMED_OUT = "timed_out"
OUTCOME_FAILED = "failed"


@dataclass
class PollMetrics:
    """Metrics for a single finished poll."""

    location: str
    attempts: int
    duration: float
    outcome: str
    error_type: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def converged(self) -> bool:
        return self.outcome == OUTCOME_CONVERGED


class MetricsCollector(ABC):
    """Abstract base class for metrics collection backends."""

    @abstractmethod
    async def record_poll(self, metrics: PollMetrics) -> None:
        """Record metrics for a finished poll."""
        pass

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        """Get aggregated statistics."""
        pass


class InMemoryMetricsCollector(MetricsCollector):
    """In-memory metrics collector for test sessions."""

    def __init__(self, max_entries: int = 10000):
        self.max_entries = max_entries
        self.poll_metrics: Deque[PollMetrics] = deque(maxlen=max_entries)
        self.outcome_counts: TallyCounter = TallyCounter()
        self.error_counts: TallyCounter = TallyCounter()
        self._lock = asyncio.Lock()

    async def record_poll(self, metrics: PollMetrics) -> None:
        """Record metrics for a finished poll."""
        async with self._lock:
            self.poll_metrics.append(metrics)
            self.outcome_counts[metrics.outcome] += 1

            if metrics.error_type:
                self.error_counts[metrics.error_type] += 1

    async def get_stats(self) -> Dict[str, Any]:
        """Get aggregated statistics."""
        async with self._lock:
            if not self.poll_metrics:
                return {"message": "No metrics available"}

            attempts = [m.attempts for m in self.poll_metrics]
            durations = [m.duration for m in self.poll_metrics]
            total = sum(self.outcome_counts.values())

            # Slowest call sites by mean attempts to converge
            per_location: Dict[str, List[int]] = {}
            for m in self.poll_metrics:
                if m.converged:
                    per_location.setdefault(m.location, []).append(m.attempts)
            slowest = sorted(
                ((loc, sum(a) / len(a)) for loc, a in per_location.items()),
                key=lambda x: x[1],
                reverse=True,
            )[:10]

            return {
                "poll_performance": {
                    "total_polls": total,
                    "avg_attempts": sum(attempts) / len(attempts),
                    "max_attempts": max(attempts),
                    "avg_duration_ms": sum(durations) / len(durations) * 1000,
                    "max_duration_ms": max(durations) * 1000,
                    "timeout_rate": self.outcome_counts[OUTCOME_TIMED_OUT] / total,
                },
                "outcomes": dict(self.outcome_counts),
                "error_summary": dict(self.error_counts),
                "slowest_locations": dict(slowest),
            }


class PrometheusMetricsCollector(MetricsCollector):
    """Prometheus metrics collector for long-running test infrastructure."""

    poll_total: Optional["Counter"]
    poll_attempts: Optional["Histogram"]
    poll_duration: Optional["Histogram"]
    _available: bool

    def __init__(self, registry: Optional["CollectorRegistry"] = None) -> None:
        try:
            from prometheus_client import REGISTRY, Counter, Histogram

            registry = registry if registry is not None else REGISTRY

            self.poll_total = Counter(
                "convergence_polls_total",
                "Total number of convergence polls",
                ["outcome"],
                registry=registry,
            )
            self.poll_attempts = Histogram(
                "convergence_poll_attempts",
                "Predicate evaluations per convergence poll",
                ["outcome"],
                buckets=(1, 3, 5, 10, 25, 50, 100, 250, 500, 1000),
                registry=registry,
            )
            self.poll_duration = Histogram(
                "convergence_poll_duration_seconds",
                "Wall-clock time spent in convergence polls",
                ["outcome"],
                registry=registry,
            )
            self._available = True
        except ImportError:
            logger.warning("prometheus_client not available, metrics disabled")
            self._available = False

    async def record_poll(self, metrics: PollMetrics) -> None:
        """Record poll metrics to Prometheus."""
        if not self._available:
            return

        if self.poll_total is not None:
            self.poll_total.labels(outcome=metrics.outcome).inc()

        if self.poll_attempts is not None:
            self.poll_attempts.labels(outcome=metrics.outcome).observe(metrics.attempts)

        if self.poll_duration is not None:
            self.poll_duration.labels(outcome=metrics.outcome).observe(metrics.duration)

    async def get_stats(self) -> Dict[str, Any]:
        """Get current Prometheus metrics."""
        if not self._available:
            return {"error": "Prometheus client not available"}

        return {"message": "Metrics available via Prometheus endpoint"}


class MetricsMiddleware:
    """Fans poll metrics out to every configured collector."""

    def __init__(self, collectors: List[MetricsCollector]):
        self.collectors = collectors
        self._enabled = True

    def enable(self) -> None:
        """Enable metrics collection."""
        self._enabled = True

    def disable(self) -> None:
        """Disable metrics collection."""
        self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def record_poll_metrics(
        self,
        location: str,
        attempts: int,
        duration: float,
        outcome: str,
        error_type: Optional[str] = None,
    ) -> None:
        """Record metrics for a finished poll."""
        if not self._enabled:
            return

        metrics = PollMetrics(
            location=location,
            attempts=attempts,
            duration=duration,
            outcome=outcome,
            error_type=error_type,
        )

        for collector in self.collectors:
            try:
                await collector.record_poll(metrics)
            except Exception as e:
                logger.warning(f"Failed to record metrics: {e}")


def create_metrics_system(
    backend: str = "memory", prometheus_enabled: bool = False
) -> MetricsMiddleware:
    """Create a metrics system with specified backend."""
    collectors: List[MetricsCollector] = []

    if backend == "memory":
        collectors.append(InMemoryMetricsCollector())

    if prometheus_enabled:
        collectors.append(PrometheusMetricsCollector())

    return MetricsMiddleware(collectors)

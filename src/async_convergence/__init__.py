"""
async-convergence: wait out eventually-consistent state in async tests.

This package polls an async predicate until it has held for several
consecutive attempts, so tests backed by slow or oscillating external
state neither fail spuriously nor pass on a lucky stale read.
"""

__version__ = "0.1.0"

from .disposition import TimeoutDisposition, apply_disposition, is_inconclusive
from .entitlements import (
    EntitlementWaiter,
    ProductType,
    SessionTransaction,
    StoreTestSession,
    Transaction,
    TransactionState,
    VerificationResult,
)
from .exceptions import (
    AsyncConvergenceError,
    ConfigurationError,
    ConvergenceTimeoutError,
    VerificationError,
)
from .location import LocationLoggerAdapter, SourceLocation
from .metrics import (
    InMemoryMetricsCollector,
    MetricsCollector,
    MetricsMiddleware,
    PollMetrics,
    PrometheusMetricsCollector,
    create_metrics_system,
)
from .outcome import Converged, PollOutcome, TimedOut
from .poller import ConvergencePoller, PollConfig, poll_until_consistent, spin_until_condition
from .window import ConsistencyWindow

__all__ = [
    "ConvergencePoller",
    "PollConfig",
    "poll_until_consistent",
    "spin_until_condition",
    "ConsistencyWindow",
    "Converged",
    "TimedOut",
    "PollOutcome",
    "TimeoutDisposition",
    "apply_disposition",
    "is_inconclusive",
    "SourceLocation",
    "LocationLoggerAdapter",
    "AsyncConvergenceError",
    "ConfigurationError",
    "ConvergenceTimeoutError",
    "VerificationError",
    "EntitlementWaiter",
    "StoreTestSession",
    "Transaction",
    "SessionTransaction",
    "VerificationResult",
    "ProductType",
    "TransactionState",
    "MetricsMiddleware",
    "MetricsCollector",
    "InMemoryMetricsCollector",
    "PrometheusMetricsCollector",
    "PollMetrics",
    "create_metrics_system",
]

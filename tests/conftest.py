"""
Pytest configuration and shared fixtures.
"""

import pytest

from async_convergence.metrics import InMemoryMetricsCollector, MetricsMiddleware


@pytest.fixture
def metrics_collector():
    """In-memory collector for inspecting recorded polls."""
    return InMemoryMetricsCollector()


@pytest.fixture
def metrics(metrics_collector):
    """Metrics middleware wired to ``metrics_collector``."""
    return MetricsMiddleware([metrics_collector])

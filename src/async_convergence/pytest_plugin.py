"""
pytest integration for async-convergence.

Turns inconclusive polls into skipped tests, and lets a suite opt into
strict mode with a marker, a command-line flag or an ini option.
"""

from typing import Any, Awaitable, Callable, Optional

import pytest

from .constants import (
    DEFAULT_MAX_TRIES,
    DEFAULT_MINIMUM_CONSECUTIVE_CONSISTENCY,
    DEFAULT_SLEEP_DURATION,
)
from .disposition import TimeoutDisposition
from .location import SourceLocation
from .metrics import MetricsMiddleware
from .outcome import Converged, PollOutcome, TimedOut
from .poller import Predicate, spin_until_condition

STRICT_MARKER = "convergence_strict"


def pytest_addoption(parser: Any) -> None:
    group = parser.getgroup("convergence")
    group.addoption(
        "--convergence-strict",
        action="store_true",
        default=None,
        help="Fail tests whose polled conditions never converge instead of skipping them.",
    )
    parser.addini(
        "convergence_strict",
        type="bool",
        default=False,
        help="Fail instead of skip when a polled condition never converges.",
    )


def pytest_configure(config: Any) -> None:
    config.addinivalue_line(
        "markers", f"{STRICT_MARKER}: fail this test if a polled condition never converges"
    )


def skip_if_inconclusive(outcome: PollOutcome) -> Converged:
    """Skip the running test if the poll timed out, else return the outcome."""
    if isinstance(outcome, TimedOut):
        pytest.skip(outcome.message)
    return outcome  # type: ignore[return-value]


def resolve_disposition(request: Any) -> TimeoutDisposition:
    """Work out the disposition from marker, command line and ini, in that order."""
    if request.node.get_closest_marker(STRICT_MARKER) is not None:
        return TimeoutDisposition.STRICT

    option = request.config.getoption("convergence_strict")
    if option is not None:
        return TimeoutDisposition.from_flag(not option)

    return TimeoutDisposition.from_flag(not request.config.getini("convergence_strict"))


@pytest.fixture
def convergence_disposition(request: Any) -> TimeoutDisposition:
    """The timeout disposition in effect for the current test."""
    return resolve_disposition(request)


@pytest.fixture
def spin_until(
    convergence_disposition: TimeoutDisposition,
) -> Callable[..., Awaitable[Converged]]:
    """
    Async helper that waits for a condition within a test.

    Timeouts skip the test, or fail it in strict mode.
    """

    def _spin_until(
        predicate: Predicate,
        max_tries: int = DEFAULT_MAX_TRIES,
        minimum_consecutive_consistency: int = DEFAULT_MINIMUM_CONSECUTIVE_CONSISTENCY,
        sleep_duration: float = DEFAULT_SLEEP_DURATION,
        location: Optional[SourceLocation] = None,
        metrics: Optional[MetricsMiddleware] = None,
    ) -> Awaitable[Converged]:
        if location is None:
            location = SourceLocation.from_caller()
        return _skip_if_inconclusive(
            spin_until_condition(
                predicate,
                max_tries=max_tries,
                minimum_consecutive_consistency=minimum_consecutive_consistency,
                skip_on_timeout=convergence_disposition is TimeoutDisposition.SKIP,
                sleep_duration=sleep_duration,
                location=location,
                metrics=metrics,
            )
        )

    return _spin_until


async def _skip_if_inconclusive(poll: Awaitable[PollOutcome]) -> Converged:
    return skip_if_inconclusive(await poll)

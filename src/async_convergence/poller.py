"""
Convergence polling for eventually-consistent test assertions.

Some state only settles after it has propagated through a subsystem the
test does not control, and may flip between stale and fresh values before
it does. The poller evaluates an async predicate until it has held for
several consecutive attempts, pacing itself cheaply at first and more
slowly once convergence is taking longer than usual.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Coroutine, Optional

from .constants import (
    DEFAULT_MAX_TRIES,
    DEFAULT_MINIMUM_CONSECUTIVE_CONSISTENCY,
    DEFAULT_SKIP_ON_TIMEOUT,
    DEFAULT_SLEEP_DURATION,
)
from .disposition import TimeoutDisposition, apply_disposition
from .exceptions import ConfigurationError
from .location import LocationLoggerAdapter, SourceLocation
from .metrics import OUTCOME_CONVERGED, OUTCOME_FAILED, OUTCOME_TIMED_OUT, MetricsMiddleware
from .outcome import Converged, PollOutcome, TimedOut
from .window import ConsistencyWindow

logger = logging.getLogger(__name__)

Predicate = Callable[[], Awaitable[bool]]


@dataclass(frozen=True)
class PollConfig:
    """Configuration for a convergence poll."""

    max_tries: int = DEFAULT_MAX_TRIES  # Attempts are indexed 0..max_tries inclusive
    minimum_consecutive_consistency: int = DEFAULT_MINIMUM_CONSECUTIVE_CONSISTENCY
    sleep_duration: float = DEFAULT_SLEEP_DURATION  # Seconds, late phase only
    skip_on_timeout: bool = DEFAULT_SKIP_ON_TIMEOUT

    def __post_init__(self) -> None:
        if self.max_tries < 0:
            raise ConfigurationError(f"max_tries must be >= 0, got {self.max_tries}")
        if self.minimum_consecutive_consistency < 1:
            raise ConfigurationError(
                "minimum_consecutive_consistency must be >= 1, "
                f"got {self.minimum_consecutive_consistency}"
            )
        if self.sleep_duration <= 0:
            raise ConfigurationError(f"sleep_duration must be > 0, got {self.sleep_duration}")

    @property
    def disposition(self) -> TimeoutDisposition:
        return TimeoutDisposition.from_flag(self.skip_on_timeout)

    @property
    def halfway(self) -> int:
        """Last attempt index that is followed by a cooperative yield."""
        return self.max_tries // 2


class ConvergencePoller:
    """
    Polls an async predicate until it is consistently true.

    A poll succeeds only when the most recent
    ``minimum_consecutive_consistency`` evaluations were all true. Attempts
    up to the halfway point of the budget are followed by a zero-delay
    yield, later ones by a ``sleep_duration`` sleep. Predicate errors
    propagate immediately and are never retried.
    """

    def __init__(
        self, config: Optional[PollConfig] = None, metrics: Optional[MetricsMiddleware] = None
    ):
        """
        Initialize the poller.

        Args:
            config: Poll configuration. Defaults to ``PollConfig()``.
            metrics: Optional metrics middleware, one record per finished poll.
        """
        self.config = config or PollConfig()
        self._metrics = metrics

    def poll(
        self, predicate: Predicate, location: Optional[SourceLocation] = None
    ) -> Coroutine[Any, Any, PollOutcome]:
        """
        Poll until the predicate converges or the attempt budget is spent.

        The call site is captured here, before the coroutine is scheduled,
        so polls launched with ``asyncio.create_task`` report the line that
        created them.

        Args:
            predicate: Zero-argument coroutine function returning a bool.
            location: Call site used to prefix diagnostics. Captured from
                the caller when omitted.

        Returns:
            Coroutine resolving to Converged with the attempt index, or TimedOut.

        Raises:
            Exception: Whatever the predicate raises, unchanged.
        """
        if location is None:
            location = SourceLocation.from_caller()
        return self._poll(predicate, location)

    def spin(
        self, predicate: Predicate, location: Optional[SourceLocation] = None
    ) -> Coroutine[Any, Any, PollOutcome]:
        """
        Poll, then apply the configured timeout disposition.

        Raises:
            ConvergenceTimeoutError: If the poll timed out and
                ``skip_on_timeout`` is False.
        """
        if location is None:
            location = SourceLocation.from_caller()
        return self._spin(predicate, location)

    async def _spin(self, predicate: Predicate, location: SourceLocation) -> PollOutcome:
        outcome = await self._poll(predicate, location)
        return apply_disposition(outcome, self.config.disposition)

    async def _poll(self, predicate: Predicate, location: SourceLocation) -> PollOutcome:
        log = LocationLoggerAdapter(logger, location)
        config = self.config

        window = ConsistencyWindow(config.minimum_consecutive_consistency)
        start = time.perf_counter()

        for i in range(config.max_tries + 1):
            try:
                result = await predicate()
            except Exception as e:
                await self._record(
                    location, i + 1, time.perf_counter() - start, OUTCOME_FAILED, type(e).__name__
                )
                raise

            window.record(result)
            if window.is_consistent:
                duration = time.perf_counter() - start
                if i + 1 > config.minimum_consecutive_consistency:
                    log.info(
                        f"Took {i + 1} tries ({duration:.1f} seconds) "
                        "until conditions are what we expect"
                    )
                else:
                    log.debug(
                        f"condition hit on the first {config.minimum_consecutive_consistency} "
                        f"tries ({duration:.1f} seconds), nice!"
                    )
                await self._record(location, i + 1, duration, OUTCOME_CONVERGED)
                return Converged(attempt=i, duration=duration)

            if i > config.halfway:
                await asyncio.sleep(config.sleep_duration)
            else:
                await asyncio.sleep(0)

        outcome = TimedOut(attempts=config.max_tries + 1, duration=time.perf_counter() - start)
        log.warning(outcome.message)
        await self._record(location, outcome.attempts, outcome.duration, OUTCOME_TIMED_OUT)
        return outcome

    async def _record(
        self,
        location: SourceLocation,
        attempts: int,
        duration: float,
        outcome: str,
        error_type: Optional[str] = None,
    ) -> None:
        if self._metrics:
            await self._metrics.record_poll_metrics(
                location=location.prefix,
                attempts=attempts,
                duration=duration,
                outcome=outcome,
                error_type=error_type,
            )


def poll_until_consistent(
    predicate: Predicate,
    max_tries: int = DEFAULT_MAX_TRIES,
    minimum_consecutive_consistency: int = DEFAULT_MINIMUM_CONSECUTIVE_CONSISTENCY,
    sleep_duration: float = DEFAULT_SLEEP_DURATION,
    location: Optional[SourceLocation] = None,
    metrics: Optional[MetricsMiddleware] = None,
) -> Coroutine[Any, Any, PollOutcome]:
    """
    Poll a predicate until it is consistently true.

    Timeouts are returned, never raised; see ``spin_until_condition`` for
    the variant that applies a disposition policy.
    """
    config = PollConfig(
        max_tries=max_tries,
        minimum_consecutive_consistency=minimum_consecutive_consistency,
        sleep_duration=sleep_duration,
    )
    if location is None:
        location = SourceLocation.from_caller()
    return ConvergencePoller(config, metrics).poll(predicate, location)


def spin_until_condition(
    predicate: Predicate,
    max_tries: int = DEFAULT_MAX_TRIES,
    minimum_consecutive_consistency: int = DEFAULT_MINIMUM_CONSECUTIVE_CONSISTENCY,
    skip_on_timeout: bool = DEFAULT_SKIP_ON_TIMEOUT,
    sleep_duration: float = DEFAULT_SLEEP_DURATION,
    location: Optional[SourceLocation] = None,
    metrics: Optional[MetricsMiddleware] = None,
) -> Coroutine[Any, Any, PollOutcome]:
    """
    Wait for a flaky condition to settle.

    Args:
        predicate: Zero-argument coroutine function returning a bool.
        max_tries: Highest attempt index; the budget is ``max_tries + 1``.
        minimum_consecutive_consistency: Consecutive trues required.
        skip_on_timeout: Return an inconclusive ``TimedOut`` when True,
            raise ``ConvergenceTimeoutError`` when False.
        sleep_duration: Seconds between late-phase attempts.
        location: Call site for diagnostics, captured when omitted.
        metrics: Optional metrics middleware.

    Returns:
        Converged, or TimedOut in skip mode.

    Raises:
        ConvergenceTimeoutError: On timeout in strict mode.
    """
    config = PollConfig(
        max_tries=max_tries,
        minimum_consecutive_consistency=minimum_consecutive_consistency,
        sleep_duration=sleep_duration,
        skip_on_timeout=skip_on_timeout,
    )
    if location is None:
        location = SourceLocation.from_caller()
    return ConvergencePoller(config, metrics).spin(predicate, location)

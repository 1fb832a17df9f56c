"""
Timeout disposition policy.

Decides what a ``TimedOut`` outcome means to the caller: an inconclusive
result to be reported as skipped, or a hard failure.
"""

from enum import Enum

from .exceptions import ConvergenceTimeoutError
from .outcome import PollOutcome, TimedOut


class TimeoutDisposition(str, Enum):
    """How a poll that ran out of attempts is reported."""

    SKIP = "skip"
    STRICT = "strict"

    @classmethod
    def from_flag(cls, skip_on_timeout: bool) -> "TimeoutDisposition":
        return cls.SKIP if skip_on_timeout else cls.STRICT


def apply_disposition(outcome: PollOutcome, disposition: TimeoutDisposition) -> PollOutcome:
    """
    Apply the disposition policy to a finished poll.

    Args:
        outcome: The raw poll outcome.
        disposition: SKIP returns timeouts unchanged, STRICT raises them.

    Returns:
        The outcome, unchanged unless it was converted into an error.

    Raises:
        ConvergenceTimeoutError: If the poll timed out in strict mode.
    """
    if isinstance(outcome, TimedOut) and disposition is TimeoutDisposition.STRICT:
        raise ConvergenceTimeoutError(
            outcome.message, attempts=outcome.attempts, duration=outcome.duration
        )
    return outcome


def is_inconclusive(outcome: PollOutcome) -> bool:
    """Check whether an outcome should be reported as inconclusive."""
    return isinstance(outcome, TimedOut)

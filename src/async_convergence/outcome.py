"""
Outcome values returned by a convergence poll.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Converged:
    """The predicate held for the required number of consecutive attempts."""

    attempt: int  # 0-indexed attempt at which the window became consistent
    duration: float  # Wall-clock seconds, diagnostics only

    @property
    def converged(self) -> bool:
        return True

    @property
    def tries(self) -> int:
        """Number of predicate evaluations performed."""
        return self.attempt + 1


@dataclass(frozen=True)
class TimedOut:
    """
    The attempt budget ran out before the predicate settled.

    In skip mode this is handed back to the caller as an inconclusive
    result; in strict mode it is converted to ``ConvergenceTimeoutError``.
    """

    attempts: int
    duration: float

    @property
    def converged(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return (
            f"Internal state failed to update after {self.attempts} tries "
            f"({self.duration:.1f} seconds), this is a known flake"
        )


PollOutcome = Union[Converged, TimedOut]

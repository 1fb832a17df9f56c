"""
Exception classes for async-convergence.
"""

from typing import Optional


class AsyncConvergenceError(Exception):
    """Base exception for async-convergence."""

    pass


class ConfigurationError(AsyncConvergenceError):
    """Raised when poll parameters are invalid."""

    pass


class ConvergenceTimeoutError(AsyncConvergenceError):
    """
    Raised in strict mode when the attempt budget runs out.

    Carries the same diagnostic payload a skipped test would report.
    """

    def __init__(self, message: str, attempts: int = 0, duration: float = 0.0):
        super().__init__(message)
        self.attempts = attempts
        self.duration = duration


class VerificationError(AsyncConvergenceError):
    """Raised when an entitlement's transaction failed verification."""

    def __init__(self, message: str, product_id: Optional[str] = None):
        super().__init__(message)
        self.product_id = product_id

"""
Source-location tagging for diagnostic output.

Callers may pass a ``SourceLocation`` explicitly; otherwise the poller
captures the location of whoever called it. The location only prefixes
log lines and never affects polling behavior.
"""

import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, MutableMapping, Optional, Tuple


@dataclass(frozen=True)
class SourceLocation:
    """A file/line pair identifying the call site of a poll."""

    file: str
    line: int

    @classmethod
    def from_caller(cls, depth: int = 1) -> "SourceLocation":
        """
        Capture the location of a caller further up the stack.

        Args:
            depth: 0 is the function calling ``from_caller``, 1 is its caller.

        Returns:
            SourceLocation for the requested frame, or an unknown location
            if the stack is shallower than requested.
        """
        try:
            frame = sys._getframe(depth + 1)
        except ValueError:
            return cls.unknown()
        return cls(file=frame.f_code.co_filename, line=frame.f_lineno)

    @classmethod
    def unknown(cls) -> "SourceLocation":
        return cls(file="<unknown>", line=0)

    @property
    def prefix(self) -> str:
        """Short form used in log lines, e.g. ``test_store.py L42``."""
        return f"{os.path.basename(self.file)} L{self.line}"

    def __str__(self) -> str:
        return self.prefix


class LocationLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that prefixes every message with a source location."""

    def __init__(self, logger: logging.Logger, location: Optional[SourceLocation] = None):
        super().__init__(logger, {"source_location": location or SourceLocation.unknown()})

    @property
    def location(self) -> SourceLocation:
        return self.extra["source_location"]  # type: ignore[index]

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("source_location", self.location)
        kwargs["extra"] = extra
        return f"{self.location.prefix}: {msg}", kwargs

"""
Consistency window for convergence polling.
"""

from collections import deque
from typing import Deque, Iterator, List

from .exceptions import ConfigurationError


class ConsistencyWindow:
    """
    Bounded history of the most recent predicate results.

    The window holds at most ``capacity`` results. Once full, the oldest
    result is evicted before a new one is appended, so a single stray
    ``True`` between ``False`` results can never satisfy it.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ConfigurationError(f"Window capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._results: Deque[bool] = deque()

    def record(self, result: bool) -> None:
        """Append a result, evicting the oldest one if the window is full."""
        if len(self._results) >= self.capacity:
            self._results.popleft()
        self._results.append(bool(result))

    @property
    def is_full(self) -> bool:
        return len(self._results) == self.capacity

    @property
    def is_consistent(self) -> bool:
        """True when the window is full and every result in it is true."""
        return self.is_full and all(self._results)

    @property
    def results(self) -> List[bool]:
        return list(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[bool]:
        return iter(list(self._results))

    def __repr__(self) -> str:
        return f"ConsistencyWindow(capacity={self.capacity}, results={self.results})"

"""Fixed-window hit counters for request throttling.

A window opens at the first hit for a key and lasts ``window_seconds``;
hits inside it accumulate, and the first hit after it expires opens a
fresh window with a count of one.
"""

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class Hit:
    """The outcome of one ``increment()``.

    ``retry_after`` is measured against the store's own clock.
    """

    count: int
    # Whole seconds until the window closes, at least 1
    retry_after: int


def seconds_left(window_end: float, now: float) -> int:
    return max(1, math.ceil(window_end - now))


class CounterStore(Protocol):
    """Storage backing ``ThrottleMiddleware``.

    ``increment`` must be atomic: two concurrent callers never observe
    the same count. It reports the seconds left in the window on the
    returned ``Hit``.
    """

    def increment(self, key: str, window_seconds: float) -> Hit: ...

    def reset(self, key: str) -> None: ...


class MemoryCounterStore:
    """In-process counter store guarded by a lock.

    ``clock`` defaults to ``time.monotonic`` and can be replaced in tests.
    """

    __slots__ = ("_clock", "_lock", "_state")

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        # key -> (count, window_end)
        self._state: dict[str, tuple[int, float]] = {}

    def increment(self, key: str, window_seconds: float) -> Hit:
        now = self._clock()
        with self._lock:
            count, window_end = self._state.get(key, (0, 0.0))
            if window_end <= now:
                count = 0
                window_end = now + window_seconds
            count += 1
            self._state[key] = (count, window_end)
            self._prune(now)
        return Hit(count=count, retry_after=seconds_left(window_end, now))

    def reset(self, key: str) -> None:
        with self._lock:
            self._state.pop(key, None)

    def _prune(self, now: float) -> None:
        # Expired windows only matter until their key is hit again
        if len(self._state) < 1024:
            return
        expired = [k for k, (_, end) in self._state.items() if end <= now]
        for key in expired:
            del self._state[key]

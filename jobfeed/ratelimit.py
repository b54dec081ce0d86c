"""Token-bucket rate limiter used to pace metered search calls."""
from __future__ import annotations

import threading
import time
from typing import Callable


class RateLimiter:
    """Token bucket with an injectable clock, sleep and cancel event.

    ``acquire`` blocks until a token is available and returns True, or
    returns False as soon as the cancel event is set. The default sleep
    waits on the cancel event so that cancelling wakes a sleeping caller.
    """

    def __init__(
        self,
        rate: float,
        capacity: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self.capacity = capacity
        self.tokens = capacity
        self.clock = clock
        self.cancel = cancel or threading.Event()
        self._sleep = sleep or self.cancel.wait
        self._last_refill = clock()
        self._lock = threading.Lock()

    @classmethod
    def every(cls, interval_seconds: float, **kwargs) -> RateLimiter:
        """One call per *interval_seconds*, no burst."""
        rate = 1.0 / interval_seconds if interval_seconds > 0 else 1e9
        return cls(rate=rate, capacity=1.0, **kwargs)

    def _refill(self) -> None:
        now = self.clock()
        elapsed = max(0.0, now - self._last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self._last_refill = now

    def wait_time(self, tokens: float = 1.0) -> float:
        with self._lock:
            self._refill()
            if self.tokens >= tokens:
                return 0.0
            return (tokens - self.tokens) / self.rate

    def try_acquire(self, tokens: float = 1.0) -> bool:
        with self._lock:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return True
            return False

    def acquire(self, tokens: float = 1.0) -> bool:
        while not self.cancel.is_set():
            if self.try_acquire(tokens):
                return True
            self._sleep(self.wait_time(tokens))
        return False

    def reset(self) -> None:
        """Full bucket and a cleared cancel flag, for the next run."""
        with self._lock:
            self.tokens = self.capacity
            self._last_refill = self.clock()
        self.cancel.clear()

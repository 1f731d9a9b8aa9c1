# anchor/storage/__init__.py
"""
Rate-limit counter backends.

The counter lives behind an interface so several worker processes can share
one TTL window (SQLite file) instead of each holding its own memory.
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Tuple


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    count: int
    limit: int
    reset_at: float

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)

    def retry_after(self, now: float) -> int:
        return max(int(self.reset_at - now + 0.999), 0)


class RateLimiter(ABC):
    """Fixed TTL window counter keyed by caller identity."""

    def __init__(self, limit: int, window_s: float, clock: Callable[[], float] = time.time):
        if limit < 1 or window_s <= 0:
            raise ValueError("Rate limit needs limit >= 1 and a positive window")
        self.limit = limit
        self.window_s = window_s
        self.clock = clock

    @abstractmethod
    def hit(self, key: str) -> RateDecision:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class MemoryRateLimiter(RateLimiter):
    """Single-process counter. Resets when the process restarts."""

    def __init__(self, limit: int, window_s: float, clock: Callable[[], float] = time.time):
        super().__init__(limit, window_s, clock)
        self._hits: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> RateDecision:
        now = self.clock()
        with self._lock:
            start, count = self._hits.get(key, (now, 0))
            if now - start >= self.window_s:
                start, count = now, 0
            count += 1
            self._hits[key] = (start, count)
            # drop stale windows so the map stays bounded by active callers
            if len(self._hits) > 10_000:
                self._hits = {k: v for k, v in self._hits.items() if now - v[0] < self.window_s}
        return RateDecision(count <= self.limit, count, self.limit, start + self.window_s)

    def close(self) -> None:
        self._hits.clear()


def create_rate_limiter(
    uri: str, limit: int, window_s: float, clock: Callable[[], float] = time.time
) -> RateLimiter:
    uri = (uri or "memory:").strip()
    if uri in ("memory:", "memory://"):
        return MemoryRateLimiter(limit, window_s, clock)

    elif uri.startswith("sqlite://"):
        from .sqlite import SQLiteRateLimiter
        # Extract everything after sqlite://
        raw_path = uri[len("sqlite://"):].lstrip("/")
        if not raw_path:
            raise ValueError(f"Missing database path in rate limit URI: {uri}")
        absolute_path = Path("/" + raw_path).resolve()
        return SQLiteRateLimiter(absolute_path, limit, window_s, clock)

    else:
        raise ValueError(f"Unsupported rate limit URI: {uri}")


from .sqlite import SQLiteRateLimiter

__all__ = [
    "RateDecision",
    "RateLimiter",
    "MemoryRateLimiter",
    "SQLiteRateLimiter",
    "create_rate_limiter",
]

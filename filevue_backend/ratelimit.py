"""Sliding-window rate limiting for login, share verification and the API."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from .errors import RateLimited


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_seconds: float
    message: str = "Too many requests. Please slow down."


API_LIMIT = RateLimitConfig(max_requests=200, window_seconds=60)
LOGIN_LIMIT = RateLimitConfig(
    max_requests=10,
    window_seconds=15 * 60,
    message="Too many login attempts. Please try again later.",
)
SHARE_VERIFY_LIMIT = RateLimitConfig(
    max_requests=5,
    window_seconds=15 * 60,
    message="Too many invalid access codes. Please try again later.",
)


class SlidingWindowCounter:
    """Thread-safe per-key sliding window.

    ``check`` records a hit and raises when the key is already at its
    limit. ``peek`` raises without recording, for callers that only count
    failures.
    """

    def __init__(self, config: RateLimitConfig, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.config = config
        self._windows: dict[str, list[float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _prune(self, key: str, now: float) -> list[float]:
        # Keys whose window has emptied are dropped so the map only holds
        # clients seen within the last window.
        cutoff = now - self.config.window_seconds
        timestamps = [t for t in self._windows.get(key, ()) if t > cutoff]
        if timestamps:
            self._windows[key] = timestamps
        else:
            self._windows.pop(key, None)
        return timestamps

    def _raise_if_full(self, key: str, timestamps: list[float], now: float) -> None:
        if len(timestamps) >= self.config.max_requests:
            retry_after = timestamps[0] + self.config.window_seconds - now
            raise RateLimited(
                self.config.message,
                retry_after=max(retry_after, 0.1),
                reason=f"rate_limited:{key}",
            )

    def check(self, key: str) -> None:
        now = self._clock()
        with self._lock:
            timestamps = self._prune(key, now)
            self._raise_if_full(key, timestamps, now)
            timestamps.append(now)
            self._windows[key] = timestamps

    def peek(self, key: str) -> None:
        now = self._clock()
        with self._lock:
            timestamps = self._prune(key, now)
            self._raise_if_full(key, timestamps, now)

    def hit(self, key: str) -> None:
        now = self._clock()
        with self._lock:
            timestamps = self._prune(key, now)
            timestamps.append(now)
            self._windows[key] = timestamps

    def current_count(self, key: str) -> int:
        now = self._clock()
        with self._lock:
            cutoff = now - self.config.window_seconds
            return sum(1 for t in self._windows.get(key, ()) if t > cutoff)

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def sweep(self) -> int:
        """Drop every key whose window has emptied. Returns how many went."""
        now = self._clock()
        with self._lock:
            before = len(self._windows)
            for key in list(self._windows):
                self._prune(key, now)
            return before - len(self._windows)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

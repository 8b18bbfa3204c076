"""Per-key request guards: a fixed-window rate limiter and an idempotency cache.

Both are in-memory and keyed by caller-chosen strings (typically derived
from the session id). Clocks are injectable and return milliseconds.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .chat.throttle import monotonic_ms


@dataclass
class _Window:
    count: int
    reset_at: float


class WindowRateLimiter:
    """Allows ``max_requests`` per key within each fixed window."""

    def __init__(
        self,
        max_requests: int,
        window_ms: float,
        clock: Callable[[], float] = monotonic_ms,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self._max = max_requests
        self._window_ms = window_ms
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def check(self, key: str) -> bool:
        """Count a request for ``key``.

        Returns:
            False if the key has exhausted its current window
        """
        now = self._clock()
        window = self._windows.get(key)
        if window is None or window.reset_at < now:
            self._windows[key] = _Window(count=1, reset_at=now + self._window_ms)
            return True
        if window.count >= self._max:
            return False
        window.count += 1
        return True

    def remaining(self, key: str) -> int:
        window = self._windows.get(key)
        if window is None or window.reset_at < self._clock():
            return self._max
        return max(0, self._max - window.count)

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)

    def purge(self) -> int:
        """Drop windows that have already reset.

        Returns:
            Number of keys removed
        """
        now = self._clock()
        expired = [k for k, w in self._windows.items() if w.reset_at < now]
        for k in expired:
            del self._windows[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)


@dataclass
class _CachedResponse:
    expires_at: float
    body: Any


class IdempotencyCache:
    """Remembers responses per (session, idempotency key) for ``ttl_ms``.

    A retried request with the same pair gets the stored body back instead
    of being processed twice.
    """

    def __init__(self, ttl_ms: float, clock: Callable[[], float] = monotonic_ms):
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")
        self._ttl_ms = ttl_ms
        self._clock = clock
        self._entries: dict[tuple[str, str], _CachedResponse] = {}

    def get(self, session_id: str, key: str) -> Any | None:
        entry = self._entries.get((session_id, key))
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[(session_id, key)]
            return None
        return entry.body

    def put(self, session_id: str, key: str, body: Any) -> None:
        self._entries[(session_id, key)] = _CachedResponse(
            expires_at=self._clock() + self._ttl_ms,
            body=body,
        )

    def purge(self) -> int:
        """Drop expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [k for k, v in self._entries.items() if v.expires_at <= now]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

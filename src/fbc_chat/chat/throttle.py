"""Send throttle: rejects sends that arrive too soon after the last one."""

import time
from collections.abc import Callable

from ..config import DEBOUNCE_DELAY_MS


def monotonic_ms() -> float:
    """Default clock in milliseconds, immune to wall-clock changes."""
    return time.monotonic() * 1000.0


class SendThrottle:
    """Accepts a send only if ``delay_ms`` has passed since the last accepted one.

    The clock is injectable so tests can drive time explicitly:

        throttle = SendThrottle(clock=lambda: now)
        throttle.try_acquire()
    """

    def __init__(
        self,
        delay_ms: float = DEBOUNCE_DELAY_MS,
        clock: Callable[[], float] = monotonic_ms,
    ):
        if delay_ms < 0:
            raise ValueError("delay_ms must be non-negative")
        self._delay_ms = delay_ms
        self._clock = clock
        self._last_accepted: float | None = None

    @property
    def delay_ms(self) -> float:
        return self._delay_ms

    def try_acquire(self, now: float | None = None) -> bool:
        """Record and accept the send, or reject it without side effects."""
        now = self._clock() if now is None else now
        if self._last_accepted is not None and now - self._last_accepted < self._delay_ms:
            return False
        self._last_accepted = now
        return True

    def time_since_last(self, now: float | None = None) -> float | None:
        """Milliseconds since the last accepted send, or None if none yet."""
        if self._last_accepted is None:
            return None
        now = self._clock() if now is None else now
        return now - self._last_accepted

    def reset(self) -> None:
        self._last_accepted = None

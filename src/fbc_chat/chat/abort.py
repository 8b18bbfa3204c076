"""Cooperative cancellation for in-flight chat requests.

Hides how a session guarantees at most one request in flight:
- Each request gets its own AbortController
- Starting a new request aborts the previous controller first
- Aborting also cancels the asyncio task consuming the stream, if attached

Cancellation is cooperative: a read already in progress may still deliver
one more chunk, which the consumer drops after checking the signal.
"""

import asyncio
import logging

from ..exceptions import RequestAborted

logger = logging.getLogger(__name__)


class AbortSignal:
    """Read-only view of a controller's state."""

    def __init__(self) -> None:
        self._aborted = False
        self._reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> str | None:
        return self._reason

    def throw_if_aborted(self) -> None:
        """Raise RequestAborted if the owning controller was aborted."""
        if self._aborted:
            raise RequestAborted(self._reason)


class AbortController:
    """Owns one AbortSignal and, optionally, the task it should cancel."""

    def __init__(self) -> None:
        self.signal = AbortSignal()
        self._task: asyncio.Task | None = None

    def attach(self, task: asyncio.Task) -> None:
        """Cancel ``task`` when this controller is aborted."""
        self._task = task
        if self.signal.aborted:
            task.cancel()

    def abort(self, reason: str | None = None) -> None:
        """Abort the request. Calling it again has no effect."""
        if self.signal.aborted:
            return
        self.signal._aborted = True
        self.signal._reason = reason
        if self._task is not None and not self._task.done():
            self._task.cancel()


class AbortCoordinator:
    """Keeps a single active controller per session.

    State machine:
        Idle -> Sending(A) -> begin() aborts A -> Sending(B) -> Idle
    """

    def __init__(self) -> None:
        self._active: AbortController | None = None

    @property
    def active(self) -> AbortController | None:
        return self._active

    def begin(self) -> AbortController:
        """Abort any in-flight request and install a fresh controller."""
        if self._active is not None:
            logger.debug("Superseding in-flight request")
            self._active.abort("superseded")
        self._active = AbortController()
        return self._active

    def stop(self) -> bool:
        """Abort the active controller.

        Returns:
            True if a request was in flight, False when idle
        """
        if self._active is None:
            return False
        self._active.abort("stopped")
        self._active = None
        return True

    def release(self, controller: AbortController) -> None:
        """Forget ``controller`` if it is still the active one."""
        if self._active is controller:
            self._active = None

    def is_current(self, controller: AbortController) -> bool:
        return self._active is controller

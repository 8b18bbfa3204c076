"""Token usage events.

A session publishes one event per completion that reports usage. Cost
trackers subscribe to the bus instead of being reachable through a global.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .models import TokenUsage

logger = logging.getLogger(__name__)


class TokenUsageEvent(BaseModel):
    """Usage reported for one completion in a session."""

    model_config = ConfigDict(frozen=True)

    session_id: str | None = None
    provider: str = Field(default="unknown", description="Provider that served the completion")
    model: str = Field(default="unknown", description="Model that served the completion")
    usage: TokenUsage
    timestamp: datetime = Field(default_factory=datetime.now)


UsageListener = Callable[[TokenUsageEvent], None]


class UsageEventBus:
    """Fan-out of usage events to subscribers.

    A failing subscriber is logged and skipped so the others still receive
    the event.
    """

    def __init__(self) -> None:
        self._listeners: list[UsageListener] = []

    def subscribe(self, listener: UsageListener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: TokenUsageEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Usage listener failed for session %s", event.session_id)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

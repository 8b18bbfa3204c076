"""Per-session cost tracking fed by the usage event bus."""

from collections import deque
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from ..config import DAILY_BUDGET_USD, RECENT_REQUESTS_LIMIT
from .events import TokenUsageEvent, UsageEventBus
from .pricing import calculate_cost


class RequestCost(BaseModel):
    """One priced request as shown in the recent-requests list."""

    model_config = ConfigDict(frozen=True)

    provider: str
    model: str
    cost: float
    tokens: int
    timestamp: datetime


class DailyBudget(BaseModel):
    """Spend against a daily limit."""

    model_config = ConfigDict(frozen=True)

    limit: float
    spent: float
    remaining: float
    percentage: float

    @classmethod
    def from_spend(cls, limit: float, spent: float) -> "DailyBudget":
        percentage = spent / limit * 100 if limit > 0 else 100.0
        return cls(
            limit=limit,
            spent=spent,
            remaining=max(0.0, limit - spent),
            percentage=min(percentage, 100.0),
        )


class SessionCostTracker:
    """Accumulates cost for the events of one session.

    Events for other sessions are ignored, so one bus can serve several
    trackers.
    """

    def __init__(
        self,
        session_id: str | None,
        daily_limit: float = DAILY_BUDGET_USD,
        recent_limit: int = RECENT_REQUESTS_LIMIT,
    ):
        self.session_id = session_id
        self.daily_limit = daily_limit
        self.total_cost = 0.0
        self.total_tokens = 0
        self.request_count = 0
        self._recent: deque[RequestCost] = deque(maxlen=recent_limit)
        self._unsubscribe = None

    def attach(self, bus: UsageEventBus) -> None:
        self.detach()
        self._unsubscribe = bus.subscribe(self.record)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def record(self, event: TokenUsageEvent) -> RequestCost | None:
        """Price and record one usage event.

        Returns:
            The recorded entry, or None if the event belongs to another session
        """
        if self.session_id is not None and event.session_id != self.session_id:
            return None

        cost = calculate_cost(event.provider, event.model, event.usage)
        entry = RequestCost(
            provider=event.provider,
            model=event.model,
            cost=cost.total_cost,
            tokens=event.usage.total_tokens,
            timestamp=event.timestamp,
        )
        self.total_cost = round(self.total_cost + cost.total_cost, 6)
        self.total_tokens += event.usage.total_tokens
        self.request_count += 1
        self._recent.appendleft(entry)
        return entry

    @property
    def recent_requests(self) -> list[RequestCost]:
        """Most recent requests, newest first."""
        return list(self._recent)

    @property
    def budget(self) -> DailyBudget:
        return DailyBudget.from_spend(self.daily_limit, self.total_cost)

    def reset(self) -> None:
        self.total_cost = 0.0
        self.total_tokens = 0
        self.request_count = 0
        self._recent.clear()

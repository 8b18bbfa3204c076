"""Token usage events and cost tracking."""

from .events import TokenUsageEvent, UsageEventBus
from .models import TokenUsage
from .pricing import (
    PROVIDER_PRICING,
    CostCalculation,
    ProviderPricing,
    calculate_cost,
    get_all_providers,
    get_model_pricing,
    get_provider_models,
)
from .tracker import DailyBudget, RequestCost, SessionCostTracker

__all__ = [
    "PROVIDER_PRICING",
    "CostCalculation",
    "DailyBudget",
    "ProviderPricing",
    "RequestCost",
    "SessionCostTracker",
    "TokenUsage",
    "TokenUsageEvent",
    "UsageEventBus",
    "calculate_cost",
    "get_all_providers",
    "get_model_pricing",
    "get_provider_models",
]

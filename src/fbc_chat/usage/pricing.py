"""Per-provider token pricing and cost calculation.

Prices are USD per one million tokens.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .models import TokenUsage


class ProviderPricing(BaseModel):
    """Price of input and output tokens for one model."""

    model_config = ConfigDict(frozen=True)

    input_price: float = Field(ge=0, description="USD per 1M input tokens")
    output_price: float = Field(ge=0, description="USD per 1M output tokens")
    currency: str = "USD"


class CostCalculation(BaseModel):
    """Cost of a single completion."""

    model_config = ConfigDict(frozen=True)

    input_cost: float
    output_cost: float
    total_cost: float
    provider: str
    model: str
    timestamp: datetime = Field(default_factory=datetime.now)


def _p(input_price: float, output_price: float) -> ProviderPricing:
    return ProviderPricing(input_price=input_price, output_price=output_price)


PROVIDER_PRICING: dict[str, dict[str, ProviderPricing]] = {
    "gemini": {
        "gemini-2.5-flash": _p(0.075, 0.3),
        "gemini-2.5-flash-lite": _p(0.10, 0.40),
        "gemini-2.5": _p(1.25, 5.0),
    },
    "openai": {
        "gpt-4o": _p(2.5, 10.0),
        "gpt-4o-mini": _p(0.15, 0.6),
        "gpt-4-turbo": _p(10.0, 30.0),
        "gpt-3.5-turbo": _p(0.5, 1.5),
    },
    "anthropic": {
        "claude-3-5-sonnet": _p(3.0, 15.0),
        "claude-3-haiku": _p(0.25, 1.25),
        "claude-3-opus": _p(15.0, 75.0),
    },
    "groq": {
        "llama-3.1-70b": _p(0.59, 0.79),
        "llama-3.1-8b": _p(0.05, 0.08),
        "mixtral-8x7b": _p(0.24, 0.24),
    },
    "xai": {
        "grok-beta": _p(5.0, 15.0),
    },
}


def get_model_pricing(provider: str, model: str) -> ProviderPricing | None:
    return PROVIDER_PRICING.get(provider, {}).get(model)


def get_provider_models(provider: str) -> list[str]:
    return list(PROVIDER_PRICING.get(provider, {}))


def get_all_providers() -> list[str]:
    return list(PROVIDER_PRICING)


def calculate_cost(provider: str, model: str, usage: TokenUsage) -> CostCalculation:
    """Calculate the cost of a completion.

    Unknown provider/model pairs cost nothing rather than failing, since
    usage for them is still worth counting.

    Args:
        provider: Provider key, e.g. ``"openai"``
        model: Model key, e.g. ``"gpt-4o-mini"``
        usage: Token counts

    Returns:
        CostCalculation with costs rounded to 6 decimals
    """
    pricing = get_model_pricing(provider, model)
    if pricing is None:
        return CostCalculation(
            input_cost=0.0,
            output_cost=0.0,
            total_cost=0.0,
            provider=provider,
            model=model,
        )

    input_cost = usage.input_tokens / 1_000_000 * pricing.input_price
    output_cost = usage.output_tokens / 1_000_000 * pricing.output_price
    return CostCalculation(
        input_cost=round(input_cost, 6),
        output_cost=round(output_cost, 6),
        total_cost=round(input_cost + output_cost, 6),
        provider=provider,
        model=model,
    )

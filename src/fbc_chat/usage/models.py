"""Token usage data model."""

from pydantic import BaseModel, ConfigDict, Field


class TokenUsage(BaseModel):
    """Token counts reported for one completion.

    Accepts both snake_case and the endpoint's camelCase keys.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    input_tokens: int = Field(default=0, ge=0, alias="inputTokens")
    output_tokens: int = Field(default=0, ge=0, alias="outputTokens")
    total_tokens: int = Field(default=0, ge=0, alias="totalTokens")

    @classmethod
    def from_counts(cls, input_tokens: int, output_tokens: int) -> "TokenUsage":
        return cls(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
        )

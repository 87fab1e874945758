"""
Pricing calculations and rate management.

Per-model pay-as-you-go API prices used to estimate what a period of
subscription usage would have cost on the API.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Mapping

DEFAULT_MODEL_KEY = "default"
TOKENS_PER_MILLION = Decimal("1000000")


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    input_per_million: Decimal  # USD per 1M input tokens
    output_per_million: Decimal  # USD per 1M output tokens

    def __post_init__(self):
        """Validate prices are not negative."""
        if self.input_per_million < 0:
            raise ValueError("input_per_million cannot be negative")
        if self.output_per_million < 0:
            raise ValueError("output_per_million cannot be negative")

    def cost(self, input_tokens: int, output_tokens: int) -> Decimal:
        """Unrounded USD cost of the given token counts."""
        return (
            Decimal(input_tokens) / TOKENS_PER_MILLION * self.input_per_million
            + Decimal(output_tokens) / TOKENS_PER_MILLION * self.output_per_million
        )


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table with a mandatory blended fallback."""
    prices: Dict[str, ModelPricing]

    def __post_init__(self):
        if DEFAULT_MODEL_KEY not in self.prices:
            raise ValueError(f"Pricing table must contain a '{DEFAULT_MODEL_KEY}' entry")

    @property
    def default(self) -> ModelPricing:
        return self.prices[DEFAULT_MODEL_KEY]

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a model by exact id, falling back to the default rate."""
        return self.prices.get(model, self.default)

    def with_overrides(self, overrides: Mapping[str, ModelPricing]) -> "PricingTable":
        """Return a new table with the given model prices replaced or added."""
        merged = dict(self.prices)
        merged.update(overrides)
        return PricingTable(merged)


def _price(input_per_million: str, output_per_million: str) -> ModelPricing:
    return ModelPricing(Decimal(input_per_million), Decimal(output_per_million))


# Fixed pricing table - no dynamic fetching
PRICING_TABLE = PricingTable({
    # Anthropic
    "claude-opus-4-5-20251101": _price("15.00", "75.00"),
    "claude-sonnet-4-5-20250929": _price("3.00", "15.00"),
    "claude-3-5-sonnet-20241022": _price("3.00", "15.00"),
    "claude-3-5-sonnet-20240620": _price("3.00", "15.00"),
    "claude-3-opus-20240229": _price("15.00", "75.00"),
    "claude-3-sonnet-20240229": _price("3.00", "15.00"),
    "claude-3-5-haiku-20241022": _price("0.80", "4.00"),
    "claude-3-haiku-20240307": _price("0.25", "1.25"),
    # OpenAI
    "gpt-4o": _price("2.50", "10.00"),
    "gpt-4o-2024-11-20": _price("2.50", "10.00"),
    "gpt-4o-mini": _price("0.15", "0.60"),
    "gpt-4-turbo": _price("10.00", "30.00"),
    "gpt-4-turbo-2024-04-09": _price("10.00", "30.00"),
    "gpt-4": _price("30.00", "60.00"),
    "gpt-3.5-turbo": _price("0.50", "1.50"),
    "o1": _price("15.00", "60.00"),
    "o1-mini": _price("3.00", "12.00"),
    "o1-preview": _price("15.00", "60.00"),
    DEFAULT_MODEL_KEY: _price("5.00", "20.00"),
})

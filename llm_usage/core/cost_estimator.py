"""
Subscription vs. pay-as-you-go cost estimation.

Prices a UsageReport at API rates and compares the result with the flat
subscription price. Pure and deterministic: identical inputs always give
identical outputs.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from .pricing import PRICING_TABLE, PricingTable
from .report import UsageReport

SWITCH_TO_PAYG = "switch to pay-as-you-go"
KEEP_GOOD_VALUE = "keep subscription (good value)"
KEEP_SUBSCRIPTION = "keep subscription"

# subscription is clearly good value below this share of the API cost
GOOD_VALUE_RATIO = Decimal("0.8")

CENT = Decimal("0.01")


@dataclass(frozen=True)
class ModelCost:
    model: str
    tokens: int
    cost: float


@dataclass(frozen=True)
class CostEstimate:
    """Result of comparing a subscription price with API-equivalent cost."""
    api_equivalent_cost: float
    subscription_price: float
    is_overpaying: bool
    savings: float
    recommended_plan_label: str
    model_breakdown: List[ModelCost]


def calculate_api_cost(report: UsageReport, pricing: PricingTable = PRICING_TABLE) -> Decimal:
    """Unrounded pay-as-you-go cost of a report.

    Each model is priced by exact id with the default rate as fallback.
    A report without a per-model breakdown (e.g. built from an export) is
    priced at the default rate on its aggregate totals; for mixed-model
    periods this is an approximation.
    """
    if not report.by_model:
        return pricing.default.cost(report.input_tokens, report.output_tokens)

    total = Decimal("0")
    for model, tokens in report.by_model:
        total += pricing.get_pricing(model).cost(tokens.input, tokens.output)
    return total


def _to_cents(value: Decimal) -> float:
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))


def estimate_cost(
    report: UsageReport,
    pricing: PricingTable = PRICING_TABLE,
    subscription_price: Optional[float] = None,
) -> CostEstimate:
    """Compare the report's subscription price with its API-equivalent cost.

    Args:
        report: Usage to price
        pricing: Per-model API prices
        subscription_price: Monthly plan price; defaults to the report's plan price

    Returns:
        CostEstimate with money values rounded to cents
    """
    if subscription_price is None:
        subscription_price = report.plan.price_usd
    if subscription_price < 0:
        raise ValueError("subscription_price cannot be negative")

    api_cost = calculate_api_cost(report, pricing)
    price = Decimal(str(subscription_price))

    is_overpaying = price > api_cost
    if is_overpaying:
        label = SWITCH_TO_PAYG
    elif price < api_cost * GOOD_VALUE_RATIO:
        label = KEEP_GOOD_VALUE
    else:
        label = KEEP_SUBSCRIPTION

    return CostEstimate(
        api_equivalent_cost=_to_cents(api_cost),
        subscription_price=float(subscription_price),
        is_overpaying=is_overpaying,
        savings=_to_cents(abs(price - api_cost)),
        recommended_plan_label=label,
        model_breakdown=model_breakdown(report, pricing),
    )


def model_breakdown(report: UsageReport, pricing: PricingTable = PRICING_TABLE) -> List[ModelCost]:
    """Per-model token totals and cost, largest consumer first."""
    if not report.by_model:
        return [ModelCost(
            model="aggregate",
            tokens=report.total_tokens,
            cost=_to_cents(pricing.default.cost(report.input_tokens, report.output_tokens)),
        )]
    rows = [
        ModelCost(
            model=model,
            tokens=tokens.total,
            cost=_to_cents(pricing.get_pricing(model).cost(tokens.input, tokens.output)),
        )
        for model, tokens in report.by_model
    ]
    # stable sort keeps first-seen order among equal totals
    return sorted(rows, key=lambda row: row.tokens, reverse=True)

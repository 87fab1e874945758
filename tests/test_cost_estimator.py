"""
Unit tests for subscription vs. API cost estimation.

Tests pricing of reports, recommendation labels and the aggregate
fallback for reports without a model breakdown.
"""

from decimal import Decimal

import pytest

from llm_usage.core.cost_estimator import (
    KEEP_GOOD_VALUE,
    KEEP_SUBSCRIPTION,
    SWITCH_TO_PAYG,
    calculate_api_cost,
    estimate_cost,
    model_breakdown,
)
from llm_usage.core.pricing import PRICING_TABLE
from llm_usage.core.report import ModelTokens, Period, PlanInfo, UsageReport


def _report(by_model, price=20.0, input_tokens=None, output_tokens=None) -> UsageReport:
    if input_tokens is None:
        input_tokens = sum(t.input for _, t in by_model)
    if output_tokens is None:
        output_tokens = sum(t.output for _, t in by_model)
    return UsageReport(
        provider="anthropic",
        source="local_agent",
        period=Period(start="2024-01-01T00:00:00.000Z", end="2024-01-31T00:00:00.000Z"),
        plan=PlanInfo(price_usd=price),
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        by_model=tuple(by_model),
    )


SONNET = "claude-sonnet-4-5-20250929"
OPUS = "claude-3-opus-20240229"


class TestCalculateApiCost:
    """Test API-equivalent cost."""

    def test_sums_per_model_costs(self):
        """Verify each model is priced at its own rate."""
        report = _report([
            (SONNET, ModelTokens(1_000_000, 1_000_000)),  # 3 + 15
            (OPUS, ModelTokens(1_000_000, 0)),  # 15
        ])
        assert calculate_api_cost(report) == Decimal("33.00")

    def test_unknown_model_priced_at_default(self):
        report = _report([("mystery", ModelTokens(1_000_000, 1_000_000))])
        assert calculate_api_cost(report) == Decimal("25.00")

    def test_empty_by_model_uses_default_on_totals(self):
        """Verify reports without a breakdown are priced at the blended rate."""
        report = _report([], input_tokens=2_000_000, output_tokens=500_000)
        assert calculate_api_cost(report) == Decimal("20.00")

    @pytest.mark.parametrize("model", [SONNET, OPUS, "mystery"])
    def test_monotonic_in_tokens(self, model):
        """Verify adding tokens never lowers the cost."""
        base = calculate_api_cost(_report([(model, ModelTokens(1000, 1000))]))
        more_input = calculate_api_cost(_report([(model, ModelTokens(2000, 1000))]))
        more_output = calculate_api_cost(_report([(model, ModelTokens(1000, 2000))]))
        assert more_input >= base
        assert more_output >= base


class TestEstimateCost:
    """Test the subscription verdict."""

    def test_overpaying_recommends_payg(self):
        """Verify light usage on a subscription suggests pay-as-you-go."""
        report = _report([(SONNET, ModelTokens(1_000_000, 100_000))])  # 3 + 1.5
        estimate = estimate_cost(report)

        assert estimate.api_equivalent_cost == 4.5
        assert estimate.subscription_price == 20.0
        assert estimate.is_overpaying is True
        assert estimate.savings == 15.5
        assert estimate.recommended_plan_label == SWITCH_TO_PAYG

    def test_good_value(self):
        """Verify a price well under the API cost is good value."""
        report = _report([(OPUS, ModelTokens(1_000_000, 1_000_000))])  # 90
        estimate = estimate_cost(report, subscription_price=20.0)

        assert estimate.is_overpaying is False
        assert estimate.savings == 70.0
        assert estimate.recommended_plan_label == KEEP_GOOD_VALUE

    def test_close_to_api_cost_keeps_subscription(self):
        """Verify a price between 80% and 100% of the API cost is plain keep."""
        report = _report([(SONNET, ModelTokens(0, 1_000_000))])  # 15
        estimate = estimate_cost(report, subscription_price=13.0)

        assert estimate.is_overpaying is False
        assert estimate.recommended_plan_label == KEEP_SUBSCRIPTION

    def test_equal_price_is_not_overpaying(self):
        report = _report([(SONNET, ModelTokens(0, 1_000_000))])
        estimate = estimate_cost(report, subscription_price=15.0)
        assert estimate.is_overpaying is False
        assert estimate.savings == 0.0

    def test_uses_report_plan_price_by_default(self):
        report = _report([(SONNET, ModelTokens(0, 1_000_000))], price=100.0)
        assert estimate_cost(report).subscription_price == 100.0

    def test_rounds_to_cents(self):
        report = _report([(SONNET, ModelTokens(1, 0))])
        estimate = estimate_cost(report)
        assert estimate.api_equivalent_cost == 0.0
        assert estimate.savings == 20.0

    def test_negative_price_rejected(self):
        with pytest.raises(ValueError):
            estimate_cost(_report([]), subscription_price=-1)

    def test_deterministic(self):
        report = _report([(SONNET, ModelTokens(123_456, 7_890))])
        assert estimate_cost(report) == estimate_cost(report)


class TestModelBreakdown:
    """Test per-model rows."""

    def test_sorted_by_tokens(self):
        report = _report([
            ("small", ModelTokens(10, 10)),
            (SONNET, ModelTokens(1_000_000, 0)),
        ])
        rows = model_breakdown(report, PRICING_TABLE)

        assert [row.model for row in rows] == [SONNET, "small"]
        assert rows[0].tokens == 1_000_000
        assert rows[0].cost == 3.0

    def test_aggregate_row_without_by_model(self):
        """Verify a single aggregate row stands in for the missing breakdown."""
        report = _report([], input_tokens=1_000_000, output_tokens=0)
        rows = model_breakdown(report)

        assert len(rows) == 1
        assert rows[0].model == "aggregate"
        assert rows[0].cost == 5.0

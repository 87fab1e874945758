"""
Unit tests for plan-fit classification.

Tests peak detection, tier recommendation rules and confidence levels.
"""

import pytest

from llm_usage.core.plan_fit import (
    DEFAULT_PLANS,
    Confidence,
    DayClassification,
    PlanDefinition,
    PlanFitThresholds,
    analyze_plan_fit,
    confidence_for,
    find_peak_day,
)
from llm_usage.core.report import DayUsage


def _days(counts):
    return [DayUsage(date=f"2024-01-{i + 1:02d}", count=count) for i, count in enumerate(counts)]


class TestPeakDetection:
    """Test peak day selection."""

    def test_peak_of_sample_counts(self):
        """Verify the peak of a short sample."""
        result = analyze_plan_fit(_days([5, 12, 8, 2, 0, 15, 22, 4]), "Claude Pro")
        assert result.peak_count == 22
        assert result.peak_day.date == "2024-01-07"

    def test_earliest_day_wins_tie(self):
        days = [
            DayClassification("2024-01-01", 9, {}),
            DayClassification("2024-01-02", 9, {}),
        ]
        assert find_peak_day(days).date == "2024-01-01"

    def test_no_days(self):
        assert find_peak_day([]) is None


class TestRecommendation:
    """Test the tier recommendation rules in priority order."""

    def test_day_over_mid_limit_recommends_high_tier(self):
        """Verify one day above the mid-tier limit forces the top tier."""
        result = analyze_plan_fit(_days([40, 550, 80]), "Claude Max 5x")

        assert result.recommendation == "Claude Max 20x"
        assert result.recommended_price == 200.0
        assert result.days_over_mid == 1
        assert result.days_over_low == 1
        assert "exceeded the Claude Max 5x limit" in result.recommendation_reason

    def test_near_mid_limit_recommends_mid_tier(self):
        """Verify a peak at 80% of the mid limit stays on the mid tier."""
        result = analyze_plan_fit(_days([400]), "Claude Max 20x")
        assert result.recommendation == "Claude Max 5x"
        assert result.savings == 100.0

    def test_day_over_low_limit_recommends_mid_tier(self):
        result = analyze_plan_fit(_days([50, 150, 60]), "Claude Pro")
        assert result.recommendation == "Claude Max 5x"
        assert result.days_over_low == 1
        assert result.days_over_mid == 0
        assert result.savings == 0.0

    def test_near_low_limit_recommends_mid_tier(self):
        result = analyze_plan_fit(_days([80]), "Claude Pro")
        assert result.recommendation == "Claude Max 5x"
        assert "approaching" in result.recommendation_reason

    def test_light_usage_recommends_low_tier(self):
        """Verify light usage on an expensive plan shows savings."""
        result = analyze_plan_fit(_days([5, 12, 8, 2, 0, 15, 22, 4]), "Claude Max 20x")

        assert result.recommendation == "Claude Pro"
        assert result.recommended_price == 20.0
        assert result.savings == 180.0
        assert result.days_over_low == 0

    def test_limit_is_exclusive(self):
        """Verify a day exactly at a limit is not over it."""
        result = analyze_plan_fit(_days([100]), "Claude Pro")
        assert result.days_over_low == 0
        assert result.daily_usage[0].over_limit == {
            "Claude Pro": False,
            "Claude Max 5x": False,
            "Claude Max 20x": False,
        }

    def test_empty_history(self):
        result = analyze_plan_fit([], "Claude Pro")
        assert result.recommendation == "Claude Pro"
        assert result.peak_day is None
        assert result.total_days == 0
        assert result.confidence == Confidence.LOW

    def test_custom_tiers_and_threshold(self):
        """Verify tiers are ordered by limit whatever order they come in."""
        plans = (
            PlanDefinition("Team", 60.0, 300),
            PlanDefinition("Solo", 10.0, 50),
            PlanDefinition("Org", 250.0, 1000),
        )
        thresholds = PlanFitThresholds(near_limit_ratio=0.5)
        result = analyze_plan_fit(_days([26]), "Org", plans, thresholds)

        assert result.low_plan == "Solo"
        assert result.mid_plan == "Team"
        assert result.high_plan == "Org"
        assert result.recommendation == "Team"

    def test_unknown_current_plan_rejected(self):
        with pytest.raises(ValueError, match="Unknown plan"):
            analyze_plan_fit(_days([1]), "Claude Ultra")

    def test_requires_three_tiers(self):
        with pytest.raises(ValueError, match="exactly 3"):
            analyze_plan_fit(_days([1]), "Claude Pro", DEFAULT_PLANS[:2])


class TestConfidence:
    """Test confidence from days of data."""

    @pytest.mark.parametrize("days,expected", [
        (0, Confidence.LOW),
        (13, Confidence.LOW),
        (14, Confidence.MEDIUM),
        (29, Confidence.MEDIUM),
        (30, Confidence.HIGH),
        (90, Confidence.HIGH),
    ])
    def test_thresholds(self, days, expected):
        assert confidence_for(days) == expected

    def test_result_confidence_from_day_count(self):
        result = analyze_plan_fit(_days([1] * 14), "Claude Pro")
        assert result.total_days == 14
        assert result.confidence == Confidence.MEDIUM

    def test_invalid_thresholds(self):
        with pytest.raises(ValueError):
            PlanFitThresholds(near_limit_ratio=0)
        with pytest.raises(ValueError):
            PlanFitThresholds(high_confidence_days=7, medium_confidence_days=14)

"""
Unit tests for usage trends over saved reports.
"""

import pytest

from llm_usage.core.report import DayUsage, ModelTokens, Period, PlanInfo, UsageReport
from llm_usage.core.trends import (
    analyze_usage_trends,
    calculate_monthly_trends,
    daily_breakdown,
    model_distribution,
    report_span_days,
    weekday_heatmap,
)
from llm_usage.storage.models import StoredReport


def _stored(start, end, input_tokens=0, output_tokens=0, by_model=(), by_day=(), messages=0, sessions=1):
    report = UsageReport(
        provider="anthropic",
        source="local_agent",
        period=Period(start=start, end=end),
        plan=PlanInfo(),
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        by_model=tuple(by_model),
        message_count=messages,
        by_day=tuple(by_day),
        session_count=sessions,
    )
    return StoredReport(id=f"id-{start}", report=report, saved_at=end)


# default rate is $5 per million input tokens
JANUARY = _stored("2024-01-01T00:00:00.000Z", "2024-01-31T00:00:00.000Z", input_tokens=20_000_000, messages=40)
FEBRUARY = _stored("2024-02-01T00:00:00.000Z", "2024-02-21T00:00:00.000Z", input_tokens=30_000_000, messages=60)


class TestUsageTrends:
    """Test month-over-month trend analysis."""

    def test_percent_change_between_months(self):
        """Verify $100 then $150 is a 50% increase."""
        trend = analyze_usage_trends([FEBRUARY, JANUARY])

        assert [m.period for m in trend.data] == ["2024-01", "2024-02"]
        assert trend.data[0].total_cost == pytest.approx(100.0)
        assert trend.data[1].total_cost == pytest.approx(150.0)
        assert trend.percent_change == pytest.approx(50.0)

    def test_average_and_projection(self):
        """Verify daily average uses each report's span and projects 30 days."""
        trend = analyze_usage_trends([JANUARY, FEBRUARY])

        assert trend.avg_daily_cost == pytest.approx(250.0 / 50)
        assert trend.projected_monthly_cost == pytest.approx(150.0)

    def test_single_month_has_no_change(self):
        trend = analyze_usage_trends([JANUARY])
        assert trend.percent_change == 0.0

    def test_empty_history_returns_none(self):
        """Verify no history is distinct from zero usage."""
        assert analyze_usage_trends([]) is None

    def test_zero_previous_month_has_no_change(self):
        empty_january = _stored("2024-01-01T00:00:00.000Z", "2024-01-31T00:00:00.000Z")
        trend = analyze_usage_trends([empty_january, FEBRUARY])
        assert trend.percent_change == 0.0

    def test_reports_in_same_month_are_summed(self):
        second_half = _stored("2024-01-15T00:00:00.000Z", "2024-01-20T00:00:00.000Z", input_tokens=1_000_000, messages=5)
        monthly = calculate_monthly_trends([JANUARY, second_half])

        assert len(monthly) == 1
        assert monthly[0].input_tokens == 21_000_000
        assert monthly[0].message_count == 45
        assert monthly[0].session_count == 2
        assert monthly[0].total_cost == pytest.approx(105.0)

    def test_span_is_at_least_one_day(self):
        instant = _stored("2024-01-01T00:00:00.000Z", "2024-01-01T00:00:00.000Z")
        partial = _stored("2024-01-01T00:00:00.000Z", "2024-01-02T06:00:00.000Z")
        assert report_span_days(instant) == 1
        assert report_span_days(partial) == 2


class TestBreakdowns:
    """Test daily, weekday and model breakdowns."""

    def setup_method(self):
        self.stored = _stored(
            "2024-01-01T00:00:00.000Z",
            "2024-01-08T23:00:00.000Z",
            input_tokens=3_000_000,
            output_tokens=0,
            by_model=[
                ("claude-3-5-sonnet-20241022", ModelTokens(2_000_000, 0)),
                ("claude-3-opus-20240229", ModelTokens(1_000_000, 0)),
            ],
            by_day=[
                DayUsage("2024-01-01", 10, 1_000_000, 0),
                DayUsage("2024-01-02", 5, 500_000, 0),
                DayUsage("2024-01-08", 20, 1_500_000, 0),
            ],
            messages=35,
        )

    def test_daily_cost_is_token_share_of_report_cost(self):
        """Verify each day carries its proportional share of the cost."""
        days = daily_breakdown([self.stored])

        # report cost: 2M sonnet at $3 + 1M opus at $15 = $21
        assert [d.date for d in days] == ["2024-01-01", "2024-01-02", "2024-01-08"]
        assert days[0].cost == pytest.approx(7.0)
        assert days[2].cost == pytest.approx(10.5)
        assert days[2].messages == 20

    def test_weekday_heatmap_monday_first(self):
        """Verify averages per weekday over recorded days."""
        heatmap = weekday_heatmap([self.stored])

        assert [d.day for d in heatmap][:2] == ["Monday", "Tuesday"]
        monday = heatmap[0]
        assert monday.avg_messages == pytest.approx(15.0)
        assert monday.avg_tokens == pytest.approx(1_250_000)
        assert heatmap[6].avg_messages == 0.0

    def test_model_distribution(self):
        shares = model_distribution([self.stored])

        assert [s.model for s in shares] == ["claude-3-5-sonnet-20241022", "claude-3-opus-20240229"]
        assert shares[0].percentage == pytest.approx(200 / 3)
        assert shares[1].cost == pytest.approx(15.0)

    def test_empty_distribution(self):
        assert model_distribution([]) == []

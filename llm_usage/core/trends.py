"""
Usage trends across saved reports.

Groups report history by calendar month and derives month-over-month change
and a flat 30-day cost projection. Costs are computed per report and then
summed, so each report keeps its own model mix.
"""

import math
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from ..storage.models import StoredReport
from .cost_estimator import calculate_api_cost
from .pricing import PRICING_TABLE, PricingTable

PROJECTION_DAYS = 30
WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


@dataclass(frozen=True)
class MonthlyTrend:
    """Totals for one calendar month (YYYY-MM)."""
    period: str
    total_tokens: int
    total_cost: float
    input_tokens: int
    output_tokens: int
    message_count: int
    session_count: int


@dataclass(frozen=True)
class UsageTrend:
    data: List[MonthlyTrend]
    percent_change: float  # latest month vs. the month before
    avg_daily_cost: float
    projected_monthly_cost: float


@dataclass(frozen=True)
class DailyBreakdown:
    date: str
    tokens: int
    cost: float
    messages: int


@dataclass(frozen=True)
class WeekdayUsage:
    day: str
    avg_tokens: float
    avg_messages: float


@dataclass(frozen=True)
class ModelShare:
    model: str
    tokens: int
    cost: float
    percentage: float


def month_key(stored: StoredReport) -> str:
    """YYYY-MM of the report's period start, in UTC."""
    return stored.report.period.start_datetime.strftime("%Y-%m")


def report_span_days(stored: StoredReport) -> int:
    """Whole days covered by a report's period, at least 1."""
    period = stored.report.period
    span = (period.end_datetime - period.start_datetime) / timedelta(days=1)
    return max(1, math.ceil(span))


def group_reports_by_month(reports: Sequence[StoredReport]) -> Dict[str, List[StoredReport]]:
    grouped: Dict[str, List[StoredReport]] = {}
    for stored in reports:
        grouped.setdefault(month_key(stored), []).append(stored)
    return grouped


def _monthly_costs(reports: Sequence[StoredReport], pricing: PricingTable) -> Dict[str, Decimal]:
    costs: Dict[str, Decimal] = {}
    for stored in reports:
        key = month_key(stored)
        costs[key] = costs.get(key, Decimal("0")) + calculate_api_cost(stored.report, pricing)
    return costs


def calculate_monthly_trends(
    reports: Sequence[StoredReport],
    pricing: PricingTable = PRICING_TABLE,
) -> List[MonthlyTrend]:
    """Per-month totals, oldest month first."""
    costs = _monthly_costs(reports, pricing)
    trends = []
    for period, month_reports in group_reports_by_month(reports).items():
        input_tokens = sum(s.report.input_tokens for s in month_reports)
        output_tokens = sum(s.report.output_tokens for s in month_reports)
        trends.append(MonthlyTrend(
            period=period,
            total_tokens=input_tokens + output_tokens,
            total_cost=float(costs[period]),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            message_count=sum(s.report.message_count for s in month_reports),
            session_count=sum(s.report.session_count for s in month_reports),
        ))
    return sorted(trends, key=lambda trend: trend.period)


def analyze_usage_trends(
    reports: Sequence[StoredReport],
    pricing: PricingTable = PRICING_TABLE,
) -> Optional[UsageTrend]:
    """Month-over-month trend and cost projection.

    Returns None for an empty history so that "no data" stays distinct
    from "zero usage".
    """
    if not reports:
        return None

    monthly = calculate_monthly_trends(reports, pricing)
    costs = _monthly_costs(reports, pricing)

    percent_change = Decimal("0")
    if len(monthly) >= 2:
        current = costs[monthly[-1].period]
        previous = costs[monthly[-2].period]
        if previous > 0:
            percent_change = (current - previous) / previous * 100

    total_days = sum(report_span_days(stored) for stored in reports)
    avg_daily = sum(costs.values(), Decimal("0")) / total_days

    return UsageTrend(
        data=monthly,
        percent_change=float(percent_change),
        avg_daily_cost=float(avg_daily),
        projected_monthly_cost=float(avg_daily * PROJECTION_DAYS),
    )


def daily_breakdown(
    reports: Sequence[StoredReport],
    pricing: PricingTable = PRICING_TABLE,
) -> List[DailyBreakdown]:
    """Per-date totals across all reports.

    A day's cost is its share of its report's tokens times the report cost.
    """
    tokens: Dict[str, int] = {}
    messages: Dict[str, int] = {}
    costs: Dict[str, Decimal] = {}
    for stored in reports:
        report = stored.report
        report_cost = calculate_api_cost(report, pricing)
        for day in report.by_day:
            day_tokens = day.input + day.output
            share = Decimal("0")
            if report.total_tokens > 0:
                share = Decimal(day_tokens) / Decimal(report.total_tokens) * report_cost
            tokens[day.date] = tokens.get(day.date, 0) + day_tokens
            messages[day.date] = messages.get(day.date, 0) + day.count
            costs[day.date] = costs.get(day.date, Decimal("0")) + share
    return [
        DailyBreakdown(date=key, tokens=tokens[key], cost=float(costs[key]), messages=messages[key])
        for key in sorted(tokens)
    ]


def weekday_heatmap(reports: Sequence[StoredReport]) -> List[WeekdayUsage]:
    """Average tokens and messages per recorded day, Monday first."""
    totals = {index: [0, 0, 0] for index in range(7)}  # tokens, messages, days
    for stored in reports:
        for day in stored.report.by_day:
            bucket = totals[date.fromisoformat(day.date).weekday()]
            bucket[0] += day.input + day.output
            bucket[1] += day.count
            bucket[2] += 1
    return [
        WeekdayUsage(
            day=name,
            avg_tokens=totals[index][0] / totals[index][2] if totals[index][2] else 0.0,
            avg_messages=totals[index][1] / totals[index][2] if totals[index][2] else 0.0,
        )
        for index, name in enumerate(WEEKDAYS)
    ]


def model_distribution(
    reports: Sequence[StoredReport],
    pricing: PricingTable = PRICING_TABLE,
) -> List[ModelShare]:
    """Token share and cost per model across all reports, largest first."""
    inputs: Dict[str, int] = {}
    outputs: Dict[str, int] = {}
    for stored in reports:
        for model, tokens in stored.report.by_model:
            inputs[model] = inputs.get(model, 0) + tokens.input
            outputs[model] = outputs.get(model, 0) + tokens.output

    grand_total = sum(inputs.values()) + sum(outputs.values())
    shares = []
    for model in inputs:
        model_tokens = inputs[model] + outputs[model]
        shares.append(ModelShare(
            model=model,
            tokens=model_tokens,
            cost=float(pricing.get_pricing(model).cost(inputs[model], outputs[model])),
            percentage=model_tokens / grand_total * 100 if grand_total else 0.0,
        ))
    return sorted(shares, key=lambda share: share.tokens, reverse=True)

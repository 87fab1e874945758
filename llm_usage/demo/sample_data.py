"""Sample reports for trying the analyzer without local Claude Code logs."""

from typing import List

from ..core.report import DayUsage, ModelTokens, Period, PlanInfo, UsageReport
from ..storage.models import StoredReport
from ..storage.repository import ReportRepository

_DAILY = [
    ("2023-10-01", 5, 18000, 2500),
    ("2023-10-02", 12, 44000, 10500),
    ("2023-10-03", 8, 27000, 5000),
    ("2023-10-04", 2, 6000, 1500),
    ("2023-10-05", 0, 0, 0),
    ("2023-10-06", 15, 56000, 15500),
    ("2023-10-07", 22, 80000, 23500),
    ("2023-10-08", 4, 12000, 4000),
    ("2023-10-09", 10, 35000, 8000),
    ("2023-10-10", 18, 68000, 18000),
    ("2023-10-11", 6, 22000, 6500),
    ("2023-10-12", 9, 31000, 9000),
    ("2023-10-13", 3, 10000, 2500),
    ("2023-10-14", 0, 0, 0),
    ("2023-10-15", 11, 41000, 13500),
]


def build_demo_report() -> UsageReport:
    """A month of moderate Claude Pro usage across three models."""
    return UsageReport(
        provider="anthropic",
        source="demo",
        period=Period(start="2023-10-01T00:00:00.000Z", end="2023-10-31T23:59:59.000Z"),
        plan=PlanInfo(name="Claude Pro", price_usd=20.0, type="subscription"),
        input_tokens=450000,
        output_tokens=120000,
        cached_tokens=850000,
        by_model=(
            ("claude-3-5-sonnet-20240620", ModelTokens(input=300000, output=90000)),
            ("claude-3-opus-20240229", ModelTokens(input=50000, output=10000)),
            ("claude-3-haiku-20240307", ModelTokens(input=100000, output=20000)),
        ),
        message_count=sum(row[1] for row in _DAILY),
        by_day=tuple(DayUsage(date=d, count=c, input=i, output=o) for d, c, i, o in _DAILY),
        session_count=24,
    )


def seed_demo_history(repository: ReportRepository) -> List[StoredReport]:
    """Save the demo report unless an identical period is already stored."""
    report = build_demo_report()
    if repository.find_duplicate(report) is not None:
        return []
    return [repository.save_report(report, name="Demo - Oct 2023")]

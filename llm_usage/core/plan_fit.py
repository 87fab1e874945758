"""
Plan-fit classification.

Claude subscription tiers cap usage by the number of messages per day, not
by tokens, so plan fit is judged from the daily message counts alone.

Recommendation rules, first match wins:
1. Any day over the mid-tier limit -> high tier
2. Peak at or above the near-limit share of the mid-tier limit -> mid tier
3. Any day over the low-tier limit -> mid tier
4. Peak at or above the near-limit share of the low-tier limit -> mid tier
5. Otherwise -> low tier
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .report import DayUsage


@dataclass(frozen=True)
class PlanDefinition:
    """A subscription tier with a daily message ceiling."""
    name: str
    price_per_month: float
    messages_per_day_limit: int

    def __post_init__(self):
        """Validate plan values."""
        if not self.name:
            raise ValueError("plan name cannot be empty")
        if self.price_per_month < 0:
            raise ValueError("price_per_month cannot be negative")
        if self.messages_per_day_limit <= 0:
            raise ValueError("messages_per_day_limit must be > 0")


DEFAULT_PLANS = (
    PlanDefinition(name="Claude Pro", price_per_month=20.0, messages_per_day_limit=100),
    PlanDefinition(name="Claude Max 5x", price_per_month=100.0, messages_per_day_limit=500),
    PlanDefinition(name="Claude Max 20x", price_per_month=200.0, messages_per_day_limit=2000),
)


@dataclass(frozen=True)
class PlanFitThresholds:
    """Product constants for the recommendation, overridable from config."""
    near_limit_ratio: float = 0.8
    high_confidence_days: int = 30
    medium_confidence_days: int = 14

    def __post_init__(self):
        """Validate threshold values."""
        if not 0 < self.near_limit_ratio <= 1:
            raise ValueError("near_limit_ratio must be in (0, 1]")
        if self.medium_confidence_days < 1:
            raise ValueError("medium_confidence_days must be >= 1")
        if self.high_confidence_days < self.medium_confidence_days:
            raise ValueError("high_confidence_days must be >= medium_confidence_days")


DEFAULT_THRESHOLDS = PlanFitThresholds()


class Confidence(Enum):
    """How much history backs a recommendation."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class DayClassification:
    date: str
    count: int
    over_limit: Dict[str, bool]


@dataclass(frozen=True)
class PlanFitResult:
    """Outcome of fitting daily usage against the plan tiers."""
    current_plan: str
    recommendation: str
    recommended_price: float
    recommendation_reason: str
    confidence: Confidence
    total_days: int
    peak_day: Optional[DayClassification]
    days_over: Dict[str, int]
    daily_usage: List[DayClassification]
    savings: float
    low_plan: str
    mid_plan: str
    high_plan: str

    @property
    def peak_count(self) -> int:
        return self.peak_day.count if self.peak_day else 0

    @property
    def days_over_low(self) -> int:
        return self.days_over[self.low_plan]

    @property
    def days_over_mid(self) -> int:
        return self.days_over[self.mid_plan]


def confidence_for(total_days: int, thresholds: PlanFitThresholds = DEFAULT_THRESHOLDS) -> Confidence:
    """Confidence from the number of distinct days of data."""
    if total_days >= thresholds.high_confidence_days:
        return Confidence.HIGH
    if total_days >= thresholds.medium_confidence_days:
        return Confidence.MEDIUM
    return Confidence.LOW


def find_peak_day(days: Sequence[DayClassification]) -> Optional[DayClassification]:
    """Day with the highest message count; the earliest wins a tie."""
    peak = None
    for day in days:
        if peak is None or day.count > peak.count:
            peak = day
    return peak


def _order_tiers(plans: Sequence[PlanDefinition]):
    if len(plans) != 3:
        raise ValueError(f"Plan-fit analysis needs exactly 3 plan tiers, got {len(plans)}")
    tiers = sorted(plans, key=lambda plan: plan.messages_per_day_limit)
    if len({plan.name for plan in tiers}) != 3:
        raise ValueError("Plan tier names must be unique")
    return tiers


def _plural(count: int) -> str:
    return "day" if count == 1 else "days"


def analyze_plan_fit(
    by_day: Sequence[DayUsage],
    current_plan: str,
    plans: Sequence[PlanDefinition] = DEFAULT_PLANS,
    thresholds: PlanFitThresholds = DEFAULT_THRESHOLDS,
) -> PlanFitResult:
    """Classify daily message counts against the plan tiers.

    Args:
        by_day: Daily usage in chronological order
        current_plan: Name of the plan the user pays for
        plans: Exactly three tiers; order does not matter
        thresholds: Near-limit ratio and confidence day counts

    Returns:
        PlanFitResult with the recommended tier, reason and confidence

    Raises:
        ValueError: If the tiers are malformed or current_plan is not one of them
    """
    low, mid, high = _order_tiers(plans)
    by_name = {plan.name: plan for plan in (low, mid, high)}
    if current_plan not in by_name:
        raise ValueError(f"Unknown plan '{current_plan}', expected one of: {list(by_name)}")

    daily = [
        DayClassification(
            date=day.date,
            count=day.count,
            over_limit={plan.name: day.count > plan.messages_per_day_limit for plan in (low, mid, high)},
        )
        for day in by_day
    ]
    days_over = {
        plan.name: sum(1 for day in daily if day.over_limit[plan.name])
        for plan in (low, mid, high)
    }
    peak = find_peak_day(daily)
    peak_count = peak.count if peak else 0
    ratio = thresholds.near_limit_ratio

    if days_over[mid.name] > 0:
        recommended = high
        count = days_over[mid.name]
        reason = (
            f"{count} {_plural(count)} exceeded the {mid.name} limit of "
            f"{mid.messages_per_day_limit} messages/day"
        )
    elif peak_count >= mid.messages_per_day_limit * ratio:
        recommended = mid
        reason = (
            f"Peak of {peak_count} messages/day is near the {mid.name} limit of "
            f"{mid.messages_per_day_limit}; staying on {mid.name} keeps you safe"
        )
    elif days_over[low.name] > 0:
        recommended = mid
        count = days_over[low.name]
        reason = (
            f"{count} {_plural(count)} exceeded the {low.name} limit of "
            f"{low.messages_per_day_limit} messages/day"
        )
    elif peak_count >= low.messages_per_day_limit * ratio:
        recommended = mid
        reason = (
            f"Peak of {peak_count} messages/day is approaching the {low.name} limit of "
            f"{low.messages_per_day_limit}"
        )
    else:
        recommended = low
        reason = (
            f"Peak of {peak_count} messages/day is comfortably within the {low.name} limit of "
            f"{low.messages_per_day_limit}"
        )

    current = by_name[current_plan]
    return PlanFitResult(
        current_plan=current.name,
        recommendation=recommended.name,
        recommended_price=recommended.price_per_month,
        recommendation_reason=reason,
        confidence=confidence_for(len(daily), thresholds),
        total_days=len(daily),
        peak_day=peak,
        days_over=days_over,
        daily_usage=daily,
        savings=max(0.0, current.price_per_month - recommended.price_per_month),
        low_plan=low.name,
        mid_plan=mid.name,
        high_plan=high.name,
    )

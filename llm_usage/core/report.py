"""
Canonical usage report.

The UsageReport is the interchange structure shared by the CLI, the local
HTTP server and the web dashboard. `to_dict()` reproduces the JSON field
names and nesting exactly; `report_from_dict()` is the strict inverse.
"""

import json
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..common.errors import ReportFormatError
from .parser import parse_timestamp

PROVIDERS = ("anthropic", "openai", "google", "xai", "other")
SOURCES = ("local_agent", "browser_extension", "api", "manual_upload", "demo", "manual_entry")
PLAN_TYPES = ("subscription", "payg")


def format_timestamp(value: datetime) -> str:
    """Format a datetime as a UTC ISO string with millisecond precision."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class ModelTokens:
    """Input/output token sums for one model."""
    input: int = 0
    output: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output


@dataclass(frozen=True)
class DayUsage:
    """Message and token totals for one UTC calendar day."""
    date: str
    count: int = 0
    input: int = 0
    output: int = 0


@dataclass(frozen=True)
class Period:
    start: str
    end: str

    @property
    def start_datetime(self) -> datetime:
        return _require_timestamp(self.start, "period.start")

    @property
    def end_datetime(self) -> datetime:
        return _require_timestamp(self.end, "period.end")


@dataclass(frozen=True)
class PlanInfo:
    """The subscription the user is on, supplied by the caller."""
    name: str = "Claude Pro"
    price_usd: float = 20.0
    type: str = "subscription"


@dataclass(frozen=True)
class UsageReport:
    """Immutable aggregate of usage over a period."""
    provider: str
    source: str
    period: Period
    plan: PlanInfo
    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: int = 0
    by_model: Tuple[Tuple[str, ModelTokens], ...] = ()
    message_count: int = 0
    by_day: Tuple[DayUsage, ...] = ()
    session_count: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def models(self) -> Dict[str, ModelTokens]:
        """by_model as a mapping, in first-seen order."""
        return dict(self.by_model)

    def to_dict(self) -> Dict[str, Any]:
        """Canonical JSON-compatible representation."""
        return {
            "provider": self.provider,
            "source": self.source,
            "period": {"start": self.period.start, "end": self.period.end},
            "plan": {
                "name": self.plan.name,
                "price_usd": self.plan.price_usd,
                "type": self.plan.type,
            },
            "usage": {
                "tokens": {
                    "input": self.input_tokens,
                    "output": self.output_tokens,
                    "cached": self.cached_tokens,
                    "by_model": {
                        model: {"input": tokens.input, "output": tokens.output}
                        for model, tokens in self.by_model
                    },
                },
                "messages": {
                    "count": self.message_count,
                    "by_day": [
                        {"date": day.date, "count": day.count, "input": day.input, "output": day.output}
                        for day in self.by_day
                    ],
                },
                "sessions": {"count": self.session_count},
            },
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize deterministically: the same report always yields the same text."""
        return json.dumps(self.to_dict(), indent=indent)


def _require_timestamp(value: str, path: str) -> datetime:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ReportFormatError(f"'{path}' is not an ISO-8601 timestamp: {value!r}")
    return parsed


def _require_mapping(data: Any, path: str) -> Mapping[str, Any]:
    if not isinstance(data, dict):
        raise ReportFormatError(f"'{path}' must be an object")
    return data


def _require_int(data: Mapping[str, Any], key: str, path: str, default: Any = None) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ReportFormatError(f"'{path}.{key}' must be a number")
    if not math.isfinite(value):
        raise ReportFormatError(f"'{path}.{key}' must be a finite number")
    if value < 0:
        raise ReportFormatError(f"'{path}.{key}' cannot be negative")
    return int(value)


def _require_str(data: Mapping[str, Any], key: str, path: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ReportFormatError(f"'{path}.{key}' must be a string")
    return value


def report_from_dict(data: Any) -> UsageReport:
    """Decode a canonical report document.

    Validation is strict: a document that does not match the canonical
    shape is rejected outright rather than partially recovered.

    Raises:
        ReportFormatError: If any required field is missing or malformed
    """
    root = _require_mapping(data, "report")

    provider = _require_str(root, "provider", "report")
    if provider not in PROVIDERS:
        raise ReportFormatError(f"'report.provider' must be one of: {list(PROVIDERS)}")
    source = _require_str(root, "source", "report")
    if source not in SOURCES:
        raise ReportFormatError(f"'report.source' must be one of: {list(SOURCES)}")

    period_data = _require_mapping(root.get("period"), "report.period")
    period = Period(
        start=_require_str(period_data, "start", "report.period"),
        end=_require_str(period_data, "end", "report.period"),
    )
    if period.start_datetime > period.end_datetime:
        raise ReportFormatError("'report.period.start' must not be after 'report.period.end'")

    plan_data = _require_mapping(root.get("plan"), "report.plan")
    plan_type = _require_str(plan_data, "type", "report.plan")
    if plan_type not in PLAN_TYPES:
        raise ReportFormatError(f"'report.plan.type' must be one of: {list(PLAN_TYPES)}")
    price = plan_data.get("price_usd")
    if (
        isinstance(price, bool)
        or not isinstance(price, (int, float))
        or not math.isfinite(price)
        or price < 0
    ):
        raise ReportFormatError("'report.plan.price_usd' must be a finite non-negative number")
    plan = PlanInfo(name=_require_str(plan_data, "name", "report.plan"), price_usd=float(price), type=plan_type)

    usage = _require_mapping(root.get("usage"), "report.usage")
    tokens = _require_mapping(usage.get("tokens"), "report.usage.tokens")
    by_model_data = _require_mapping(tokens.get("by_model", {}), "report.usage.tokens.by_model")
    by_model: List[Tuple[str, ModelTokens]] = []
    for model, model_data in by_model_data.items():
        path = f"report.usage.tokens.by_model.{model}"
        model_data = _require_mapping(model_data, path)
        by_model.append((model, ModelTokens(
            input=_require_int(model_data, "input", path),
            output=_require_int(model_data, "output", path),
        )))

    messages = _require_mapping(usage.get("messages"), "report.usage.messages")
    by_day_data = messages.get("by_day", [])
    if not isinstance(by_day_data, list):
        raise ReportFormatError("'report.usage.messages.by_day' must be an array")
    by_day: List[DayUsage] = []
    for index, day_data in enumerate(by_day_data):
        path = f"report.usage.messages.by_day[{index}]"
        day_data = _require_mapping(day_data, path)
        day_key = _require_str(day_data, "date", path)
        try:
            date.fromisoformat(day_key)
        except ValueError:
            raise ReportFormatError(f"'{path}.date' must be YYYY-MM-DD, got {day_key!r}")
        by_day.append(DayUsage(
            date=day_key,
            count=_require_int(day_data, "count", path),
            input=_require_int(day_data, "input", path, 0),
            output=_require_int(day_data, "output", path, 0),
        ))
    by_day.sort(key=lambda day: day.date)

    sessions = _require_mapping(usage.get("sessions"), "report.usage.sessions")

    return UsageReport(
        provider=provider,
        source=source,
        period=period,
        plan=plan,
        input_tokens=_require_int(tokens, "input", "report.usage.tokens"),
        output_tokens=_require_int(tokens, "output", "report.usage.tokens"),
        cached_tokens=_require_int(tokens, "cached", "report.usage.tokens", 0),
        by_model=tuple(by_model),
        message_count=_require_int(messages, "count", "report.usage.messages"),
        by_day=tuple(by_day),
        session_count=_require_int(sessions, "count", "report.usage.sessions"),
    )


def empty_report(
    now: datetime,
    provider: str = "anthropic",
    source: str = "local_agent",
    plan: Optional[PlanInfo] = None,
) -> UsageReport:
    """All-zero report whose period collapses to the instant `now`."""
    stamp = format_timestamp(now)
    return UsageReport(
        provider=provider,
        source=source,
        period=Period(start=stamp, end=stamp),
        plan=plan or PlanInfo(),
    )

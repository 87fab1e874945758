"""
Report import.

Decodes an uploaded or previously written JSON document into a UsageReport.
Two shapes are accepted, tried strictly in order:

A. The canonical report produced by `scan`
B. An OpenAI organization usage export: {"object": "list", "data": [bucket, ...]}

A document matching neither is rejected; fields are never guessed.
"""

import json
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from ..common.errors import ReportFormatError
from .parser import UNKNOWN_MODEL
from .report import DayUsage, ModelTokens, Period, PlanInfo, UsageReport, format_timestamp, report_from_dict

OPENAI_PLAN = PlanInfo(name="OpenAI API", price_usd=0.0, type="payg")

# the export has no conversations; roughly one session per ten requests
MESSAGES_PER_SESSION = 10


def _bucket_int(bucket: Mapping[str, Any], key: str, index: int, required: bool = True) -> int:
    value = bucket.get(key)
    if value is None and not required:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0:
        raise ReportFormatError(f"data[{index}].{key} must be a finite non-negative number")
    return int(value)


def _bucket_time(bucket: Mapping[str, Any], key: str, index: int) -> datetime:
    seconds = _bucket_int(bucket, key, index)
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        raise ReportFormatError(f"data[{index}].{key} is out of range")


def report_from_openai_export(data: Any) -> UsageReport:
    """Transform an OpenAI usage export into a canonical report.

    Every bucket must carry `start_time`/`end_time` (unix seconds); token and
    request counts land on the UTC date of the bucket start.

    Raises:
        ReportFormatError: If the document is not a usage export
    """
    if not isinstance(data, dict) or data.get("object") != "list":
        raise ReportFormatError("Not an OpenAI usage export: expected object 'list'")
    buckets = data.get("data")
    if not isinstance(buckets, list) or not buckets:
        raise ReportFormatError("OpenAI usage export has no 'data' buckets")

    input_total = output_total = cached_total = requests_total = 0
    by_model: Dict[str, List[int]] = {}
    by_day: Dict[str, List[int]] = {}
    starts: List[datetime] = []
    ends: List[datetime] = []

    for index, bucket in enumerate(buckets):
        if not isinstance(bucket, dict):
            raise ReportFormatError(f"data[{index}] must be an object")
        input_tokens = _bucket_int(bucket, "input_tokens", index)
        output_tokens = _bucket_int(bucket, "output_tokens", index)
        requests = _bucket_int(bucket, "num_model_requests", index)
        cached = _bucket_int(bucket, "input_cached_tokens", index, required=False)
        start = _bucket_time(bucket, "start_time", index)
        end = _bucket_time(bucket, "end_time", index)
        if start > end:
            raise ReportFormatError(f"data[{index}] start_time is after end_time")
        model = bucket.get("model") or UNKNOWN_MODEL
        if not isinstance(model, str):
            raise ReportFormatError(f"data[{index}].model must be a string")

        input_total += input_tokens
        output_total += output_tokens
        cached_total += cached
        requests_total += requests
        starts.append(start)
        ends.append(end)

        model_totals = by_model.setdefault(model, [0, 0])
        model_totals[0] += input_tokens
        model_totals[1] += output_tokens

        day_totals = by_day.setdefault(start.date().isoformat(), [0, 0, 0])
        day_totals[0] += requests
        day_totals[1] += input_tokens
        day_totals[2] += output_tokens

    return UsageReport(
        provider="openai",
        source="api",
        period=Period(start=format_timestamp(min(starts)), end=format_timestamp(max(ends))),
        plan=OPENAI_PLAN,
        input_tokens=input_total,
        output_tokens=output_total,
        cached_tokens=cached_total,
        by_model=tuple((model, ModelTokens(input=v[0], output=v[1])) for model, v in by_model.items()),
        message_count=requests_total,
        by_day=tuple(
            DayUsage(date=key, count=v[0], input=v[1], output=v[2])
            for key, v in sorted(by_day.items())
        ),
        session_count=max(1, round(requests_total / MESSAGES_PER_SESSION)),
    )


def decode_report_document(data: Any) -> UsageReport:
    """Decode a parsed JSON document as a canonical report or an OpenAI export.

    Raises:
        ReportFormatError: If the document matches neither shape
    """
    if isinstance(data, dict) and "usage" in data and "provider" in data:
        return report_from_dict(data)
    if isinstance(data, dict) and data.get("object") == "list":
        return report_from_openai_export(data)
    raise ReportFormatError(
        "Invalid format: expected a usage report (with 'usage' and 'provider') "
        "or an OpenAI usage export"
    )


def load_report_file(path: Union[str, Path]) -> UsageReport:
    """Read and decode a report file.

    Raises:
        ReportFormatError: If the file is missing, is not JSON, or matches no known shape
    """
    report_path = Path(path)
    if not report_path.is_file():
        raise ReportFormatError(f"Report file not found: {report_path}", details={"path": str(report_path)})
    try:
        with open(report_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except ValueError as e:
        raise ReportFormatError(f"Failed to parse report {report_path}: {e}", details={"path": str(report_path)})
    except OSError as e:
        raise ReportFormatError(f"Failed to read report {report_path}: {e}", details={"path": str(report_path)})
    return decode_report_document(data)

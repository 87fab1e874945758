"""
Usage aggregation.

Folds usage events from Claude Code session logs into a canonical
UsageReport. Each session's contribution (token sums, day buckets,
min/max timestamp) is commutative and associative, so sessions may be
folded independently and merged.

Failure semantics:
1. Unusable lines are skipped silently
2. A session that cannot be read is recorded in ScanResult.errors
3. A missing data directory yields an all-zero report plus one error
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Protocol

import structlog

from ..common.errors import DataSourceNotFoundError, ScanCancelled
from .parser import UsageEvent, iter_events
from .report import (
    DayUsage,
    ModelTokens,
    Period,
    PlanInfo,
    UsageReport,
    empty_report,
    format_timestamp,
)

logger = structlog.stdlib.get_logger()

DEFAULT_DATA_DIR = Path.home() / ".claude" / "projects"
SESSION_GLOB = "**/*.jsonl"


class CancelSignal(Protocol):
    def is_set(self) -> bool:
        ...


@dataclass
class _Bucket:
    count: int = 0
    input: int = 0
    output: int = 0


@dataclass
class UsageAccumulator:
    """Running totals for one fold.

    Owned by a single caller; concurrent scans give every session its own
    accumulator and merge them afterwards.
    """
    sessions: int = 0
    messages: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: int = 0
    by_model: Dict[str, _Bucket] = field(default_factory=dict)
    by_day: Dict[str, _Bucket] = field(default_factory=dict)
    earliest: Optional[datetime] = None
    latest: Optional[datetime] = None

    def add_session(self) -> None:
        self.sessions += 1

    def add_event(self, event: UsageEvent) -> None:
        self.messages += 1
        self.input_tokens += event.input_tokens
        self.output_tokens += event.output_tokens
        self.cached_tokens += event.cached_tokens

        model = self._model_bucket(event.model)
        model.input += event.input_tokens
        model.output += event.output_tokens

        if event.timestamp is None:
            return
        self._observe(event.timestamp, event.timestamp)
        day = self._day_bucket(event.day)
        day.count += 1
        day.input += event.input_tokens
        day.output += event.output_tokens

    def merge(self, other: "UsageAccumulator") -> None:
        """Fold another accumulator's contribution into this one."""
        self.sessions += other.sessions
        self.messages += other.messages
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cached_tokens += other.cached_tokens
        for name, bucket in other.by_model.items():
            model = self._model_bucket(name)
            model.input += bucket.input
            model.output += bucket.output
        for date, bucket in other.by_day.items():
            day = self._day_bucket(date)
            day.count += bucket.count
            day.input += bucket.input
            day.output += bucket.output
        if other.earliest is not None:
            self._observe(other.earliest, other.latest)

    def build_report(
        self,
        now: datetime,
        provider: str = "anthropic",
        source: str = "local_agent",
        plan: Optional[PlanInfo] = None,
    ) -> UsageReport:
        """Freeze the totals into a UsageReport.

        With no timestamped events the period collapses to `now`.
        """
        start = format_timestamp(self.earliest or now)
        end = format_timestamp(self.latest or now)
        return UsageReport(
            provider=provider,
            source=source,
            period=Period(start=start, end=end),
            plan=plan or PlanInfo(),
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cached_tokens=self.cached_tokens,
            by_model=tuple(
                (name, ModelTokens(input=bucket.input, output=bucket.output))
                for name, bucket in self.by_model.items()
            ),
            message_count=self.messages,
            by_day=tuple(
                DayUsage(date=date, count=bucket.count, input=bucket.input, output=bucket.output)
                for date, bucket in sorted(self.by_day.items())
            ),
            session_count=self.sessions,
        )

    def _model_bucket(self, name: str) -> _Bucket:
        bucket = self.by_model.get(name)
        if bucket is None:
            bucket = self.by_model[name] = _Bucket()
        return bucket

    def _day_bucket(self, date: str) -> _Bucket:
        bucket = self.by_day.get(date)
        if bucket is None:
            bucket = self.by_day[date] = _Bucket()
        return bucket

    def _observe(self, earliest: datetime, latest: datetime) -> None:
        if self.earliest is None or earliest < self.earliest:
            self.earliest = earliest
        if self.latest is None or latest > self.latest:
            self.latest = latest


def in_window(timestamp: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    """Inclusive window test; a missing bound is unbounded."""
    if start is not None and timestamp < start:
        return False
    if end is not None and timestamp > end:
        return False
    return True


def fold_session(
    lines: Iterable[str],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    accumulator: Optional[UsageAccumulator] = None,
) -> UsageAccumulator:
    """Fold one session's lines into an accumulator.

    The session is counted even when none of its lines are usable.
    Events without a timestamp bypass the window filter.
    """
    acc = accumulator if accumulator is not None else UsageAccumulator()
    acc.add_session()
    for event in iter_events(lines):
        if event.timestamp is not None and not in_window(event.timestamp, start, end):
            continue
        acc.add_event(event)
    return acc


def aggregate_sessions(
    sessions: Iterable[Iterable[str]],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> UsageAccumulator:
    """Fold already-read sessions (each an iterable of lines)."""
    acc = UsageAccumulator()
    for lines in sessions:
        fold_session(lines, start, end, acc)
    return acc


@dataclass(frozen=True)
class ScanError:
    """Non-fatal problem encountered while scanning."""
    message: str
    path: Optional[str] = None

    def __str__(self) -> str:
        if self.path:
            return f"Error reading {self.path}: {self.message}"
        return self.message


@dataclass
class ScanProgress:
    projects_found: int = 0
    files_processed: int = 0
    messages_processed: int = 0


@dataclass(frozen=True)
class ScanResult:
    """A report plus the non-fatal errors collected while building it.

    Callers must check `errors` even when a report is returned.
    """
    report: UsageReport
    errors: List[ScanError]
    progress: ScanProgress

    @property
    def ok(self) -> bool:
        return not self.errors


def require_data_dir(root: Path) -> Path:
    """Return root if it is a directory.

    Raises:
        DataSourceNotFoundError: If root does not exist or is not a directory
    """
    root = Path(root)
    if not root.is_dir():
        raise DataSourceNotFoundError(str(root))
    return root


def find_sessions(root: Path) -> List[Path]:
    """Session files under each project directory, in a stable order."""
    sessions: List[Path] = []
    for project in sorted(p for p in root.iterdir() if p.is_dir()):
        sessions.extend(sorted(project.glob(SESSION_GLOB)))
    return sessions


def _read_session(path: Path, start: Optional[datetime], end: Optional[datetime]):
    acc = UsageAccumulator()
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            fold_session(f, start, end, acc)
    except OSError as e:
        # count the session, drop whatever was read before the failure
        failed = UsageAccumulator()
        failed.add_session()
        return failed, ScanError(message=str(e), path=str(path))
    return acc, None


def scan_usage(
    root: Path = DEFAULT_DATA_DIR,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    *,
    plan: Optional[PlanInfo] = None,
    cancel: Optional[CancelSignal] = None,
    max_workers: int = 1,
    on_progress: Optional[Callable[[ScanProgress], None]] = None,
    now: Optional[datetime] = None,
) -> ScanResult:
    """Scan a Claude Code projects directory and aggregate usage.

    Args:
        root: Directory holding one subdirectory per project
        start: Inclusive lower bound on event timestamps
        end: Inclusive upper bound on event timestamps
        plan: Subscription recorded on the report
        cancel: Checked between sessions; when set the scan raises ScanCancelled
        max_workers: Sessions folded concurrently when greater than 1
        on_progress: Called after every session
        now: Clock used for the degenerate period of an empty scan

    Returns:
        ScanResult whose report is identical for identical inputs,
        regardless of max_workers

    Raises:
        ScanCancelled: If the cancel signal is set mid-scan
    """
    now = now or datetime.now(timezone.utc)
    root = Path(root)
    progress = ScanProgress()
    errors: List[ScanError] = []
    total = UsageAccumulator()

    if not root.is_dir():
        errors.append(ScanError(message=f"Claude projects directory not found: {root}"))
        logger.warning("scan.data_dir_missing", path=str(root))
        return ScanResult(report=empty_report(now, plan=plan), errors=errors, progress=progress)

    try:
        progress.projects_found = sum(1 for p in root.iterdir() if p.is_dir())
        sessions = find_sessions(root)
    except OSError as e:
        errors.append(ScanError(message=f"Error scanning projects: {e}", path=str(root)))
        return ScanResult(report=empty_report(now, plan=plan), errors=errors, progress=progress)

    logger.info("scan.started", path=str(root), sessions=len(sessions), workers=max_workers)

    def _collect(partial: UsageAccumulator, error: Optional[ScanError]) -> None:
        total.merge(partial)
        progress.files_processed += 1
        progress.messages_processed = total.messages
        if error is not None:
            errors.append(error)
            logger.warning("scan.session_failed", path=error.path, error=error.message)
        if on_progress is not None:
            on_progress(progress)

    def _check_cancel() -> None:
        if cancel is not None and cancel.is_set():
            logger.info("scan.cancelled", files_processed=progress.files_processed)
            raise ScanCancelled("Scan cancelled")

    if max_workers <= 1:
        for path in sessions:
            _check_cancel()
            _collect(*_read_session(path, start, end))
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [pool.submit(_read_session, path, start, end) for path in sessions]
            try:
                # merge in session order so by_model keeps first-seen order
                for future in futures:
                    _check_cancel()
                    _collect(*future.result())
            except ScanCancelled:
                for future in futures:
                    future.cancel()
                raise

    report = total.build_report(now, plan=plan)
    logger.info(
        "scan.completed",
        sessions=report.session_count,
        messages=report.message_count,
        errors=len(errors),
    )
    return ScanResult(report=report, errors=errors, progress=progress)


def resolve_window(
    days: Optional[int] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    now: Optional[datetime] = None,
):
    """Turn CLI-style date options into an inclusive UTC window.

    `days` means the trailing N days ending now and takes precedence over
    `start_date`. Dates are YYYY-MM-DD; the end date covers its whole day.

    Raises:
        ValueError: If days is not positive or a date is malformed
    """
    now = now or datetime.now(timezone.utc)
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    if days is not None:
        if days <= 0:
            raise ValueError("days must be > 0")
        start = now - timedelta(days=days)
        end = now
    elif start_date:
        start = datetime.combine(_parse_date(start_date), time.min, tzinfo=timezone.utc)

    if end_date:
        end = datetime.combine(_parse_date(end_date), time.max, tzinfo=timezone.utc)

    if start is not None and end is not None and start > end:
        raise ValueError("start date must not be after end date")
    return start, end


def _parse_date(value: str):
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")

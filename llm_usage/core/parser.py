"""
Log record parsing.

Turns one line of a Claude Code JSONL session log into a UsageEvent.
Session logs are appended to while the agent runs and may be truncated
mid-line, so a bad line is never an error: it is simply not an event.
"""

import json
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Optional

UNKNOWN_MODEL = "unknown"


@dataclass(frozen=True)
class UsageEvent:
    """Token usage of one assistant turn.

    All token counts are non-negative; fields absent from the log default to 0.
    """
    timestamp: Optional[datetime]
    model: str = UNKNOWN_MODEL
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0

    @property
    def cached_tokens(self) -> int:
        """Cache reads plus cache writes."""
        return self.cache_read_tokens + self.cache_creation_tokens

    @property
    def day(self) -> Optional[str]:
        """UTC calendar date of the event as YYYY-MM-DD."""
        if self.timestamp is None:
            return None
        return self.timestamp.astimezone(timezone.utc).date().isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive timestamps are taken to be UTC. Returns None for anything that
    is not a parsable string.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        # offsets at the edges of the calendar overflow when shifted to UTC
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


def _token_count(value: Any) -> int:
    # bool is an int subclass; a flag is not a token count
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return max(0, int(value))


def parse_log_line(line: str) -> Optional[UsageEvent]:
    """Parse a single JSONL line into a usage event.

    Returns None when the line is blank, is not a JSON object, or carries
    no `message.usage` payload (user turns, summaries, tool results).
    Never raises.
    """
    if not line or not line.strip():
        return None

    try:
        entry = json.loads(line)
    except (ValueError, RecursionError):
        return None

    if not isinstance(entry, dict):
        return None

    message = entry.get("message")
    if not isinstance(message, dict):
        return None

    usage = message.get("usage")
    if not isinstance(usage, dict):
        return None

    model = message.get("model")
    if not isinstance(model, str) or not model:
        model = UNKNOWN_MODEL

    return UsageEvent(
        timestamp=parse_timestamp(entry.get("timestamp")),
        model=model,
        input_tokens=_token_count(usage.get("input_tokens")),
        output_tokens=_token_count(usage.get("output_tokens")),
        cache_read_tokens=_token_count(usage.get("cache_read_input_tokens")),
        cache_creation_tokens=_token_count(usage.get("cache_creation_input_tokens")),
    )


def iter_events(lines: Iterable[str]) -> Iterator[UsageEvent]:
    """Yield the usable events from a stream of log lines."""
    for line in lines:
        event = parse_log_line(line)
        if event is not None:
            yield event

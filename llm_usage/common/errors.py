"""
Error types for LLM Usage Analyzer.

Scanning degrades gracefully and reports problems through ScanResult.errors;
the exceptions below are reserved for hard stops.
"""

from typing import Any, Dict, Optional


class LLMUsageError(Exception):
    """Base exception for all analyzer errors."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ReportFormatError(LLMUsageError, ValueError):
    """Raised when a report file or document cannot be decoded."""


class ConfigError(LLMUsageError, ValueError):
    """Raised when a configuration file is structurally invalid."""


class DataSourceNotFoundError(LLMUsageError):
    """Raised by callers that treat a missing log directory as fatal."""

    def __init__(self, path: str):
        super().__init__(f"Usage data directory not found: {path}", details={"path": path})
        self.path = path


class ScanCancelled(LLMUsageError):
    """Raised when a scan is cancelled between sessions."""

"""
Data models for storage layer.

Defines persisted entities and their JSON shape.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..common.errors import ReportFormatError
from ..core.report import UsageReport, report_from_dict


@dataclass(frozen=True)
class StoredReport:
    """A usage report saved to history.

    The report itself is immutable; only the display name may be changed
    later, and that produces a new StoredReport.
    """
    id: str
    report: UsageReport
    saved_at: str  # ISO timestamp
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "report": self.report.to_dict(),
            "savedAt": self.saved_at,
        }
        if self.name is not None:
            data["name"] = self.name
        return data


def stored_report_from_dict(data: Any) -> StoredReport:
    """Decode a stored report from its backup/JSON shape.

    Raises:
        ReportFormatError: If the entry or its embedded report is malformed
    """
    if not isinstance(data, dict):
        raise ReportFormatError("Stored report must be an object")
    report_id = data.get("id")
    saved_at = data.get("savedAt")
    name = data.get("name")
    if not isinstance(report_id, str) or not report_id:
        raise ReportFormatError("Stored report is missing 'id'")
    if not isinstance(saved_at, str) or not saved_at:
        raise ReportFormatError(f"Stored report {report_id} is missing 'savedAt'")
    if name is not None and not isinstance(name, str):
        raise ReportFormatError(f"Stored report {report_id} has a non-string 'name'")
    return StoredReport(
        id=report_id,
        report=report_from_dict(data.get("report")),
        saved_at=saved_at,
        name=name,
    )

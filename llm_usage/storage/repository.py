"""
Repository pattern for report history.

Stores saved UsageReports in SQLite under a synthesized id with a save
timestamp. Reports are immutable once saved; only their display name can
be changed.
"""

import json
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

import structlog

from ..common.errors import ReportFormatError
from ..core.report import UsageReport, format_timestamp, report_from_dict
from .db import get_connection
from .models import StoredReport, stored_report_from_dict

logger = structlog.stdlib.get_logger()

STORAGE_VERSION = 1
MAX_HISTORY_ITEMS = 50
_ID_ALPHABET = string.digits + string.ascii_lowercase


@dataclass(frozen=True)
class ImportResult:
    success: bool
    imported: int
    error: Optional[str] = None


def generate_id(now: datetime) -> str:
    """Millisecond timestamp plus a short random base36 suffix."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"{int(now.timestamp() * 1000)}-{suffix}"


def generate_report_name(report: UsageReport) -> str:
    """Descriptive default name, e.g. "Anthropic - Jan 2024"."""
    provider = report.provider[:1].upper() + report.provider[1:]
    return f"{provider} - {report.period.start_datetime.strftime('%b %Y')}"


class ReportRepository:
    """Repository for saving and retrieving usage report history.

    History is capped at MAX_HISTORY_ITEMS; saving beyond the cap drops
    the oldest entries.
    """

    def __init__(self, db_path: Union[str, Path]):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self.initialize_schema()

    def initialize_schema(self) -> None:
        """Create the stored_report table if it doesn't exist."""
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS stored_report (
                    id TEXT PRIMARY KEY,
                    saved_at TEXT NOT NULL,
                    name TEXT,
                    provider TEXT NOT NULL,
                    period_start TEXT NOT NULL,
                    period_end TEXT NOT NULL,
                    report_json TEXT NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def save_report(
        self,
        report: UsageReport,
        name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> StoredReport:
        """Save a report to history and return the stored entry."""
        now = now or datetime.now(timezone.utc)
        stored = StoredReport(
            id=generate_id(now),
            report=report,
            saved_at=format_timestamp(now),
            name=name or generate_report_name(report),
        )
        conn = get_connection(self.db_path)
        try:
            self._insert(conn, stored)
            self._trim(conn)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        logger.info("history.saved", id=stored.id, name=stored.name)
        return stored

    def list_reports(self) -> List[StoredReport]:
        """All saved reports, most recently saved first."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT id, saved_at, name, report_json FROM stored_report "
                "ORDER BY saved_at DESC, rowid DESC"
            )
            return [self._row_to_stored(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_report(self, report_id: str) -> Optional[StoredReport]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT id, saved_at, name, report_json FROM stored_report WHERE id = ?",
                (report_id,),
            )
            row = cursor.fetchone()
            return self._row_to_stored(row) if row else None
        finally:
            conn.close()

    def delete_report(self, report_id: str) -> bool:
        """Delete a report; returns False if no such id exists."""
        return self._execute("DELETE FROM stored_report WHERE id = ?", (report_id,)) > 0

    def rename_report(self, report_id: str, name: str) -> bool:
        """Change a report's display name; returns False if no such id exists."""
        return self._execute("UPDATE stored_report SET name = ? WHERE id = ?", (name, report_id)) > 0

    def clear_history(self) -> None:
        self._execute("DELETE FROM stored_report", ())

    def find_duplicate(self, report: UsageReport) -> Optional[StoredReport]:
        """A saved report with the same provider and period, if any."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT id, saved_at, name, report_json FROM stored_report "
                "WHERE provider = ? AND period_start = ? AND period_end = ? "
                "ORDER BY saved_at DESC LIMIT 1",
                (report.provider, report.period.start, report.period.end),
            )
            row = cursor.fetchone()
            return self._row_to_stored(row) if row else None
        finally:
            conn.close()

    def export_all(self, now: Optional[datetime] = None) -> str:
        """Serialize the whole history as a JSON backup document."""
        now = now or datetime.now(timezone.utc)
        return json.dumps({
            "version": STORAGE_VERSION,
            "exportedAt": format_timestamp(now),
            "history": [stored.to_dict() for stored in self.list_reports()],
        }, indent=2)

    def import_all(self, json_data: str) -> ImportResult:
        """Merge a JSON backup into history.

        Entries whose id already exists are skipped. After merging, only
        the newest MAX_HISTORY_ITEMS entries are kept.
        """
        try:
            data = json.loads(json_data)
        except ValueError:
            return ImportResult(success=False, imported=0, error="Failed to parse backup file")
        if not isinstance(data, dict) or not isinstance(data.get("history"), list):
            return ImportResult(success=False, imported=0, error="Invalid backup format")

        try:
            entries = [stored_report_from_dict(entry) for entry in data["history"]]
        except ReportFormatError as e:
            return ImportResult(success=False, imported=0, error=f"Invalid backup entry: {e}")

        conn = get_connection(self.db_path)
        imported = 0
        try:
            existing = {row[0] for row in conn.execute("SELECT id FROM stored_report")}
            for stored in entries:
                if stored.id in existing:
                    continue
                self._insert(conn, stored)
                existing.add(stored.id)
                imported += 1
            self._trim(conn)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

        logger.info("history.imported", imported=imported)
        return ImportResult(success=True, imported=imported)

    def _execute(self, query: str, params: tuple) -> int:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(query, params)
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    @staticmethod
    def _insert(conn, stored: StoredReport) -> None:
        conn.execute("""
            INSERT INTO stored_report
            (id, saved_at, name, provider, period_start, period_end, report_json)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            stored.id,
            stored.saved_at,
            stored.name,
            stored.report.provider,
            stored.report.period.start,
            stored.report.period.end,
            json.dumps(stored.report.to_dict()),
        ))

    @staticmethod
    def _trim(conn) -> None:
        conn.execute("""
            DELETE FROM stored_report WHERE id NOT IN (
                SELECT id FROM stored_report ORDER BY saved_at DESC, rowid DESC LIMIT ?
            )
        """, (MAX_HISTORY_ITEMS,))

    @staticmethod
    def _row_to_stored(row) -> StoredReport:
        return StoredReport(
            id=row[0],
            saved_at=row[1],
            name=row[2],
            report=report_from_dict(json.loads(row[3])),
        )

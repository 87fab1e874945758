"""
Database connection management.

Provides SQLite connection for report history persistence.
"""

import sqlite3
from pathlib import Path
from typing import Union


def get_connection(db_path: Union[str, Path]) -> sqlite3.Connection:
    """Create and return a SQLite connection, creating the parent directory.

    Args:
        db_path: Path to SQLite database file, or ":memory:"

    Returns:
        SQLite connection
    """
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(db_path))

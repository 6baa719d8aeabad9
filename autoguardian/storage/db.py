"""
SQLite connections for the AutoGuardian store.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "autoguardian.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Open a connection to the store at ``db_path``.

    The parent directory is created if missing. Rows are ``sqlite3.Row``
    so columns can be read by name, and profile references on the usage
    tables are enforced.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Open connection; callers close it when done
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn

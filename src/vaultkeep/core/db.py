# Core Module - SQLite Connection Helper
#
# Every vaultkeep SQLite database opens its connections through `connect()`
# instead of raw `sqlite3.connect()`. This ensures:
#
#   - WAL journal mode (concurrent readers + one writer)
#   - busy_timeout to avoid SQLITE_BUSY when several handlers write at once
#
# The key-value store runs its queries on worker threads, so connections are
# opened per call and never shared between threads.

import sqlite3
from pathlib import Path
from typing import Union


def connect(
    db_path: Union[str, Path],
    *,
    row_factory: bool = False,
    busy_timeout_ms: int = 5000,
) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode and safe PRAGMAs.

    Args:
        db_path: Path to the database file.
        row_factory: If True, set conn.row_factory = sqlite3.Row.
        busy_timeout_ms: How long a writer waits for a competing lock.

    Returns:
        sqlite3.Connection with WAL mode and busy_timeout applied.
    """
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn

# Storage Module - Key-Value Store Backends
#
# SqliteKeyValueStore follows the user-preferences pattern: one table,
# upsert on write, fresh WAL connection per call (core.db helper). Queries
# run on a worker thread via asyncio.to_thread so the event loop never
# blocks on disk.
#
# MemoryKeyValueStore is the test / single-process backend. It yields to
# the event loop on every call so concurrent handlers interleave the way
# they would against a network store.

import asyncio
import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union

from ..core.db import connect as db_connect
from ..core.errors import UpstreamError
from .base import KeyValueStore

logger = logging.getLogger(__name__)


class SqliteKeyValueStore(KeyValueStore):
    """SQLite-backed key-value store.

    Args:
        db_path: Path to SQLite file. Parent directories are created.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self):
        with closing(db_connect(self.db_path)) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def _connect(self) -> sqlite3.Connection:
        return db_connect(self.db_path, row_factory=True)

    # ------------------------------------------------------------------
    # Blocking primitives (run on a worker thread)
    # ------------------------------------------------------------------

    def _get_sync(self, key: str) -> Optional[str]:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return None if row is None else row["value"]

    def _put_sync(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with closing(self._connect()) as conn:
            conn.execute(
                """INSERT INTO kv (key, value, updated_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value,
                       updated_at = excluded.updated_at""",
                (key, value, now),
            )
            conn.commit()

    def _add_sync(self, key: str, value: str) -> bool:
        now = datetime.now(timezone.utc).isoformat()
        with closing(self._connect()) as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, now),
            )
            conn.commit()
            return cur.rowcount > 0

    def _delete_sync(self, key: str) -> None:
        with closing(self._connect()) as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()

    async def _run(self, op: str, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            logger.error("KV %s failed for key=%s: %s", op, args[0], exc)
            raise UpstreamError("Key-value store unavailable") from exc

    # ------------------------------------------------------------------
    # KeyValueStore interface
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        return await self._run("get", self._get_sync, key)

    async def put(self, key: str, value: str) -> None:
        await self._run("put", self._put_sync, key, value)

    async def add(self, key: str, value: str) -> bool:
        return await self._run("add", self._add_sync, key, value)

    async def delete(self, key: str) -> None:
        await self._run("delete", self._delete_sync, key)


class MemoryKeyValueStore(KeyValueStore):
    """In-process dict store. Contents vanish with the process."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        await asyncio.sleep(0)
        return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        await asyncio.sleep(0)
        self._data[key] = value

    async def add(self, key: str, value: str) -> bool:
        await asyncio.sleep(0)
        # No await between the check and the write: atomic on the event loop.
        if key in self._data:
            return False
        self._data[key] = value
        return True

    async def delete(self, key: str) -> None:
        await asyncio.sleep(0)
        self._data.pop(key, None)

    def keys(self):
        """Snapshot of stored keys (tests and diagnostics)."""
        return sorted(self._data)

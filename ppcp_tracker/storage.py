"""SQLite-backed persistence helpers for the PPCP tracker."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional, Union

from .repository import EntryStore

logger = logging.getLogger(__name__)


class SQLiteKeyValueStore:
    """Key-value backend persisting text values inside one SQLite table."""

    def __init__(self, connection: sqlite3.Connection, table: str = "kv_store") -> None:
        self._connection = connection
        self._table = table
        self._connection.execute(
            f"CREATE TABLE IF NOT EXISTS {table} ("  # nosec - static table names
            "key TEXT PRIMARY KEY, value TEXT NOT NULL)"
        )
        self._connection.commit()

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):  # pragma: no cover - defensive
            return False
        cursor = self._connection.execute(
            f"SELECT 1 FROM {self._table} WHERE key = ? LIMIT 1", (key,)
        )
        return cursor.fetchone() is not None

    def get(self, key: str) -> Optional[str]:
        cursor = self._connection.execute(
            f"SELECT value FROM {self._table} WHERE key = ?", (key,)
        )
        row = cursor.fetchone()
        return None if row is None else row[0]

    def set(self, key: str, value: str) -> None:
        # single statement + commit, readers never see a half-written value
        self._connection.execute(
            f"INSERT INTO {self._table} (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )
        self._connection.commit()

    def delete(self, key: str) -> None:
        self._connection.execute(f"DELETE FROM {self._table} WHERE key = ?", (key,))
        self._connection.commit()


class PPCPDatabase:
    """Convenience facade bundling the SQLite connection and the entry store."""

    def __init__(self, path: Union[str, Path]) -> None:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(str(path), check_same_thread=False)
        self._connection = connection
        self.kv = SQLiteKeyValueStore(connection)
        self.entries = EntryStore(self.kv)
        logger.info("Opened PPCP database at %s", path)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "PPCPDatabase":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[BaseException],
    ) -> None:
        self.close()


__all__ = ["SQLiteKeyValueStore", "PPCPDatabase"]

"""SQLite storage driver (default durable persistence).

This module provides a simple SQLite implementation behind the DB-agnostic
storage interface. SQLite is used only as a local, file-backed state store:
one row per key, timestamps stored as RFC3339 UTC text.

Every operation opens its own connection, so the store can be used from any
thread (gate outcomes may be reported from worker threads or event loops).
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from errors import ConfigurationError
from storage.interfaces import TimestampStore
from utils import format_rfc3339, parse_rfc3339

_SCHEMA_VERSION = 1


class SQLiteDatabase:
    def __init__(self, path: Path):
        self.path = path.resolve()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._migrate()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.path), timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _migrate(self) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                  version INTEGER NOT NULL
                );
                """
            )
            row = conn.execute("SELECT version FROM schema_version LIMIT 1;").fetchone()
            if row is None:
                conn.execute("INSERT INTO schema_version(version) VALUES (?);", (_SCHEMA_VERSION,))
                version = _SCHEMA_VERSION
            else:
                version = int(row["version"])

            if version != _SCHEMA_VERSION:
                raise ConfigurationError(f"Unsupported SQLite schema_version: {version}")

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS timestamps (
                  key TEXT PRIMARY KEY,
                  ts TEXT NOT NULL
                );
                """
            )


class SQLiteTimestampStore(TimestampStore):
    def __init__(self, db: SQLiteDatabase):
        self._db = db

    @classmethod
    def open(cls, sqlite_path: Path) -> "SQLiteTimestampStore":
        return cls(SQLiteDatabase(sqlite_path))

    def get(self, key: str) -> datetime | None:
        with self._db.connect() as conn:
            row = conn.execute("SELECT ts FROM timestamps WHERE key = ?;", (key,)).fetchone()
            if row is None:
                return None
            return parse_rfc3339(str(row["ts"]))

    def set(self, key: str, value: datetime) -> None:
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO timestamps(key, ts) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET ts = excluded.ts;
                """,
                (key, format_rfc3339(value)),
            )

    def delete(self, key: str) -> None:
        with self._db.connect() as conn:
            conn.execute("DELETE FROM timestamps WHERE key = ?;", (key,))

    def all_keys(self) -> set[str]:
        with self._db.connect() as conn:
            rows = conn.execute("SELECT key FROM timestamps;").fetchall()
            return {str(r["key"]) for r in rows}

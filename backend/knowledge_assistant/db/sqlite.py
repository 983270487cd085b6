"""SQLite management utilities."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

DEFAULT_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA foreign_keys=ON;",
    "PRAGMA temp_store=MEMORY;",
)


class SQLiteDatabase:
    """Thin wrapper around sqlite3 shared by the API threads and the index worker.

    A single connection is opened with ``check_same_thread=False``; every call
    goes through a re-entrant lock, and ``transaction()`` holds that lock for
    the whole unit of work so multi-statement writes are never interleaved.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path.expanduser()
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def connect(self) -> sqlite3.Connection:
        with self._lock:
            if self._connection is None:
                if str(self.db_path) != ":memory:":
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
                self._connection.row_factory = sqlite3.Row
                for pragma in DEFAULT_PRAGMAS:
                    self._connection.execute(pragma)
            return self._connection

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    def __enter__(self) -> "SQLiteDatabase":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        self.close()

    def commit(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.commit()

    def rollback(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.rollback()

    def executescript(self, script: str) -> None:
        with self._lock:
            self.connect().executescript(script)

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Cursor:
        with self._lock:
            return self.connect().execute(sql, params or [])

    def executemany(self, sql: str, seq_of_params: Iterable[Sequence[Any]]) -> sqlite3.Cursor:
        with self._lock:
            return self.connect().executemany(sql, seq_of_params)

    def query(self, sql: str, params: Sequence[Any] | None = None) -> list[sqlite3.Row]:
        with self._lock:
            return self.execute(sql, params).fetchall()

    def query_one(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Row | None:
        with self._lock:
            return self.execute(sql, params).fetchone()

    @contextmanager
    def transaction(self) -> Iterator["SQLiteDatabase"]:
        """Run the enclosed statements atomically; commit on success, roll back on error."""
        with self._lock:
            conn = self.connect()
            try:
                yield self
                conn.commit()
            except BaseException:
                conn.rollback()
                raise

    def ensure_schema(self, schema_sql: str | None = None) -> None:
        if schema_sql is None:
            schema_path = Path(__file__).with_name("schema.sql")
            schema_sql = schema_path.read_text(encoding="utf-8")
        self.executescript(schema_sql)


__all__ = ["SQLiteDatabase"]

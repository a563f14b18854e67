"""SQLite-backed store with WAL mode and version-tracked migrations.

Each thread gets its own connection via thread-local storage. Write
transactions take ``BEGIN IMMEDIATE`` so concurrent writers (threads or
processes) are serialized by SQLite itself, and every row carries a
version column checked on update.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from disclosure_governance.errors import StorageUnavailableError
from disclosure_governance.storage.base import Record, check_version

logger = logging.getLogger(__name__)

MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER NOT NULL
        );
        INSERT INTO schema_version (version) VALUES (0);

        CREATE TABLE IF NOT EXISTS entities (
            collection TEXT NOT NULL,
            key        TEXT NOT NULL,
            data       TEXT NOT NULL,
            version    INTEGER NOT NULL,
            PRIMARY KEY (collection, key)
        );

        CREATE TABLE IF NOT EXISTS log_entries (
            seq        INTEGER PRIMARY KEY AUTOINCREMENT,
            collection TEXT NOT NULL,
            data       TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_log_entries_collection
            ON log_entries(collection, seq);
        """,
    ),
]


def _dumps(data: dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True)


class _SQLiteTransaction:
    """A unit of work bound to one connection inside BEGIN IMMEDIATE."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get(self, collection: str, key: str) -> Record | None:
        row = self._conn.execute(
            "SELECT key, data, version FROM entities WHERE collection = ? AND key = ?",
            (collection, key),
        ).fetchone()
        return _to_record(row)

    def list(self, collection: str) -> list[Record]:
        rows = self._conn.execute(
            "SELECT key, data, version FROM entities WHERE collection = ? ORDER BY key",
            (collection,),
        ).fetchall()
        return [Record(key=r["key"], data=json.loads(r["data"]), version=r["version"]) for r in rows]

    def put(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
        expected_version: int,
    ) -> int:
        current = self.get(collection, key)
        check_version(collection, key, expected_version, current.version if current else None)
        version = expected_version + 1
        if current is None:
            self._conn.execute(
                "INSERT INTO entities (collection, key, data, version) VALUES (?, ?, ?, ?)",
                (collection, key, _dumps(data), version),
            )
        else:
            self._conn.execute(
                "UPDATE entities SET data = ?, version = ? "
                "WHERE collection = ? AND key = ? AND version = ?",
                (_dumps(data), version, collection, key, expected_version),
            )
        return version

    def delete(self, collection: str, key: str, expected_version: int) -> None:
        current = self.get(collection, key)
        check_version(collection, key, expected_version, current.version if current else None)
        self._conn.execute(
            "DELETE FROM entities WHERE collection = ? AND key = ?",
            (collection, key),
        )

    def append(self, collection: str, data: dict[str, Any]) -> None:
        self._conn.execute(
            "INSERT INTO log_entries (collection, data) VALUES (?, ?)",
            (collection, _dumps(data)),
        )

    def tail(self, collection: str) -> dict[str, Any] | None:
        row = self._conn.execute(
            "SELECT data FROM log_entries WHERE collection = ? ORDER BY seq DESC LIMIT 1",
            (collection,),
        ).fetchone()
        return json.loads(row["data"]) if row else None


def _to_record(row: sqlite3.Row | None) -> Record | None:
    if row is None:
        return None
    return Record(key=row["key"], data=json.loads(row["data"]), version=row["version"])


class SQLiteStore:
    """Thread-safe SQLite store.

    Uses WAL mode for concurrent readers and a threading lock for writes.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._local = threading.local()
        self._write_lock = threading.Lock()
        self.migrate()

    @property
    def path(self) -> str:
        return self._db_path

    def _get_conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            try:
                conn = sqlite3.connect(
                    self._db_path, check_same_thread=False, isolation_level=None,
                )
                conn.execute("PRAGMA journal_mode=WAL")
            except sqlite3.Error as exc:
                raise StorageUnavailableError(
                    f"Cannot open database {self._db_path}: {exc}"
                ) from exc
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
        return conn

    def schema_version(self) -> int:
        """Return the current schema version, or 0 if uninitialized."""
        try:
            row = self._get_conn().execute("SELECT version FROM schema_version").fetchone()
        except sqlite3.OperationalError:
            return 0
        return int(row["version"]) if row else 0

    def migrate(self) -> int:
        """Apply pending migrations. Returns the final schema version."""
        current = self.schema_version()
        with self._write_lock:
            conn = self._get_conn()
            for version, sql in MIGRATIONS:
                if version <= current:
                    continue
                try:
                    conn.executescript(sql)
                    conn.execute("UPDATE schema_version SET version = ?", (version,))
                except sqlite3.Error as exc:
                    raise StorageUnavailableError(f"Migration {version} failed: {exc}") from exc
                logger.info("Applied schema migration %d to %s", version, self._db_path)
        return self.schema_version()

    def get(self, collection: str, key: str) -> Record | None:
        try:
            return _SQLiteTransaction(self._get_conn()).get(collection, key)
        except sqlite3.Error as exc:
            raise StorageUnavailableError(str(exc)) from exc

    def list(self, collection: str) -> list[Record]:
        try:
            return _SQLiteTransaction(self._get_conn()).list(collection)
        except sqlite3.Error as exc:
            raise StorageUnavailableError(str(exc)) from exc

    def read_log(self, collection: str) -> list[dict[str, Any]]:
        try:
            rows = self._get_conn().execute(
                "SELECT data FROM log_entries WHERE collection = ? ORDER BY seq",
                (collection,),
            ).fetchall()
        except sqlite3.Error as exc:
            raise StorageUnavailableError(str(exc)) from exc
        return [json.loads(r["data"]) for r in rows]

    @contextmanager
    def transaction(self) -> Iterator[_SQLiteTransaction]:
        with self._write_lock:
            conn = self._get_conn()
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StorageUnavailableError(f"Cannot begin transaction: {exc}") from exc
            try:
                yield _SQLiteTransaction(conn)
            except sqlite3.Error as exc:
                conn.execute("ROLLBACK")
                raise StorageUnavailableError(str(exc)) from exc
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            try:
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                conn.execute("ROLLBACK")
                raise StorageUnavailableError(f"Commit failed: {exc}") from exc

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

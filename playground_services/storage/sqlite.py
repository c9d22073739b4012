"""
SQLite key/value store of JSON documents.

- One connection per store, opened lazily, shared across threads under a lock.
- Applies the idempotent schema from ``storage/schema.sql`` on open.
- ``update()`` performs a read-modify-write of one document inside a single
  ``BEGIN IMMEDIATE`` transaction, so concurrent writers never lose updates.

Typical use:

    store = KeyValueStore(Path(".playground/playground.db"))
    store.put("gallery", [])
    store.update("gallery", lambda items: [new, *items], default=[])
"""

from __future__ import annotations

import json
import sqlite3
import threading
import time
from contextlib import contextmanager
from importlib.resources import files as pkg_files
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, TypeVar

T = TypeVar("T")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _schema_sql_text() -> str:
    resource = pkg_files("playground_services.storage").joinpath("schema.sql")
    return resource.read_text(encoding="utf-8")


class KeyValueStore:
    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None

    # ------------------------------ Connection ------------------------------ #

    def _open(self) -> sqlite3.Connection:
        if str(self.path) != ":memory:":
            self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            self.path.as_posix(),
            check_same_thread=False,  # guarded by self._lock
            isolation_level=None,     # autocommit; explicit transactions below
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA busy_timeout=5000;")
        conn.executescript(_schema_sql_text())
        conn.execute("INSERT OR REPLACE INTO meta_kv(key, value) VALUES('schema_applied', '1');")
        return conn

    def _db(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = self._open()
        return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                try:
                    self._conn.close()
                finally:
                    self._conn = None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Explicit write transaction. Commits on success, rolls back on exception.
        """
        with self._lock:
            db = self._db()
            db.execute("BEGIN IMMEDIATE;")
            try:
                yield db
            except BaseException:
                db.execute("ROLLBACK;")
                raise
            else:
                db.execute("COMMIT;")

    # -------------------------------- Access -------------------------------- #

    @staticmethod
    def _read(db: sqlite3.Connection, key: str) -> Optional[Any]:
        row = db.execute("SELECT value FROM kv_documents WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return json.loads(row["value"])

    @staticmethod
    def _write(db: sqlite3.Connection, key: str, value: Any) -> None:
        db.execute(
            "INSERT INTO kv_documents(key, value, updated_at) VALUES(?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
            (key, json.dumps(value, ensure_ascii=False), _now_ms()),
        )

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            value = self._read(self._db(), key)
        return default if value is None else value

    def put(self, key: str, value: Any) -> None:
        with self.transaction() as db:
            self._write(db, key, value)

    def delete(self, key: str) -> bool:
        with self.transaction() as db:
            cur = db.execute("DELETE FROM kv_documents WHERE key = ?", (key,))
            return cur.rowcount > 0

    def update(self, key: str, fn: Callable[[Any], T], *, default: Any = None) -> T:
        """
        Atomically replace the document at ``key`` with ``fn(current)``.

        ``current`` is ``default`` when the key is absent. Returns the new value.
        If ``fn`` raises, nothing is written.
        """
        with self.transaction() as db:
            current = self._read(db, key)
            new_value = fn(default if current is None else current)
            self._write(db, key, new_value)
            return new_value


__all__ = ["KeyValueStore"]

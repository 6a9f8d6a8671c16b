"""
credit_ledger.db.sqlite — the ledger's only storage backend.

One table, `kv(k BLOB PRIMARY KEY, v BLOB NOT NULL)`. The journal reads single
keys and prefix ranges from it and writes to it only through `batch()`, which
wraps one `BEGIN IMMEDIATE ... COMMIT`. A ledger call therefore lands in the
file completely or not at all.

`:memory:` gives a private in-process database; that is what `memory://`
opens and what the tests use.
"""

from __future__ import annotations

import os
import sqlite3
from typing import Iterator, List, Optional, Tuple

from .kv import KV, Batch

_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA temp_store=MEMORY",
)

_SCHEMA = "CREATE TABLE IF NOT EXISTS kv (k BLOB PRIMARY KEY, v BLOB NOT NULL)"

_UPSERT = "INSERT INTO kv(k, v) VALUES(?, ?) ON CONFLICT(k) DO UPDATE SET v=excluded.v"


def _upper_bound(prefix: bytes) -> Optional[bytes]:
    """
    First key past every key that starts with `prefix`; None if unbounded.

        b"uri:" -> b"uri;"    b"a\\xff" -> b"b"    b"\\xff" -> None
    """
    head = prefix.rstrip(b"\xff")
    if not head:
        return None
    return head[:-1] + bytes([head[-1] + 1])


class SQLiteBatch(Batch):
    """Write batch bound to one SQLite transaction."""

    __slots__ = ("_conn", "_active")

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._active = False

    def __enter__(self) -> "SQLiteBatch":
        if self._active:
            raise RuntimeError("batch is already open")
        self._conn.execute("BEGIN IMMEDIATE")
        self._active = True
        return self

    def _check(self) -> None:
        if not self._active:
            raise RuntimeError("batch is not open")

    def put(self, key: bytes, value: bytes) -> None:
        self._check()
        self._conn.execute(_UPSERT, (key, value))

    def delete(self, key: bytes) -> None:
        self._check()
        self._conn.execute("DELETE FROM kv WHERE k = ?", (key,))

    def commit(self) -> None:
        if not self._active:
            return
        self._active = False
        try:
            self._conn.execute("COMMIT")
        except sqlite3.Error:
            self._conn.execute("ROLLBACK")
            raise

    def rollback(self) -> None:
        if self._active:
            self._active = False
            self._conn.execute("ROLLBACK")

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        return None


class SQLiteKV(KV):
    """Ledger KV over a single SQLite connection."""

    __slots__ = ("_conn",)

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get(self, key: bytes) -> Optional[bytes]:
        row = self._conn.execute("SELECT v FROM kv WHERE k = ?", (key,)).fetchone()
        return None if row is None else bytes(row[0])

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        hi = _upper_bound(prefix)
        if hi is None:
            rows: List[Tuple[bytes, bytes]] = self._conn.execute(
                "SELECT k, v FROM kv WHERE k >= ? ORDER BY k", (prefix,)
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT k, v FROM kv WHERE k >= ? AND k < ? ORDER BY k", (prefix, hi)
            ).fetchall()
        # fetched up front so the journal can flush while a caller iterates
        for k, v in rows:
            yield bytes(k), bytes(v)

    def batch(self) -> SQLiteBatch:
        return SQLiteBatch(self._conn)

    def close(self) -> None:
        self._conn.close()


def open_sqlite_kv(path: str) -> SQLiteKV:
    """Open, creating if needed, the SQLite KV at `path` (or ":memory:")."""
    if path != ":memory:":
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    # autocommit mode; the ledger lock serializes writers across threads
    conn = sqlite3.connect(path, isolation_level=None, check_same_thread=False)
    for pragma in _PRAGMAS:
        conn.execute(pragma)
    conn.execute(_SCHEMA)
    return SQLiteKV(conn)


__all__ = ["SQLiteKV", "SQLiteBatch", "open_sqlite_kv"]

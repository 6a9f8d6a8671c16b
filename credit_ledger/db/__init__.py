"""
credit_ledger.db
================

Opens the key–value backend that holds ledger state.

URIs
----
- "sqlite:////abs/path/ledger.db" → SQLite file (absolute path)
- "sqlite:///rel/ledger.db"       → SQLite file (relative path)
- "memory://", "sqlite:///:memory:", ":memory:" or "" → in-memory SQLite
- bare path                       → SQLite file at that path

Example
-------
>>> from credit_ledger.db import open_kv
>>> kv = open_kv("memory://")
>>> with kv.batch() as b:
...     b.put(b"m:key", b"hello")
>>> kv.get(b"m:key")
b'hello'
"""

from __future__ import annotations

from .kv import KV, Batch, Prefix, ReadOnlyKV
from .sqlite import open_sqlite_kv


def _sqlite_path(uri: str) -> str:
    u = uri.strip()
    if u in ("", ":memory:", "sqlite:///:memory:") or u.startswith("memory://"):
        return ":memory:"
    if u.startswith("sqlite:///"):
        return u[len("sqlite:///") :]
    if "://" in u:
        raise ValueError(f"Unsupported DB backend in URI: {uri!r}")
    return u


def open_kv(uri: str) -> KV:
    """
    Open (creating if needed) the KV named by `uri`.

    Raises:
        ValueError for URI schemes other than sqlite:// and memory://.
    """
    return open_sqlite_kv(_sqlite_path(uri))


__all__ = ["KV", "ReadOnlyKV", "Batch", "Prefix", "open_kv"]

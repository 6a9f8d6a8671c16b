"""
credit_ledger.db.kv — storage protocols and the ledger key layout.

Tables (one key prefix each):

- OWNERS   (b"own:") : credit id → owner account id (deleted on burn)
- URIS     (b"uri:") : credit id → uri (never deleted once set)
- BURNED   (b"brn:") : credit id → b"\\x01" (write-once)
- METADATA (b"mda:") : credit id → metadata string
- META     (b"m:")   : ledger scalars (nextId, admin, layout version)

A key is `prefix + uvarint(len(part)) + part` for each part. Credit ids are
big-endian u64 parts, so a prefix scan returns them in numeric order:

    >>> from credit_ledger.db.kv import OWNERS, be_u64
    >>> OWNERS.key(be_u64(7)) == b"own:\\x08" + (7).to_bytes(8, "big")
    True

Writes only ever happen through `KV.batch()`:

    >>> with kv.batch() as b:
    ...     b.put(URIS.key(be_u64(1)), b"ipfs://a")
    ...     b.delete(OWNERS.key(be_u64(1)))
"""

from __future__ import annotations

from typing import Iterator, Optional, Protocol, Tuple, runtime_checkable


def _uvarint(n: int) -> bytes:
    out = bytearray()
    while n >= 0x80:
        out.append(0x80 | (n & 0x7F))
        n >>= 7
    out.append(n)
    return bytes(out)


class Prefix:
    """Key namespace, e.g. `Prefix(b"own")` → raw bytes b"own:"."""

    __slots__ = ("raw",)

    def __init__(self, ns: bytes) -> None:
        ns = bytes(ns).rstrip(b":")
        if not ns:
            raise ValueError("namespace must be non-empty")
        self.raw = ns + b":"

    def key(self, *parts: bytes) -> bytes:
        out = bytearray(self.raw)
        for part in parts:
            out += _uvarint(len(part))
            out += part
        return bytes(out)

    def __repr__(self) -> str:
        return f"Prefix({self.raw!r})"


def be_u64(n: int) -> bytes:
    if not 0 <= n < 1 << 64:
        raise ValueError("be_u64 out of range")
    return n.to_bytes(8, "big")


def from_be_u64(b: bytes) -> int:
    if len(b) != 8:
        raise ValueError(f"expected 8 bytes, got {len(b)}")
    return int.from_bytes(b, "big")


OWNERS = Prefix(b"own")
URIS = Prefix(b"uri")
BURNED = Prefix(b"brn")
METADATA = Prefix(b"mda")
META = Prefix(b"m")

K_NEXT_ID = META.key(b"nextId")  # be_u64
K_ADMIN = META.key(b"admin")  # utf-8
K_LAYOUT = META.key(b"layout")  # be_u64


@runtime_checkable
class ReadOnlyKV(Protocol):
    def get(self, key: bytes) -> Optional[bytes]:
        """Value for `key`, or None."""
        ...

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """(key, value) pairs whose key begins with `prefix`, in byte order."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class Batch(Protocol):
    """
    Atomic write set. Leaving the `with` block normally commits it; an
    escaping exception rolls it back.
    """

    def put(self, key: bytes, value: bytes) -> None: ...
    def delete(self, key: bytes) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...

    def __enter__(self) -> "Batch": ...
    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...


@runtime_checkable
class KV(ReadOnlyKV, Protocol):
    def batch(self) -> Batch: ...


__all__ = [
    "ReadOnlyKV",
    "KV",
    "Batch",
    "Prefix",
    "OWNERS",
    "URIS",
    "BURNED",
    "METADATA",
    "META",
    "K_NEXT_ID",
    "K_ADMIN",
    "K_LAYOUT",
    "be_u64",
    "from_be_u64",
]

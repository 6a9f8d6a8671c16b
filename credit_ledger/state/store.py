"""
credit_ledger.state.store — the three credit tables and the id allocator.

- CreditStore   : id → owner, id → uri, and the monotonic `next_id` counter.
- BurnRegistry  : append-only set of retired ids.
- MetadataStore : optional per-id annotation, independent of owner/burn state.

All three read and write through a `WriteJournal`, so whatever a ledger call
stages is visible to the rest of that call and reaches the KV only when the
call commits. The stores enforce the storage shape (owner rows deleted rather
than blanked, burn flags write-once, uris never deleted); authorization and
input validation belong to the ledger.

Ids outside the u64 range can never have been minted; reads for them return
the "absent" answer instead of raising.
"""

from __future__ import annotations

from typing import Iterator, Optional

from ..db.kv import (BURNED, K_NEXT_ID, METADATA, OWNERS, URIS, Prefix,
                     be_u64, from_be_u64)
from ..errors import LedgerStorageError
from .journal import WriteJournal

_BURN_FLAG = b"\x01"
_U64_MAX = (1 << 64) - 1


def _key(prefix: Prefix, credit_id: int) -> Optional[bytes]:
    if not isinstance(credit_id, int) or isinstance(credit_id, bool):
        return None
    if credit_id < 0 or credit_id > _U64_MAX:
        return None
    return prefix.key(be_u64(credit_id))


def _id_from_key(prefix: Prefix, key: bytes) -> int:
    # prefix.raw | uvarint(8) | be_u64(id)
    return from_be_u64(key[len(prefix.raw) + 1 :])


def _decode_str(key: bytes, raw: Optional[bytes]) -> Optional[str]:
    if raw is None:
        return None
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise LedgerStorageError("stored value is not utf-8", key=key, cause=e) from e


class CreditStore:
    """Owners, uris and the id allocator."""

    def __init__(self, journal: WriteJournal) -> None:
        self._j = journal

    # --- allocator ---

    def next_id(self) -> int:
        raw = self._j.get(K_NEXT_ID)
        if raw is None:
            return 1
        try:
            return from_be_u64(raw)
        except ValueError as e:
            raise LedgerStorageError("bad nextId counter", key=K_NEXT_ID, cause=e) from e

    def minted_count(self) -> int:
        return self.next_id() - 1

    def allocate(self) -> int:
        """Reserve the next id and advance the counter by exactly one."""
        credit_id = self.next_id()
        self._j.put(K_NEXT_ID, be_u64(credit_id + 1))
        return credit_id

    # --- owners ---

    def owner_of(self, credit_id: int) -> Optional[str]:
        k = _key(OWNERS, credit_id)
        if k is None:
            return None
        return _decode_str(k, self._j.get(k))

    def set_owner(self, credit_id: int, account: str) -> None:
        k = _key(OWNERS, credit_id)
        if k is None:
            raise ValueError(f"credit id out of range: {credit_id!r}")
        self._j.put(k, account.encode("utf-8"))

    def clear_owner(self, credit_id: int) -> None:
        k = _key(OWNERS, credit_id)
        if k is not None:
            self._j.delete(k)

    # --- uris ---

    def uri_of(self, credit_id: int) -> Optional[str]:
        k = _key(URIS, credit_id)
        if k is None:
            return None
        return _decode_str(k, self._j.get(k))

    def has_uri(self, credit_id: int) -> bool:
        k = _key(URIS, credit_id)
        return k is not None and self._j.has(k)

    def set_uri(self, credit_id: int, uri: str) -> None:
        k = _key(URIS, credit_id)
        if k is None:
            raise ValueError(f"credit id out of range: {credit_id!r}")
        self._j.put(k, uri.encode("utf-8"))

    def iter_minted_ids(self) -> Iterator[int]:
        for k, _ in self._j.iter_prefix(URIS.raw):
            yield _id_from_key(URIS, k)


class BurnRegistry:
    """Write-once burn flags. There is deliberately no way to unset one."""

    def __init__(self, journal: WriteJournal) -> None:
        self._j = journal

    def is_burned(self, credit_id: int) -> bool:
        k = _key(BURNED, credit_id)
        return k is not None and self._j.get(k) == _BURN_FLAG

    def mark(self, credit_id: int) -> bool:
        """Set the flag. Returns False when it was already set."""
        k = _key(BURNED, credit_id)
        if k is None:
            raise ValueError(f"credit id out of range: {credit_id!r}")
        if self._j.get(k) == _BURN_FLAG:
            return False
        self._j.put(k, _BURN_FLAG)
        return True

    def iter_burned_ids(self) -> Iterator[int]:
        for k, v in self._j.iter_prefix(BURNED.raw):
            if v == _BURN_FLAG:
                yield _id_from_key(BURNED, k)


class MetadataStore:
    def __init__(self, journal: WriteJournal) -> None:
        self._j = journal

    def get(self, credit_id: int) -> Optional[str]:
        k = _key(METADATA, credit_id)
        if k is None:
            return None
        return _decode_str(k, self._j.get(k))

    def set(self, credit_id: int, value: str) -> None:
        k = _key(METADATA, credit_id)
        if k is None:
            raise ValueError(f"credit id out of range: {credit_id!r}")
        self._j.put(k, value.encode("utf-8"))


__all__ = ["CreditStore", "BurnRegistry", "MetadataStore"]

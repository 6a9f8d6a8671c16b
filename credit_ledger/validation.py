"""
credit_ledger.validation — pure predicates and the `require_*` guards built on them.

Predicates never raise:
    is_valid_uri(s)                 1 <= len(s) <= max_len, UTF-8 encodable
    is_valid_metadata(s)            0 <= len(s) <= max_len, UTF-8 encodable
    is_burned(burns, id)            stored flag, False for unseen ids
    is_owner(store, id, account)    owner present and equal

Guards raise the matching taxonomy error:
    require_valid_uri(s)            -> InvalidUri
    require_valid_metadata(s)       -> InvalidUri
    require_batch_size(items)       -> InvalidBatchSize
"""

from __future__ import annotations

from typing import Any, Sized

from .config import DEFAULT_MAX_BATCH, DEFAULT_MAX_URI_LEN
from .errors import InvalidBatchSize, InvalidUri
from .state.store import BurnRegistry, CreditStore

# -----------------------------------------------------------------------------
# Predicates
# -----------------------------------------------------------------------------


def is_utf8_text(s: Any) -> bool:
    """True for a str that can be stored as UTF-8 (no lone surrogates)."""
    if not isinstance(s, str):
        return False
    try:
        s.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def is_valid_uri(s: Any, *, max_len: int = DEFAULT_MAX_URI_LEN) -> bool:
    """
    True iff `s` is a string of 1..max_len characters. Length is counted in
    characters, not encoded bytes; there is no charset rule beyond being
    storable as UTF-8.
    """
    return is_utf8_text(s) and 1 <= len(s) <= max_len


def is_valid_metadata(s: Any, *, max_len: int = DEFAULT_MAX_URI_LEN) -> bool:
    """Like `is_valid_uri`, but the empty string is allowed."""
    return is_utf8_text(s) and len(s) <= max_len


def is_burned(burns: BurnRegistry, credit_id: int) -> bool:
    return burns.is_burned(credit_id)


def is_owner(store: CreditStore, credit_id: int, account: str) -> bool:
    """False, never an error, for unminted or burned credits."""
    owner = store.owner_of(credit_id)
    return owner is not None and owner == account


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------


def _invalid(s: Any, what: str, max_len: int) -> InvalidUri:
    if not isinstance(s, str):
        return InvalidUri(f"{what} must be a string", max_len=max_len)
    if not is_utf8_text(s):
        return InvalidUri(f"{what} is not encodable as UTF-8", length=len(s), max_len=max_len)
    return InvalidUri(f"{what} length out of range", length=len(s), max_len=max_len)


def require_valid_uri(s: Any, *, max_len: int = DEFAULT_MAX_URI_LEN) -> str:
    if not is_valid_uri(s, max_len=max_len):
        raise _invalid(s, "uri", max_len)
    return s


def require_valid_metadata(s: Any, *, max_len: int = DEFAULT_MAX_URI_LEN) -> str:
    if not is_valid_metadata(s, max_len=max_len):
        raise _invalid(s, "metadata", max_len)
    return s


def require_batch_size(items: Sized, *, max_size: int = DEFAULT_MAX_BATCH) -> int:
    n = len(items)
    if n == 0 or n > max_size:
        raise InvalidBatchSize(size=n, max_size=max_size)
    return n


__all__ = [
    "is_utf8_text",
    "is_valid_uri",
    "is_valid_metadata",
    "is_burned",
    "is_owner",
    "require_valid_uri",
    "require_valid_metadata",
    "require_batch_size",
]

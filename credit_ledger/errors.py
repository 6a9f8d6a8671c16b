"""
Typed exceptions for the credit ledger.

Design goals
- Structured: machine-readable code + human message + contextual fields.
- Coarse on purpose: the operation taxonomy has exactly six kinds and callers
  match on them. A burned credit on an owner-gated call is `NotTokenOwner`,
  not a distinct "burned" error.
- Stable across processes: to_dict()/from_dict() round-trip.

Operation taxonomy:
  - NotAuthorized     caller is not the administrator on an admin-only call
  - NotTokenOwner     caller does not hold the credit (or it is burned)
  - TokenNotFound     referenced id was never minted
  - InvalidUri        uri outside [1, 256] characters, metadata over 256,
                      or either one not encodable as UTF-8
  - BurnFailed        burn attempted on an already-burned credit
  - InvalidBatchSize  batch length is 0 or exceeds the batch cap

Ambient kinds (configuration and storage, never raised by a well-formed call):
  - LedgerConfigError
  - LedgerStorageError
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Type


class LedgerErrorCode(str, Enum):
    """Canonical error codes."""

    UNKNOWN = "LEDGER/UNKNOWN"

    NOT_AUTHORIZED = "LEDGER/NOT_AUTHORIZED"
    NOT_TOKEN_OWNER = "LEDGER/NOT_TOKEN_OWNER"
    TOKEN_NOT_FOUND = "LEDGER/TOKEN_NOT_FOUND"
    INVALID_URI = "LEDGER/INVALID_URI"
    BURN_FAILED = "LEDGER/BURN_FAILED"
    INVALID_BATCH_SIZE = "LEDGER/INVALID_BATCH_SIZE"

    CONFIG = "LEDGER/CONFIG"
    STORAGE = "LEDGER/STORAGE"


@dataclass(eq=False)
class LedgerError(Exception):
    """
    Base structured error.

    Fields:
      code:  stable machine code (LedgerErrorCode | str)
      msg:   human-readable summary
      ctx:   small dict of contextual fields (ids, account ids, lengths)
      cause: optional underlying exception (not serialized)
    """

    code: LedgerErrorCode | str = LedgerErrorCode.UNKNOWN
    msg: str = "ledger error"
    ctx: Dict[str, Any] = field(default_factory=dict)
    cause: Optional[BaseException] = None

    def __post_init__(self) -> None:
        if not isinstance(self.ctx, dict):
            self.ctx = {"_ctx_type_error": str(type(self.ctx)), "repr": repr(self.ctx)}

    def __str__(self) -> str:
        code = self.code.value if isinstance(self.code, LedgerErrorCode) else self.code
        parts = [f"[{code}] {self.msg}"]
        if self.ctx:
            parts.append(f"ctx={self.ctx}")
        if self.cause:
            parts.append(f"cause={self.cause!r}")
        return " ".join(parts)

    @property
    def kind(self) -> str:
        """Short taxonomy name, e.g. 'NotTokenOwner'."""
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        code = self.code.value if isinstance(self.code, LedgerErrorCode) else str(self.code)
        return {"code": code, "kind": self.kind, "msg": self.msg, "ctx": self.ctx}

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "LedgerError":
        """
        Rebuild an error from `to_dict()` output. The concrete subclass is
        resolved from the code when it is one of the known codes.
        """
        code_raw = d.get("code", LedgerErrorCode.UNKNOWN)
        try:
            code: LedgerErrorCode | str = LedgerErrorCode(code_raw)
        except ValueError:
            code = str(code_raw)
        msg = str(d.get("msg", "ledger error"))
        ctx = dict(d.get("ctx", {}))
        sub = _BY_CODE.get(code) if isinstance(code, LedgerErrorCode) else None
        if sub is None:
            return LedgerError(code=code, msg=msg, ctx=ctx)
        err = sub.__new__(sub)
        LedgerError.__init__(err, code=code, msg=msg, ctx=ctx)
        return err


class NotAuthorized(LedgerError):
    """Caller is not the ledger administrator."""

    def __init__(self, msg: str = "caller is not the administrator", *, caller: Optional[str] = None) -> None:
        ctx: Dict[str, Any] = {}
        if caller is not None:
            ctx["caller"] = caller
        super().__init__(code=LedgerErrorCode.NOT_AUTHORIZED, msg=msg, ctx=ctx)


class NotTokenOwner(LedgerError):
    """Caller does not hold the credit, or the credit is burned."""

    def __init__(
        self,
        msg: str = "caller does not own credit",
        *,
        credit_id: Optional[int] = None,
        caller: Optional[str] = None,
    ) -> None:
        ctx: Dict[str, Any] = {}
        if credit_id is not None:
            ctx["credit_id"] = credit_id
        if caller is not None:
            ctx["caller"] = caller
        super().__init__(code=LedgerErrorCode.NOT_TOKEN_OWNER, msg=msg, ctx=ctx)


class TokenNotFound(LedgerError):
    """Referenced id was never minted."""

    def __init__(self, msg: str = "credit not found", *, credit_id: Optional[int] = None) -> None:
        ctx: Dict[str, Any] = {}
        if credit_id is not None:
            ctx["credit_id"] = credit_id
        super().__init__(code=LedgerErrorCode.TOKEN_NOT_FOUND, msg=msg, ctx=ctx)


class InvalidUri(LedgerError):
    """URI or metadata string of the wrong length, or not storable as UTF-8."""

    def __init__(
        self,
        msg: str = "uri length out of range",
        *,
        length: Optional[int] = None,
        max_len: Optional[int] = None,
    ) -> None:
        ctx: Dict[str, Any] = {}
        if length is not None:
            ctx["length"] = length
        if max_len is not None:
            ctx["max_len"] = max_len
        super().__init__(code=LedgerErrorCode.INVALID_URI, msg=msg, ctx=ctx)


class BurnFailed(LedgerError):
    """Burn attempted on an already-burned credit."""

    def __init__(self, msg: str = "credit already burned", *, credit_id: Optional[int] = None) -> None:
        ctx: Dict[str, Any] = {}
        if credit_id is not None:
            ctx["credit_id"] = credit_id
        super().__init__(code=LedgerErrorCode.BURN_FAILED, msg=msg, ctx=ctx)


class InvalidBatchSize(LedgerError):
    """Batch is empty or larger than the cap."""

    def __init__(
        self,
        msg: str = "invalid batch size",
        *,
        size: Optional[int] = None,
        max_size: Optional[int] = None,
    ) -> None:
        ctx: Dict[str, Any] = {}
        if size is not None:
            ctx["size"] = size
        if max_size is not None:
            ctx["max_size"] = max_size
        super().__init__(code=LedgerErrorCode.INVALID_BATCH_SIZE, msg=msg, ctx=ctx)


class LedgerConfigError(LedgerError):
    """Invalid configuration or a stored administrator that disagrees with the configured one."""

    def __init__(self, msg: str = "invalid ledger configuration", *, ctx: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(code=LedgerErrorCode.CONFIG, msg=msg, ctx=dict(ctx or {}))


class LedgerStorageError(LedgerError):
    """A stored value could not be decoded."""

    def __init__(
        self,
        msg: str = "corrupt ledger storage",
        *,
        key: Optional[bytes] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        ctx: Dict[str, Any] = {}
        if key is not None:
            ctx["key"] = key.hex()
        super().__init__(code=LedgerErrorCode.STORAGE, msg=msg, ctx=ctx, cause=cause)


_BY_CODE: Dict[LedgerErrorCode, Type[LedgerError]] = {
    LedgerErrorCode.NOT_AUTHORIZED: NotAuthorized,
    LedgerErrorCode.NOT_TOKEN_OWNER: NotTokenOwner,
    LedgerErrorCode.TOKEN_NOT_FOUND: TokenNotFound,
    LedgerErrorCode.INVALID_URI: InvalidUri,
    LedgerErrorCode.BURN_FAILED: BurnFailed,
    LedgerErrorCode.INVALID_BATCH_SIZE: InvalidBatchSize,
    LedgerErrorCode.CONFIG: LedgerConfigError,
    LedgerErrorCode.STORAGE: LedgerStorageError,
}


__all__ = [
    "LedgerErrorCode",
    "LedgerError",
    "NotAuthorized",
    "NotTokenOwner",
    "TokenNotFound",
    "InvalidUri",
    "BurnFailed",
    "InvalidBatchSize",
    "LedgerConfigError",
    "LedgerStorageError",
]

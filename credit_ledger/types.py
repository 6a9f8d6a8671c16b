"""
Core value types for the credit ledger.

These are plain, immutable records produced by the query layer and the event
sinks. The ledger's authoritative state lives in the KV tables, never here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import LedgerError

AccountId = str
CreditId = int


@dataclass(frozen=True)
class CreditDetail:
    """
    Full-detail projection of one minted credit.

    `owner` is None once the credit is burned. `uri` is always present for a
    minted credit.
    """

    id: CreditId
    owner: Optional[AccountId]
    uri: str
    burned: bool
    metadata: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner": self.owner,
            "uri": self.uri,
            "burned": self.burned,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CreditDetail":
        return cls(
            id=int(d["id"]),
            owner=d.get("owner"),
            uri=str(d["uri"]),
            burned=bool(d.get("burned", False)),
            metadata=d.get("metadata"),
        )


@dataclass(frozen=True)
class ItemResult:
    """Per-id outcome of a hardened (non fail-fast) projection."""

    id: CreditId
    detail: Optional[CreditDetail] = None
    error: Optional[LedgerError] = None

    def __post_init__(self) -> None:
        if (self.detail is None) == (self.error is None):
            raise ValueError("ItemResult needs exactly one of detail or error")

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        if self.detail is None:
            return {"id": self.id, "ok": False, "error": self.error.to_dict()}
        return {"id": self.id, "ok": True, "detail": self.detail.to_dict()}


__all__ = ["AccountId", "CreditId", "CreditDetail", "ItemResult"]

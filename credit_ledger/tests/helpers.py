"""Shared accounts and setup helpers for the credit_ledger tests."""

from __future__ import annotations

from typing import List

from credit_ledger.identity import ContextIdentity
from credit_ledger.ledger import CreditLedger

ADMIN = "acct:admin"
ALICE = "acct:alice"
BOB = "acct:bob"
CAROL = "acct:carol"


def mint_n(ledger: CreditLedger, ident: ContextIdentity, n: int, prefix: str = "ipfs://c") -> List[int]:
    with ident.as_caller(ADMIN):
        return [ledger.mint(f"{prefix}{i}") for i in range(1, n + 1)]


def give(ledger: CreditLedger, ident: ContextIdentity, credit_id: int, to: str) -> None:
    """Move a credit from the administrator to `to` (pulled by `to`)."""
    with ident.as_caller(to):
        ledger.transfer(credit_id, ADMIN, to)

"""
credit_ledger.identity — who is calling.

The ledger never verifies signatures. The embedding host authenticates the
caller and hands the ledger an `IdentityProvider` that answers "who is the
caller of the operation running right now".

Providers shipped here:

- StaticIdentity   : always the same account (CLI, single-user tools).
- ContextIdentity  : caller bound per context via `as_caller(...)`; works
                     across threads and asyncio tasks because it is backed
                     by a `ContextVar`. Each instance has its own slot.
"""

from __future__ import annotations

import itertools
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional, Protocol, runtime_checkable

from .errors import NotAuthorized

_instance_ids = itertools.count(1)


@runtime_checkable
class IdentityProvider(Protocol):
    def current_caller(self) -> str:
        """Verified account id of the current caller."""
        ...


def is_account(account: object) -> bool:
    """Non-empty str that can be stored as UTF-8."""
    if not isinstance(account, str) or not account:
        return False
    try:
        account.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def require_account(account: object, *, what: str = "account") -> str:
    if not is_account(account):
        raise ValueError(f"{what} must be a non-empty UTF-8 encodable string")
    return account  # type: ignore[return-value]


class StaticIdentity:
    __slots__ = ("_account",)

    def __init__(self, account: str) -> None:
        self._account = require_account(account, what="caller")

    def current_caller(self) -> str:
        return self._account

    def __repr__(self) -> str:
        return f"StaticIdentity({self._account!r})"


class ContextIdentity:
    """
    Caller bound with `as_caller`:

        ident = ContextIdentity()
        with ident.as_caller("acct:alice"):
            ledger.burn(3)
    """

    def __init__(self) -> None:
        self._caller: ContextVar[Optional[str]] = ContextVar(
            f"credit_ledger_caller_{next(_instance_ids)}", default=None
        )

    def current_caller(self) -> str:
        caller = self._caller.get()
        if caller is None:
            raise NotAuthorized("no caller identity bound")
        return caller

    @contextmanager
    def as_caller(self, account: str) -> Iterator[str]:
        token = self._caller.set(require_account(account, what="caller"))
        try:
            yield account
        finally:
            self._caller.reset(token)


__all__ = [
    "IdentityProvider",
    "StaticIdentity",
    "ContextIdentity",
    "is_account",
    "require_account",
]

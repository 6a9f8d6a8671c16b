from __future__ import annotations

from typing import Iterator

import pytest

from credit_ledger.events import InMemoryEventSink
from credit_ledger.identity import ContextIdentity
from credit_ledger.ledger import CreditLedger

from .helpers import ADMIN


@pytest.fixture()
def ident() -> ContextIdentity:
    return ContextIdentity()


@pytest.fixture()
def sink() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture()
def ledger(ident: ContextIdentity, sink: InMemoryEventSink) -> Iterator[CreditLedger]:
    lg = CreditLedger.open("memory://", admin=ADMIN, identity=ident, events=sink)
    try:
        yield lg
    finally:
        lg.close()


@pytest.fixture()
def as_admin(ident: ContextIdentity) -> Iterator[str]:
    with ident.as_caller(ADMIN) as acct:
        yield acct

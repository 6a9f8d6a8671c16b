"""
credit_ledger — a token/credit ledger state machine.

Mint, transfer (pull-based), burn and annotate uniquely numbered credits over a
pluggable KV backend, with journaled all-or-nothing calls, bounded batches and
fail-fast pagination.

    from credit_ledger import CreditLedger, ContextIdentity

    ident = ContextIdentity()
    ledger = CreditLedger.open("memory://", admin="acct:admin", identity=ident)
    with ident.as_caller("acct:admin"):
        cid = ledger.mint("ipfs://credit-1")
    ledger.query.detail(cid)
"""

from .batch import BatchOutcome, BatchPolicy
from .config import LedgerConfig, Limits, get_config, load_config
from .errors import (BurnFailed, InvalidBatchSize, InvalidUri,
                     LedgerConfigError, LedgerError, LedgerErrorCode,
                     LedgerStorageError, NotAuthorized, NotTokenOwner,
                     TokenNotFound)
from .events import (EventRecord, EventSink, InMemoryEventSink,
                     JsonlEventSink, LedgerEvent, NullEventSink)
from .identity import ContextIdentity, IdentityProvider, StaticIdentity
from .ledger import CreditLedger
from .query import CreditQuery
from .types import CreditDetail, ItemResult
from .version import __version__

__all__ = [
    "__version__",
    "CreditLedger",
    "CreditQuery",
    "CreditDetail",
    "ItemResult",
    "BatchPolicy",
    "BatchOutcome",
    "LedgerConfig",
    "Limits",
    "load_config",
    "get_config",
    "IdentityProvider",
    "StaticIdentity",
    "ContextIdentity",
    "LedgerEvent",
    "EventRecord",
    "EventSink",
    "InMemoryEventSink",
    "JsonlEventSink",
    "NullEventSink",
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

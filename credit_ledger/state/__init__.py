"""
credit_ledger.state — journaled credit tables.

    WriteJournal   — overlay stack with nested checkpoints over a KV
    CreditStore    — owners, uris, id allocator
    BurnRegistry   — write-once burn flags
    MetadataStore  — optional per-credit annotation
"""

from .journal import WriteJournal
from .store import BurnRegistry, CreditStore, MetadataStore

__all__ = ["WriteJournal", "CreditStore", "BurnRegistry", "MetadataStore"]

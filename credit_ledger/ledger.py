"""
credit_ledger.ledger — the mutating surface of the credit ledger.

`CreditLedger` owns the journal, the three credit tables and the event buffer,
and exposes the eight state-changing operations:

    mint(uri) -> id                          administrator only
    batch_mint(uris) -> [id, ...]            administrator only, 1..50 entries
    transfer(id, from_account, to) -> True   pull-based: `to` must be the caller
    secure_transfer(id, from_account, to)    caller must also already own it
    burn(id) -> True                         owner only, irreversible
    batch_burn(ids) -> True                  1..50 entries, outcomes discarded
    update_uri(id, uri) -> True              owner only
    add_metadata(id, metadata) -> True       owner only

Call model
----------
Every operation runs as one *call*:

    lock → trace scope (caller, op) → timer → journal transaction
         → checks → staged writes → commit → publish buffered events

A raised `LedgerError` reverts the transaction, so a failing call leaves no
trace in storage and publishes nothing. Once committed, a call returns its
result even if the event sink fails; the failure is logged. Batch items run
in nested checkpoints (see `credit_ledger.batch`).

Reads go through `ledger.query`, which sees committed state only.

Example
-------
    >>> from credit_ledger import CreditLedger, ContextIdentity
    >>> ident = ContextIdentity()
    >>> ledger = CreditLedger.open("memory://", admin="acct:admin", identity=ident)
    >>> with ident.as_caller("acct:admin"):
    ...     ledger.mint("ipfs://a")
    1
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from . import metrics
from .batch import BatchPolicy, run_batch
from .config import LedgerConfig, Limits
from .db import open_kv
from .db.kv import K_ADMIN, K_LAYOUT, KV, be_u64, from_be_u64
from .errors import (BurnFailed, LedgerConfigError, LedgerError, NotAuthorized,
                     NotTokenOwner, TokenNotFound)
from .events import (EVT_BURNED, EVT_METADATA_ADDED, EVT_MINTED,
                     EVT_TRANSFERRED, EVT_URI_UPDATED, EventSink,
                     InMemoryEventSink, LedgerEvent, open_sink)
from .identity import IdentityProvider, is_account, require_account
from .logging import bind, trace_scope
from .query import CreditQuery
from .state import BurnRegistry, CreditStore, MetadataStore, WriteJournal
from .validation import (is_owner, is_valid_metadata, is_valid_uri,
                         require_valid_metadata, require_valid_uri)
from .version import STORAGE_LAYOUT_VERSION

log = logging.getLogger(__name__)

SNAPSHOT_FORMAT = 1


class CreditLedger:
    """
    Token/credit ledger over a KV backend.

    Args:
        kv: storage backend (see `credit_ledger.db.open_kv`).
        admin: administrator account. Persisted on first open; must match on
            reopen. May be None when reopening an existing ledger.
        identity: answers who the caller of the running operation is.
        config: limits and batch defaults (default: `LedgerConfig()`).
        events: event sink (default: in-memory).
        policy: batch policy (default: derived from `config`).
    """

    def __init__(
        self,
        kv: KV,
        admin: Optional[str],
        *,
        identity: IdentityProvider,
        config: Optional[LedgerConfig] = None,
        events: Optional[EventSink] = None,
        policy: Optional[BatchPolicy] = None,
    ) -> None:
        self._cfg = config or LedgerConfig()
        self._kv = kv
        self._identity = identity
        self._events: EventSink = events if events is not None else InMemoryEventSink()
        self._policy = policy or BatchPolicy(
            max_size=self._cfg.limits.max_batch_size,
            skip_invalid=self._cfg.batch_skip_invalid,
        )
        self._lock = threading.RLock()
        self._pending: List[LedgerEvent] = []

        self._journal = WriteJournal(kv)
        self._store = CreditStore(self._journal)
        self._burns = BurnRegistry(self._journal)
        self._metadata = MetadataStore(self._journal)

        read_journal = WriteJournal(kv)
        self._query = CreditQuery(
            CreditStore(read_journal),
            BurnRegistry(read_journal),
            MetadataStore(read_journal),
            max_page_size=self._cfg.limits.max_page_size,
        )

        self._admin = self._init_admin(admin)
        log.info(
            "ledger ready admin=%s next_id=%d layout=%d",
            self._admin,
            self._store.next_id(),
            STORAGE_LAYOUT_VERSION,
        )

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def open(
        cls,
        db_uri: str = "memory://",
        admin: Optional[str] = None,
        *,
        identity: IdentityProvider,
        config: Optional[LedgerConfig] = None,
        events: Optional[EventSink] = None,
    ) -> "CreditLedger":
        """Open (or create) a ledger stored at `db_uri`."""
        try:
            kv = open_kv(db_uri)
        except ValueError as e:
            raise LedgerConfigError(str(e), ctx={"db_uri": db_uri}) from e
        return cls(kv, admin, identity=identity, config=config, events=events)

    @classmethod
    def from_config(
        cls,
        cfg: LedgerConfig,
        *,
        identity: IdentityProvider,
        events: Optional[EventSink] = None,
    ) -> "CreditLedger":
        if events is None:
            events = open_sink(cfg.events_path)
        return cls.open(cfg.db_uri, cfg.admin, identity=identity, config=cfg, events=events)

    def _init_admin(self, admin: Optional[str]) -> str:
        if admin is not None:
            admin = require_account(admin, what="admin")

        raw_layout = self._kv.get(K_LAYOUT)
        if raw_layout is not None and from_be_u64(raw_layout) != STORAGE_LAYOUT_VERSION:
            raise LedgerConfigError(
                "unsupported storage layout",
                ctx={"stored": from_be_u64(raw_layout), "expected": STORAGE_LAYOUT_VERSION},
            )

        raw_admin = self._kv.get(K_ADMIN)
        if raw_admin is not None:
            stored = raw_admin.decode("utf-8")
            if admin is not None and admin != stored:
                raise LedgerConfigError(
                    "administrator does not match stored administrator",
                    ctx={"stored": stored, "given": admin},
                )
            return stored

        if admin is None:
            raise LedgerConfigError("administrator not configured")
        with self._journal.transaction() as j:
            j.put(K_ADMIN, admin.encode("utf-8"))
            j.put(K_LAYOUT, be_u64(STORAGE_LAYOUT_VERSION))
        return admin

    def close(self) -> None:
        self._kv.close()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def admin(self) -> str:
        return self._admin

    @property
    def config(self) -> LedgerConfig:
        return self._cfg

    @property
    def limits(self) -> Limits:
        return self._cfg.limits

    @property
    def policy(self) -> BatchPolicy:
        return self._policy

    @property
    def events(self) -> EventSink:
        return self._events

    @property
    def query(self) -> CreditQuery:
        return self._query

    # ------------------------------------------------------------------
    # Call plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _call(self, op: str) -> Iterator[str]:
        with self._lock, trace_scope(op=op), metrics.time_op(op):
            self._pending = []
            try:
                caller = self._identity.current_caller()
                if not is_account(caller):
                    raise NotAuthorized("identity provider returned an invalid account")
                bind(caller=caller)
                with self._journal.transaction():
                    yield caller
            except LedgerError as e:
                self._pending = []
                metrics.observe_op(op=op, result=e.kind)
                log.debug("%s rejected: %s", op, e)
                raise
            except Exception:
                self._pending = []
                metrics.observe_op(op=op, result="error")
                log.exception("%s failed", op)
                raise
            metrics.observe_op(op=op, result="success")
            pending, self._pending = self._pending, []
            if pending:
                # committed; sink failures are logged, not raised
                try:
                    self._events.publish(pending)
                except Exception:
                    log.exception("%s committed but %d event(s) were not published", op, len(pending))

    @contextmanager
    def _item_scope(self) -> Iterator[None]:
        mark = len(self._pending)
        try:
            with self._journal.transaction():
                yield
        except BaseException:
            del self._pending[mark:]
            raise

    def _emit(self, name: str, credit_id: int, **args: Any) -> None:
        self._pending.append(LedgerEvent(name=name, credit_id=credit_id, args=args))

    def _require_admin(self, caller: str) -> None:
        if caller != self._admin:
            raise NotAuthorized(caller=caller)

    # ------------------------------------------------------------------
    # Single-item rules (run inside a call)
    # ------------------------------------------------------------------

    def _mint_one(self, caller: str, uri: str) -> int:
        require_valid_uri(uri, max_len=self.limits.max_uri_len)
        credit_id = self._store.allocate()
        self._store.set_owner(credit_id, caller)
        self._store.set_uri(credit_id, uri)
        self._emit(EVT_MINTED, credit_id, owner=caller, uri=uri)
        log.debug("minted credit_id=%d", credit_id)
        return credit_id

    def _transfer_one(self, caller: str, credit_id: int, from_account: str, to: str) -> bool:
        if (
            to != caller
            or self._burns.is_burned(credit_id)
            or not is_owner(self._store, credit_id, from_account)
        ):
            raise NotTokenOwner(credit_id=credit_id, caller=caller)
        self._store.set_owner(credit_id, to)
        self._emit(EVT_TRANSFERRED, credit_id, **{"from": from_account, "to": to})
        return True

    def _burn_one(self, caller: str, credit_id: int) -> bool:
        if not self._store.has_uri(credit_id):
            raise TokenNotFound(credit_id=credit_id)
        if self._burns.is_burned(credit_id):
            raise BurnFailed(credit_id=credit_id)
        if not is_owner(self._store, credit_id, caller):
            raise NotTokenOwner(credit_id=credit_id, caller=caller)
        self._store.clear_owner(credit_id)
        self._burns.mark(credit_id)
        self._emit(EVT_BURNED, credit_id, owner=caller)
        log.debug("burned credit_id=%d", credit_id)
        return True

    def _require_holder(self, caller: str, credit_id: int) -> None:
        if not self._store.has_uri(credit_id):
            raise TokenNotFound(credit_id=credit_id)
        if not is_owner(self._store, credit_id, caller):
            raise NotTokenOwner(credit_id=credit_id, caller=caller)

    # ------------------------------------------------------------------
    # Mint
    # ------------------------------------------------------------------

    def mint(self, uri: str) -> int:
        """
        Mint one credit owned by the administrator.

        Raises:
            NotAuthorized: caller is not the administrator.
            InvalidUri: `uri` is not 1..max_uri_len characters.
        """
        with self._call("mint") as caller:
            self._require_admin(caller)
            return self._mint_one(caller, uri)

    def batch_mint(self, uris: Sequence[str]) -> List[int]:
        """
        Mint up to `policy.max_size` credits in order and return the new ids.

        Invalid uris are skipped without consuming an id, so the returned list
        may be shorter than `uris`.

        Raises:
            NotAuthorized: caller is not the administrator.
            InvalidBatchSize: `uris` is empty or longer than the batch cap.
        """
        if isinstance(uris, (str, bytes)):
            raise TypeError("uris must be a sequence of strings, not a string")
        items = list(uris)
        with self._call("batch_mint") as caller:
            self._require_admin(caller)
            outcome = run_batch(
                "batch_mint",
                items,
                lambda uri: self._mint_one(caller, uri),
                policy=self._policy,
                item_scope=self._item_scope,
            )
            return outcome.results

    # ------------------------------------------------------------------
    # Transfer
    # ------------------------------------------------------------------

    def transfer(self, credit_id: int, from_account: str, to: str) -> bool:
        """
        Pull-based transfer: completed by the recipient, never by the owner alone.

        Raises NotTokenOwner unless `to` is the caller, the credit is live and
        `from_account` currently owns it.
        """
        with self._call("transfer") as caller:
            bind(credit_id=credit_id)
            return self._transfer_one(caller, credit_id, from_account, to)

    def secure_transfer(self, credit_id: int, from_account: str, to: str) -> bool:
        """
        Stricter transfer: the caller must already own the credit, and the
        pull-based rules of `transfer` still apply on top.
        """
        with self._call("secure_transfer") as caller:
            bind(credit_id=credit_id)
            if not is_owner(self._store, credit_id, caller):
                raise NotTokenOwner(credit_id=credit_id, caller=caller)
            return self._transfer_one(caller, credit_id, from_account, to)

    # ------------------------------------------------------------------
    # Burn
    # ------------------------------------------------------------------

    def burn(self, credit_id: int) -> bool:
        """
        Retire a credit permanently. Its uri and metadata stay queryable.

        Raises:
            TokenNotFound: never minted.
            BurnFailed: already burned.
            NotTokenOwner: caller is not the owner.
        """
        with self._call("burn") as caller:
            bind(credit_id=credit_id)
            return self._burn_one(caller, credit_id)

    def batch_burn(self, credit_ids: Sequence[int]) -> bool:
        """
        Burn each id in order. Individual outcomes are not reported.

        Raises:
            InvalidBatchSize: `credit_ids` is empty or longer than the batch cap.
        """
        items = list(credit_ids)
        with self._call("batch_burn") as caller:
            run_batch(
                "batch_burn",
                items,
                lambda credit_id: self._burn_one(caller, credit_id),
                policy=self._policy,
                item_scope=self._item_scope,
            )
            return True

    # ------------------------------------------------------------------
    # URI & metadata maintenance
    # ------------------------------------------------------------------

    def update_uri(self, credit_id: int, uri: str) -> bool:
        with self._call("update_uri") as caller:
            bind(credit_id=credit_id)
            self._require_holder(caller, credit_id)
            require_valid_uri(uri, max_len=self.limits.max_uri_len)
            self._store.set_uri(credit_id, uri)
            self._emit(EVT_URI_UPDATED, credit_id, uri=uri)
            return True

    def add_metadata(self, credit_id: int, metadata: str) -> bool:
        """
        Attach (or overwrite) the credit's metadata string. Owner only; the
        empty string is allowed, longer than max_uri_len is not.
        """
        with self._call("add_metadata") as caller:
            bind(credit_id=credit_id)
            self._require_holder(caller, credit_id)
            require_valid_metadata(metadata, max_len=self.limits.max_uri_len)
            self._metadata.set(credit_id, metadata)
            self._emit(EVT_METADATA_ADDED, credit_id, metadata=metadata)
            return True

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def export_state(self) -> Dict[str, Any]:
        """
        Canonical, JSON-friendly snapshot of committed state:

            {"format": 1, "admin": str, "next_id": int,
             "credits": [{"id", "owner", "uri", "burned", "metadata"}, ...]}
        """
        with self._lock:
            return {
                "format": SNAPSHOT_FORMAT,
                "admin": self._admin,
                "next_id": self._query.next_id(),
                "credits": [d.to_dict() for d in self._query.list_all()],
            }

    def state_root(self) -> str:
        """SHA3-256 over the canonical JSON encoding of `export_state()`."""
        blob = json.dumps(self.export_state(), sort_keys=True, separators=(",", ":"))
        return "0x" + hashlib.sha3_256(blob.encode("utf-8")).hexdigest()

    def import_state(self, snapshot: Mapping[str, Any]) -> int:
        """
        Load a snapshot produced by `export_state()` into this (empty) ledger.
        Administrator only; no events are emitted. Returns the number of
        credits loaded.

        Raises:
            NotAuthorized: caller is not the administrator.
            LedgerConfigError: ledger is not empty, or the snapshot belongs
                to a different administrator.
            ValueError: the snapshot is malformed or violates a ledger invariant.
        """
        credits = _check_snapshot(snapshot, max_uri_len=self.limits.max_uri_len)
        with self._call("import_state") as caller:
            self._require_admin(caller)
            if snapshot.get("admin") != self._admin:
                raise LedgerConfigError(
                    "snapshot administrator does not match",
                    ctx={"snapshot": snapshot.get("admin"), "ledger": self._admin},
                )
            if self._store.next_id() != 1:
                raise LedgerConfigError("import requires an empty ledger")
            for c in credits:
                credit_id = self._store.allocate()
                self._store.set_uri(credit_id, c["uri"])
                if c["burned"]:
                    self._burns.mark(credit_id)
                else:
                    self._store.set_owner(credit_id, c["owner"])
                if c.get("metadata") is not None:
                    self._metadata.set(credit_id, c["metadata"])
            log.info("imported %d credits", len(credits))
            return len(credits)


def _check_snapshot(snapshot: Mapping[str, Any], *, max_uri_len: int) -> List[Dict[str, Any]]:
    if snapshot.get("format") != SNAPSHOT_FORMAT:
        raise ValueError(f"unsupported snapshot format: {snapshot.get('format')!r}")
    credits = snapshot.get("credits")
    if not isinstance(credits, list):
        raise ValueError("snapshot.credits must be a list")
    next_id = snapshot.get("next_id")
    if next_id != len(credits) + 1:
        raise ValueError("snapshot.next_id must equal the number of credits + 1")

    for expected, c in enumerate(credits, start=1):
        if not isinstance(c, dict) or c.get("id") != expected:
            raise ValueError(f"snapshot credit ids must be 1..n in order (at {expected})")
        if not is_valid_uri(c.get("uri"), max_len=max_uri_len):
            raise ValueError(f"credit {expected}: invalid uri")
        burned = c.get("burned")
        if not isinstance(burned, bool):
            raise ValueError(f"credit {expected}: burned must be a bool")
        owner = c.get("owner")
        if burned and owner is not None:
            raise ValueError(f"credit {expected}: burned credit must have no owner")
        if not burned and not is_account(owner):
            raise ValueError(f"credit {expected}: live credit must have an owner")
        md = c.get("metadata")
        if md is not None and not is_valid_metadata(md, max_len=max_uri_len):
            raise ValueError(f"credit {expected}: invalid metadata")
    return credits


__all__ = ["CreditLedger", "SNAPSHOT_FORMAT"]

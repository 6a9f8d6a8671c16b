"""
credit_ledger.events — ledger events and pluggable sinks.

Every successful mutation describes itself as one or more `LedgerEvent`s:

    Minted        {credit_id, owner, uri}
    Transferred   {credit_id, from, to}
    Burned        {credit_id, owner}
    UriUpdated    {credit_id, uri}
    MetadataAdded {credit_id, metadata}

The ledger buffers events while a call runs and hands them to the sink only
after the call has committed, so a failed call (or a skipped batch item)
publishes nothing.

Backends:

- InMemoryEventSink : keeps records in RAM; tests and embedding hosts.
- JsonlEventSink    : append-only JSONL file; durable and greppable.
- NullEventSink     : drops everything.

Each sink assigns a strictly increasing `seq` to the records it stores.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import (Any, Dict, Iterable, Iterator, List, Optional, Protocol,
                    Sequence, runtime_checkable)

log = logging.getLogger(__name__)

EVT_MINTED = "Minted"
EVT_TRANSFERRED = "Transferred"
EVT_BURNED = "Burned"
EVT_URI_UPDATED = "UriUpdated"
EVT_METADATA_ADDED = "MetadataAdded"


@dataclass(frozen=True)
class LedgerEvent:
    """An event as emitted by the ledger, before a sink sequences it."""

    name: str
    credit_id: int
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EventRecord:
    """A stored event with its sink-assigned sequence number."""

    seq: int
    event: LedgerEvent

    @property
    def name(self) -> str:
        return self.event.name

    @property
    def credit_id(self) -> int:
        return self.event.credit_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "name": self.event.name,
            "credit_id": self.event.credit_id,
            "args": dict(self.event.args),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "EventRecord":
        return cls(
            seq=int(d["seq"]),
            event=LedgerEvent(
                name=str(d["name"]),
                credit_id=int(d["credit_id"]),
                args=dict(d.get("args") or {}),
            ),
        )


@runtime_checkable
class EventSink(Protocol):
    def publish(self, events: Sequence[LedgerEvent]) -> List[EventRecord]:
        """Store events in order; returns the stored records."""
        ...

    def records(
        self, *, credit_id: Optional[int] = None, name: Optional[str] = None
    ) -> Iterator[EventRecord]:
        """Stored records in `seq` order, optionally filtered."""
        ...


def _matches(rec: EventRecord, credit_id: Optional[int], name: Optional[str]) -> bool:
    if credit_id is not None and rec.event.credit_id != credit_id:
        return False
    if name is not None and rec.event.name != name:
        return False
    return True


class InMemoryEventSink:
    def __init__(self) -> None:
        self._records: List[EventRecord] = []
        self._lock = threading.Lock()

    def publish(self, events: Sequence[LedgerEvent]) -> List[EventRecord]:
        with self._lock:
            out = []
            for ev in events:
                rec = EventRecord(seq=len(self._records) + 1, event=ev)
                self._records.append(rec)
                out.append(rec)
            return out

    def records(
        self, *, credit_id: Optional[int] = None, name: Optional[str] = None
    ) -> Iterator[EventRecord]:
        with self._lock:
            snapshot = list(self._records)
        return (r for r in snapshot if _matches(r, credit_id, name))

    def __len__(self) -> int:
        return len(self._records)


class JsonlEventSink:
    """
    Append-only JSONL file, one record per line. The next `seq` is recovered
    from the last line on open, so a reopened sink keeps counting.
    """

    def __init__(self, path: os.PathLike[str] | str) -> None:
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._seq = self._recover_seq()

    def _recover_seq(self) -> int:
        last = 0
        for rec in self._iter_file():
            last = rec.seq
        return last

    def _iter_file(self) -> Iterator[EventRecord]:
        if not self.path.exists():
            return
        with self.path.open("r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield EventRecord.from_dict(json.loads(line))
                except (ValueError, KeyError, TypeError):
                    log.warning("events: skipping malformed line %d in %s", lineno, self.path)

    def publish(self, events: Sequence[LedgerEvent]) -> List[EventRecord]:
        if not events:
            return []
        with self._lock:
            out = []
            lines = []
            for ev in events:
                self._seq += 1
                rec = EventRecord(seq=self._seq, event=ev)
                out.append(rec)
                lines.append(json.dumps(rec.to_dict(), sort_keys=True, separators=(",", ":")))
            with self.path.open("a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
                f.flush()
            return out

    def records(
        self, *, credit_id: Optional[int] = None, name: Optional[str] = None
    ) -> Iterator[EventRecord]:
        with self._lock:
            snapshot = list(self._iter_file())
        return (r for r in snapshot if _matches(r, credit_id, name))


class NullEventSink:
    def publish(self, events: Sequence[LedgerEvent]) -> List[EventRecord]:
        return []

    def records(
        self, *, credit_id: Optional[int] = None, name: Optional[str] = None
    ) -> Iterator[EventRecord]:
        return iter(())


def open_sink(path: Optional[os.PathLike[str] | str]) -> EventSink:
    """JSONL sink for a path, in-memory sink otherwise."""
    if path:
        return JsonlEventSink(path)
    return InMemoryEventSink()


def names(records: Iterable[EventRecord]) -> List[str]:
    return [r.event.name for r in records]


__all__ = [
    "EVT_MINTED",
    "EVT_TRANSFERRED",
    "EVT_BURNED",
    "EVT_URI_UPDATED",
    "EVT_METADATA_ADDED",
    "LedgerEvent",
    "EventRecord",
    "EventSink",
    "InMemoryEventSink",
    "JsonlEventSink",
    "NullEventSink",
    "open_sink",
    "names",
]

"""
credit_ledger.state.journal — journaled writes, checkpoints, revert/commit.

A deterministic write journal layered over a KV backend. It supports nested
checkpoints via a stack of overlays. Writes go to the top overlay; reads
consult overlays from top → base, then the KV. `commit()` merges the top
overlay into the next layer, or flushes it to the KV in a single atomic batch
when it is the last one. `revert()` discards the top overlay.

Intended usage
--------------
    j = WriteJournal(kv)
    with j.transaction():           # one ledger call
        j.put(k, v)
        with j.transaction():       # one batch item; reverts alone on error
            j.delete(k2)

Every ledger mutation runs inside `transaction()`, so a raised error leaves no
staged write behind and a successful call reaches the KV all at once.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from ..db.kv import KV

# None marks a deletion staged in an overlay.
_Overlay = Dict[bytes, Optional[bytes]]


class WriteJournal:
    """Overlay stack over a KV."""

    def __init__(self, kv: KV) -> None:
        self._kv = kv
        self._layers: List[_Overlay] = []

    # ------------------------------ checkpoints ------------------------------

    def depth(self) -> int:
        return len(self._layers)

    def begin(self) -> int:
        """Open a checkpoint. Returns the new depth."""
        self._layers.append({})
        return len(self._layers)

    def commit(self) -> None:
        """Merge the top overlay down, or flush it to the KV if it is the last."""
        if not self._layers:
            raise RuntimeError("commit without an open checkpoint")
        top = self._layers.pop()
        if self._layers:
            self._layers[-1].update(top)
            return
        if not top:
            return
        with self._kv.batch() as b:
            for key in sorted(top):
                value = top[key]
                if value is None:
                    b.delete(key)
                else:
                    b.put(key, value)

    def revert(self) -> None:
        """Discard the top overlay."""
        if not self._layers:
            raise RuntimeError("revert without an open checkpoint")
        self._layers.pop()

    @contextmanager
    def transaction(self) -> Iterator["WriteJournal"]:
        self.begin()
        try:
            yield self
        except BaseException:
            self.revert()
            raise
        self.commit()

    # ------------------------------ reads ------------------------------------

    def get(self, key: bytes) -> Optional[bytes]:
        for layer in reversed(self._layers):
            if key in layer:
                return layer[key]
        return self._kv.get(key)

    def has(self, key: bytes) -> bool:
        return self.get(key) is not None

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """Merged view of KV + overlays, in key order."""
        merged: Dict[bytes, Optional[bytes]] = dict(self._kv.iter_prefix(prefix))
        for layer in self._layers:
            for k, v in layer.items():
                if k.startswith(prefix):
                    merged[k] = v
        for k in sorted(merged):
            v = merged[k]
            if v is not None:
                yield k, v

    # ------------------------------ writes -----------------------------------

    def _top(self) -> _Overlay:
        if not self._layers:
            raise RuntimeError("write outside of a checkpoint")
        return self._layers[-1]

    def put(self, key: bytes, value: bytes) -> None:
        self._top()[bytes(key)] = bytes(value)

    def delete(self, key: bytes) -> None:
        self._top()[bytes(key)] = None


__all__ = ["WriteJournal"]

"""
credit_ledger.batch — the partial-failure policy for batch mint/burn.

A batch is a bounded sequence of single-item operations evaluated inside one
ledger call. What happens when one item fails is a *policy*, not an accident
of the loop:

    BatchPolicy(skip_invalid=True)   default; a failing item is rolled back on
                                     its own and silently dropped. The batch
                                     carries on and the caller is not told
                                     which items were dropped.
    BatchPolicy(skip_invalid=False)  strict; the first failing item aborts the
                                     whole call and nothing from it lands.

Only `LedgerError`s count as item failures. Anything else is a bug and always
propagates.

`run_batch` reports what happened in a `BatchOutcome`; the ledger decides how
much of that to expose (batch mint returns the applied ids, batch burn
returns only True).
"""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Callable, Generic, List, Sequence, Tuple, TypeVar

from . import metrics
from .config import DEFAULT_MAX_BATCH
from .errors import LedgerError
from .validation import require_batch_size

log = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class BatchPolicy:
    max_size: int = DEFAULT_MAX_BATCH
    skip_invalid: bool = True

    def __post_init__(self) -> None:
        if self.max_size <= 0:
            raise ValueError("max_size must be > 0")


@dataclass
class BatchOutcome(Generic[R]):
    applied: List[Tuple[int, R]] = field(default_factory=list)
    skipped: List[Tuple[int, LedgerError]] = field(default_factory=list)

    @property
    def results(self) -> List[R]:
        return [r for _, r in self.applied]


def run_batch(
    op: str,
    items: Sequence[T],
    apply_one: Callable[[T], R],
    *,
    policy: BatchPolicy,
    item_scope: Callable[[], AbstractContextManager],
) -> BatchOutcome[R]:
    """
    Apply `apply_one` to each item in order.

    `item_scope()` must return a context manager that rolls back everything
    the item staged when an exception leaves it (the ledger passes a journal
    checkpoint that also trims buffered events).

    Raises InvalidBatchSize before touching any item when the batch is empty
    or larger than `policy.max_size`.
    """
    require_batch_size(items, max_size=policy.max_size)

    outcome: BatchOutcome[R] = BatchOutcome()
    for index, item in enumerate(items):
        try:
            with item_scope():
                result = apply_one(item)
        except LedgerError as e:
            if not policy.skip_invalid:
                raise
            outcome.skipped.append((index, e))
            metrics.observe_batch_item(op=op, applied=False)
            log.debug("%s: skipped item %d: %s", op, index, e)
            continue
        outcome.applied.append((index, result))
        metrics.observe_batch_item(op=op, applied=True)

    if outcome.skipped:
        log.debug(
            "%s: applied=%d skipped=%d", op, len(outcome.applied), len(outcome.skipped)
        )
    return outcome


__all__ = ["BatchPolicy", "BatchOutcome", "run_batch"]

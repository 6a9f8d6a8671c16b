"""
credit_ledger.metrics — Prometheus counters & histograms for ledger operations.

Design goals
------------
* Centralized registry: consumers can call `get_registry()` and `generate_latest_text()`
  to expose metrics via HTTP from whatever host embeds the ledger.
* Simple helpers: `observe_op(...)`, `observe_batch_item(...)` and `time_op(...)`
  cover the paths the ledger needs.

Exposed metrics (names are prefixed with `credit_ledger_`):
  - ops_total{op,result}               : Counter — calls by outcome
  - batch_items_total{op,outcome}      : Counter — batch entries applied / skipped
  - op_seconds{op}                     : Histogram — wall time per call

Labels:
  - op      ∈ {mint, batch_mint, transfer, secure_transfer, burn, batch_burn,
               update_uri, add_metadata}
  - result  ∈ {success} ∪ error kinds (NotAuthorized, NotTokenOwner, ...)
  - outcome ∈ {applied, skipped}
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from prometheus_client import (CONTENT_TYPE_LATEST, CollectorRegistry, Counter,
                               Histogram, generate_latest)

_PREFIX = "credit_ledger_"


def _buckets_from_env(name: str, default: Iterable[float]) -> Iterable[float]:
    raw = os.getenv(name)
    if not raw:
        return default
    out = []
    for tok in raw.split(","):
        tok = tok.strip()
        if not tok:
            continue
        try:
            out.append(float(tok))
        except ValueError:
            continue
    return out or default


_OP_SECONDS_BUCKETS = tuple(_buckets_from_env(
    "CREDIT_LEDGER_METRICS_OP_SECONDS_BUCKETS",
    # 100µs .. 5s
    (0.0001, 0.00025, 0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1,
     0.25, 0.5, 1.0, 2.5, 5.0),
))


# ------------------------------ registry & ctor ------------------------------

_registry: Optional[CollectorRegistry] = None

# Metric singletons (bound during _build_metrics)
OPS_TOTAL: Counter
BATCH_ITEMS_TOTAL: Counter
OP_SECONDS: Histogram


def set_registry(registry: CollectorRegistry) -> None:
    """
    Inject a custom CollectorRegistry (e.g. an app-global one).
    Must be called before the first metric is recorded.
    """
    global _registry
    if _registry is not None:
        return
    _registry = registry
    _build_metrics(registry)


def get_registry() -> CollectorRegistry:
    """Return the metrics registry, creating one on first use."""
    global _registry
    if _registry is None:
        _registry = CollectorRegistry()
        _build_metrics(_registry)
    return _registry


def _build_metrics(reg: CollectorRegistry) -> None:
    global OPS_TOTAL, BATCH_ITEMS_TOTAL, OP_SECONDS

    OPS_TOTAL = Counter(
        _PREFIX + "ops_total",
        "Ledger calls by operation and result.",
        labelnames=("op", "result"),
        registry=reg,
    )
    BATCH_ITEMS_TOTAL = Counter(
        _PREFIX + "batch_items_total",
        "Batch entries by operation and outcome.",
        labelnames=("op", "outcome"),
        registry=reg,
    )
    OP_SECONDS = Histogram(
        _PREFIX + "op_seconds",
        "Wall time per ledger call.",
        labelnames=("op",),
        buckets=_OP_SECONDS_BUCKETS,
        registry=reg,
    )


# ------------------------------ helpers -------------------------------------


def observe_op(*, op: str, result: str) -> None:
    """Count one ledger call. `result` is 'success' or the error kind."""
    get_registry()
    OPS_TOTAL.labels(op=op, result=result or "error").inc()


def observe_batch_item(*, op: str, applied: bool) -> None:
    get_registry()
    BATCH_ITEMS_TOTAL.labels(op=op, outcome="applied" if applied else "skipped").inc()


@dataclass
class _TimerCtx:
    op: str
    t0: float = field(default_factory=time.perf_counter)

    def stop(self) -> float:
        dt = max(0.0, time.perf_counter() - self.t0)
        OP_SECONDS.labels(op=self.op).observe(dt)
        return dt

    def __enter__(self) -> "_TimerCtx":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


def time_op(op: str) -> _TimerCtx:
    """
    Context manager timing one ledger call.

        with time_op("mint"):
            ...
    """
    get_registry()
    return _TimerCtx(op=op)


def sample(name: str, labels: Optional[Dict[str, str]] = None) -> float:
    """Read back a sample value from the ledger registry (0.0 when absent)."""
    value = get_registry().get_sample_value(name, labels or {})
    return float(value) if value is not None else 0.0


# ------------------------------ exposition ----------------------------------


def generate_latest_text() -> bytes:
    """Prometheus exposition format for the ledger registry."""
    return generate_latest(get_registry())


__all__ = [
    "get_registry",
    "set_registry",
    "generate_latest_text",
    "observe_op",
    "observe_batch_item",
    "time_op",
    "sample",
    "CONTENT_TYPE_LATEST",
]

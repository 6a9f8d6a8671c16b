"""
credit_ledger.config — runtime configuration for the credit ledger.

This module centralizes knobs for:
  • Storage location (KV URI: memory:// or sqlite:///path)
  • The construction-time administrator account
  • Limits (batch cap, page cap, URI/metadata length)
  • Batch policy (silent skip of invalid items vs. strict)
  • Optional JSONL event log path

Configuration may be provided via environment variables. Safe defaults are chosen so a
local developer run works out of the box.

Environment variables (all optional):
  CREDIT_LEDGER_DB             -> KV URI (default: memory://)
  CREDIT_LEDGER_ADMIN          -> administrator account id (default: unset)
  CREDIT_LEDGER_MAX_BATCH      -> integer (default: 50)
  CREDIT_LEDGER_MAX_PAGE       -> integer (default: 50)
  CREDIT_LEDGER_MAX_URI_LEN    -> integer (default: 256)
  CREDIT_LEDGER_SKIP_INVALID   -> 0/1/true/false (default: 1)
  CREDIT_LEDGER_EVENTS         -> path to a JSONL event log (default: unset)
  CREDIT_LEDGER_LOG_LEVEL      -> DEBUG/INFO/... (default: INFO)
  CREDIT_LEDGER_LOG_FORMAT     -> json/text (default: auto)

Programmatic usage:
    from credit_ledger.config import get_config
    cfg = get_config()
    if cfg.batch_skip_invalid:
        ...

Note: this module does not touch the filesystem; it only reads env vars.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from .errors import LedgerConfigError

# ----------------------------- helpers -------------------------------------


_BOOL_TRUE = {"1", "true", "t", "yes", "y", "on"}
_BOOL_FALSE = {"0", "false", "f", "no", "n", "off"}


def _bool_env(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    v = value.strip().lower()
    if v in _BOOL_TRUE:
        return True
    if v in _BOOL_FALSE:
        return False
    return bool(v) if v != "" else default


def _int_value(raw: Union[str, int], *, name: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise LedgerConfigError(f"{name} must be an integer", ctx={"value": str(raw)}) from e


# ------------------------------ dataclasses ---------------------------------

DEFAULT_MAX_BATCH = 50
DEFAULT_MAX_PAGE = 50
DEFAULT_MAX_URI_LEN = 256


@dataclass(frozen=True)
class Limits:
    max_batch_size: int = DEFAULT_MAX_BATCH
    max_page_size: int = DEFAULT_MAX_PAGE
    max_uri_len: int = DEFAULT_MAX_URI_LEN


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    fmt: Optional[str] = None  # "json" | "text" | None (auto)


@dataclass(frozen=True)
class LedgerConfig:
    db_uri: str = "memory://"
    admin: Optional[str] = None
    limits: Limits = field(default_factory=Limits)
    batch_skip_invalid: bool = True
    events_path: Optional[Path] = None
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, object]:
        d = asdict(self)
        d["events_path"] = str(self.events_path) if self.events_path else None
        return d


# ------------------------------ loader --------------------------------------


def _validate_limits(l: Limits) -> Limits:
    if l.max_batch_size <= 0:
        raise LedgerConfigError("max_batch_size must be > 0", ctx={"value": l.max_batch_size})
    if l.max_page_size <= 0:
        raise LedgerConfigError("max_page_size must be > 0", ctx={"value": l.max_page_size})
    if l.max_uri_len <= 0:
        raise LedgerConfigError("max_uri_len must be > 0", ctx={"value": l.max_uri_len})
    return l


def load_config(
    env: Optional[Mapping[str, str]] = None,
    *,
    overrides: Optional[Mapping[str, Union[str, int, bool, Path, None]]] = None,
) -> LedgerConfig:
    """
    Build a LedgerConfig from environment and optional overrides.

    Args:
        env: mapping to read variables from (default: os.environ)
        overrides: explicit field overrides; keys support:
          'db_uri', 'admin', 'max_batch_size', 'max_page_size', 'max_uri_len',
          'batch_skip_invalid', 'events_path', 'log_level', 'log_format'

    Overrides win over the environment.
    """
    env = os.environ if env is None else env
    overrides = dict(overrides or {})

    db_uri = str(overrides.get("db_uri") or env.get("CREDIT_LEDGER_DB") or "memory://")

    admin_raw = overrides.get("admin", env.get("CREDIT_LEDGER_ADMIN"))
    admin = str(admin_raw).strip() if admin_raw else None

    limits = Limits(
        max_batch_size=_int_value(
            overrides.get("max_batch_size", env.get("CREDIT_LEDGER_MAX_BATCH", DEFAULT_MAX_BATCH)),
            name="max_batch_size",
        ),
        max_page_size=_int_value(
            overrides.get("max_page_size", env.get("CREDIT_LEDGER_MAX_PAGE", DEFAULT_MAX_PAGE)),
            name="max_page_size",
        ),
        max_uri_len=_int_value(
            overrides.get("max_uri_len", env.get("CREDIT_LEDGER_MAX_URI_LEN", DEFAULT_MAX_URI_LEN)),
            name="max_uri_len",
        ),
    )
    limits = _validate_limits(limits)

    if "batch_skip_invalid" in overrides:
        skip_invalid = bool(overrides["batch_skip_invalid"])
    else:
        skip_invalid = _bool_env(env.get("CREDIT_LEDGER_SKIP_INVALID"), True)

    events_raw = overrides.get("events_path", env.get("CREDIT_LEDGER_EVENTS"))
    events_path = Path(str(events_raw)).expanduser() if events_raw else None

    log_fmt = overrides.get("log_format", env.get("CREDIT_LEDGER_LOG_FORMAT"))
    logging_cfg = LoggingConfig(
        level=str(overrides.get("log_level", env.get("CREDIT_LEDGER_LOG_LEVEL", "INFO"))).upper(),
        fmt=str(log_fmt).strip().lower() if log_fmt else None,
    )

    return LedgerConfig(
        db_uri=db_uri,
        admin=admin,
        limits=limits,
        batch_skip_invalid=skip_invalid,
        events_path=events_path,
        logging=logging_cfg,
    )


@lru_cache(maxsize=1)
def get_config() -> LedgerConfig:
    """
    Cached global config. Suitable for application bootstraps and module-level consumers.
    """
    return load_config()


# ----------------------------- pretty-print ---------------------------------


def summary(cfg: Optional[LedgerConfig] = None) -> str:
    """
    Return a human-friendly one-line summary of the most important knobs.
    """
    cfg = cfg or get_config()
    l = cfg.limits
    return (
        "ledger{"
        f"db={cfg.db_uri}, admin={cfg.admin or '-'}, "
        f"batch={l.max_batch_size}, page={l.max_page_size}, uri={l.max_uri_len}, "
        f"skip_invalid={int(cfg.batch_skip_invalid)}, "
        f"events={cfg.events_path or '-'}"
        "}"
    )


__all__ = [
    "Limits",
    "LoggingConfig",
    "LedgerConfig",
    "load_config",
    "get_config",
    "summary",
    "DEFAULT_MAX_BATCH",
    "DEFAULT_MAX_PAGE",
    "DEFAULT_MAX_URI_LEN",
]

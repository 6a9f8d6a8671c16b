"""
credit-ledger - command line for a credit ledger stored in a KV database.

Commands:
  mint / batch-mint              administrator mints credits
  transfer / secure-transfer     recipient pulls a credit from its owner
  burn / batch-burn              owner retires credits
  update-uri / add-metadata      owner maintains a credit
  show / page / list / stats     read-only views
  events                         recorded ledger events (needs --events)
  export / import                canonical JSON snapshots
  version                        package version

Global options:
  --db TEXT        KV URI (memory://, sqlite:///path or a bare path)
  --caller TEXT    Account acting on this call (default: the administrator)
  --admin TEXT     Administrator account (required when creating a ledger)
  --events PATH    Append ledger events to this JSONL file
  --json           Output JSON instead of human-readable text
  --verbose / -v   Debug logging to stderr

Examples:
  credit-ledger --db ledger.db --admin acct:admin mint ipfs://credit-1
  credit-ledger --db ledger.db --caller acct:bob transfer 1 acct:admin acct:bob
  credit-ledger --db ledger.db page 1 10 --lenient
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, List, Optional, TypeVar

import typer

from .. import logging as llog
from ..config import LedgerConfig, load_config, summary
from ..errors import LedgerError
from ..events import open_sink
from ..identity import ContextIdentity
from ..ledger import CreditLedger
from ..types import CreditDetail
from ..version import __version__, version_metadata

app = typer.Typer(
    name="credit-ledger",
    help="Mint, transfer, burn and query ledger credits",
    no_args_is_help=True,
    add_completion=False,
)

T = TypeVar("T")


class GlobalContext:
    def __init__(self) -> None:
        self.db: Optional[str] = None
        self.caller: Optional[str] = None
        self.admin: Optional[str] = None
        self.events: Optional[str] = None
        self.json_output: bool = False
        self.verbose: bool = False


_ctx = GlobalContext()


@app.callback()
def main_callback(
    db: Optional[str] = typer.Option(
        None,
        "--db",
        help="KV URI (memory://, sqlite:///path or a bare path)",
        envvar="CREDIT_LEDGER_DB",
    ),
    caller: Optional[str] = typer.Option(
        None,
        "--caller",
        help="Account acting on this call (default: the administrator)",
        envvar="CREDIT_LEDGER_CALLER",
    ),
    admin: Optional[str] = typer.Option(
        None,
        "--admin",
        help="Administrator account (required when creating a ledger)",
        envvar="CREDIT_LEDGER_ADMIN",
    ),
    events: Optional[str] = typer.Option(
        None,
        "--events",
        help="Append ledger events to this JSONL file",
        envvar="CREDIT_LEDGER_EVENTS",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output JSON instead of human-readable text",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Debug logging to stderr (overrides CREDIT_LEDGER_LOG_LEVEL)",
    ),
) -> None:
    """
    Credit ledger CLI.

    Settings resolve in this order (highest first):
      1. Command-line flags
      2. Environment variables (CREDIT_LEDGER_DB, CREDIT_LEDGER_ADMIN, ...)
      3. Built-in defaults (memory://, batch cap 50, page cap 50)
    """
    _ctx.db = db
    _ctx.caller = caller
    _ctx.admin = admin
    _ctx.events = events
    _ctx.json_output = json_output
    _ctx.verbose = verbose


# ----------------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------------


def _config(**extra: Any) -> LedgerConfig:
    overrides: dict = dict(extra)
    if _ctx.db:
        overrides["db_uri"] = _ctx.db
    if _ctx.admin:
        overrides["admin"] = _ctx.admin
    if _ctx.events:
        overrides["events_path"] = _ctx.events
    if _ctx.verbose:
        overrides["log_level"] = "DEBUG"
    return load_config(overrides=overrides)


def _run(fn: Callable[[CreditLedger], T], **extra: Any) -> T:
    """
    Open the ledger, run `fn` as the configured caller and close it again.
    Ledger errors become `Error: [CODE] msg` on stderr and exit status 1.
    """
    ident = ContextIdentity()
    try:
        cfg = _config(**extra)
        llog.configure_from_config(cfg)
        if _ctx.verbose:
            typer.echo(summary(cfg), err=True)
        ledger = CreditLedger.from_config(cfg, identity=ident)
        try:
            with ident.as_caller(_ctx.caller or ledger.admin):
                return fn(ledger)
        finally:
            ledger.close()
    except LedgerError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _pretty(obj: Any) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False)


def _emit(obj: Any, text: str) -> None:
    typer.echo(_pretty(obj) if _ctx.json_output else text)


def _detail_line(d: CreditDetail) -> str:
    owner = d.owner or "-"
    state = "burned" if d.burned else "live"
    line = f"#{d.id:<6} {state:<6} owner={owner} uri={d.uri}"
    if d.metadata is not None:
        line += f" metadata={d.metadata}"
    return line


# ----------------------------------------------------------------------------
# Mutations
# ----------------------------------------------------------------------------


@app.command()
def mint(uri: str = typer.Argument(..., help="Credit URI (1-256 characters)")) -> None:
    """Mint one credit (administrator only)."""
    credit_id = _run(lambda ledger: ledger.mint(uri))
    _emit({"id": credit_id}, str(credit_id))


@app.command("batch-mint")
def batch_mint(
    uris: List[str] = typer.Argument(..., help="Credit URIs, at most 50"),
    strict: bool = typer.Option(
        False, "--strict", help="Abort the whole batch on the first invalid URI"
    ),
) -> None:
    """Mint several credits; invalid URIs are skipped unless --strict."""
    extra = {"batch_skip_invalid": False} if strict else {}
    ids = _run(lambda ledger: ledger.batch_mint(uris), **extra)
    _emit({"ids": ids}, " ".join(str(i) for i in ids) if ids else "(none minted)")


@app.command()
def transfer(
    credit_id: int = typer.Argument(..., help="Credit id"),
    from_account: str = typer.Argument(..., help="Current owner"),
    to: str = typer.Argument(..., help="Recipient (must be the caller)"),
) -> None:
    """Pull a credit from its owner to the caller."""
    ok = _run(lambda ledger: ledger.transfer(credit_id, from_account, to))
    _emit({"ok": ok}, f"transferred #{credit_id} {from_account} -> {to}")


@app.command("secure-transfer")
def secure_transfer(
    credit_id: int = typer.Argument(..., help="Credit id"),
    from_account: str = typer.Argument(..., help="Current owner"),
    to: str = typer.Argument(..., help="Recipient (must be the caller)"),
) -> None:
    """Transfer that additionally requires the caller to own the credit."""
    ok = _run(lambda ledger: ledger.secure_transfer(credit_id, from_account, to))
    _emit({"ok": ok}, f"transferred #{credit_id} {from_account} -> {to}")


@app.command()
def burn(credit_id: int = typer.Argument(..., help="Credit id")) -> None:
    """Burn a credit you own. Irreversible."""
    ok = _run(lambda ledger: ledger.burn(credit_id))
    _emit({"ok": ok}, f"burned #{credit_id}")


@app.command("batch-burn")
def batch_burn(credit_ids: List[int] = typer.Argument(..., help="Credit ids, at most 50")) -> None:
    """Burn several credits; individual failures are not reported."""
    ok = _run(lambda ledger: ledger.batch_burn(credit_ids))
    _emit({"ok": ok}, "ok")


@app.command("update-uri")
def update_uri(
    credit_id: int = typer.Argument(..., help="Credit id"),
    uri: str = typer.Argument(..., help="New URI (1-256 characters)"),
) -> None:
    """Replace the URI of a credit you own."""
    ok = _run(lambda ledger: ledger.update_uri(credit_id, uri))
    _emit({"ok": ok}, f"updated #{credit_id}")


@app.command("add-metadata")
def add_metadata(
    credit_id: int = typer.Argument(..., help="Credit id"),
    metadata: str = typer.Argument(..., help="Metadata string (at most 256 characters, may be empty)"),
) -> None:
    """Attach or overwrite metadata on a credit you own."""
    ok = _run(lambda ledger: ledger.add_metadata(credit_id, metadata))
    _emit({"ok": ok}, f"metadata set on #{credit_id}")


# ----------------------------------------------------------------------------
# Queries
# ----------------------------------------------------------------------------


@app.command()
def show(credit_id: int = typer.Argument(..., help="Credit id")) -> None:
    """Show one credit."""
    d = _run(lambda ledger: ledger.query.detail(credit_id))
    _emit(d.to_dict(), _detail_line(d))


@app.command()
def page(
    start: int = typer.Argument(..., help="First id"),
    count: int = typer.Argument(..., help="Number of ids (capped at the page limit)"),
    lenient: bool = typer.Option(
        False, "--lenient", help="Report unminted ids per item instead of failing"
    ),
) -> None:
    """Show a page of credits."""
    if count < 0:
        typer.echo("Error: count must be >= 0", err=True)
        raise typer.Exit(1)

    if lenient:
        results = _run(lambda ledger: ledger.query.paginate_results(start, count))
        if _ctx.json_output:
            typer.echo(_pretty([r.to_dict() for r in results]))
            return
        for r in results:
            if r.detail is not None:
                typer.echo(_detail_line(r.detail))
            else:
                typer.echo(f"#{r.id:<6} error  {r.error}")
        return

    details = _run(lambda ledger: ledger.query.paginate(start, count))
    if _ctx.json_output:
        typer.echo(_pretty([d.to_dict() for d in details]))
        return
    for d in details:
        typer.echo(_detail_line(d))


@app.command("list")
def list_credits(
    field: Optional[str] = typer.Option(
        None, "--field", help="Only one column: uris, owners or burned"
    ),
) -> None:
    """List every minted credit."""
    projections = {
        "uris": lambda ledger: ledger.query.list_all_uris(),
        "owners": lambda ledger: ledger.query.list_all_owners(),
        "burned": lambda ledger: ledger.query.list_all_burn_status(),
    }
    if field is not None:
        if field not in projections:
            typer.echo(f"Error: unknown field {field!r} (uris, owners, burned)", err=True)
            raise typer.Exit(1)
        values = _run(projections[field])
        if _ctx.json_output:
            typer.echo(_pretty(values))
        else:
            for i, v in enumerate(values, start=1):
                typer.echo(f"#{i:<6} {'-' if v is None else v}")
        return

    details = _run(lambda ledger: ledger.query.list_all())
    if _ctx.json_output:
        typer.echo(_pretty([d.to_dict() for d in details]))
        return
    for d in details:
        typer.echo(_detail_line(d))


@app.command()
def stats() -> None:
    """Minted / burned / live counters."""
    s = _run(lambda ledger: ledger.query.stats())
    _emit(s, "  ".join(f"{k}={v}" for k, v in s.items()))


@app.command()
def events(
    credit_id: Optional[int] = typer.Option(None, "--credit-id", help="Only this credit"),
    name: Optional[str] = typer.Option(None, "--name", help="Only this event name"),
) -> None:
    """Show events recorded in the --events JSONL log."""
    cfg = _config()
    llog.configure_from_config(cfg)
    if cfg.events_path is None:
        typer.echo("Error: no event log configured (use --events)", err=True)
        raise typer.Exit(1)
    records = list(open_sink(cfg.events_path).records(credit_id=credit_id, name=name))
    if _ctx.json_output:
        typer.echo(_pretty([r.to_dict() for r in records]))
        return
    for r in records:
        args = " ".join(f"{k}={v}" for k, v in sorted(r.event.args.items()))
        typer.echo(f"{r.seq:>6} {r.name:<14} #{r.credit_id} {args}")


# ----------------------------------------------------------------------------
# Snapshots
# ----------------------------------------------------------------------------


@app.command("export")
def export_state(
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write snapshot to this file"),
) -> None:
    """Export a canonical JSON snapshot (and its state root)."""

    def _do(ledger: CreditLedger) -> dict:
        snap = ledger.export_state()
        snap["state_root"] = ledger.state_root()
        return snap

    snap = _run(_do)
    text = _pretty(snap)
    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text + "\n", encoding="utf-8")
        typer.echo(snap["state_root"])
        return
    typer.echo(text)


@app.command("import")
def import_state(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Snapshot JSON file"),
) -> None:
    """Load a snapshot into an empty ledger (administrator only)."""
    try:
        snap = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        typer.echo(f"Error: cannot read snapshot: {e}", err=True)
        raise typer.Exit(1)
    expected_root = snap.pop("state_root", None)

    def _do(ledger: CreditLedger) -> dict:
        n = ledger.import_state(snap)
        return {"imported": n, "state_root": ledger.state_root()}

    res = _run(_do)
    if expected_root is not None and expected_root != res["state_root"]:
        typer.echo(
            f"Warning: state root {res['state_root']} differs from snapshot {expected_root}",
            err=True,
        )
    _emit(res, f"imported {res['imported']} credits, state_root={res['state_root']}")


@app.command()
def version() -> None:
    """Show the package version."""
    if _ctx.json_output:
        typer.echo(_pretty(version_metadata()))
        return
    typer.echo(__version__)


def main() -> None:
    """Entry point for the credit-ledger CLI."""
    app()


if __name__ == "__main__":
    main()

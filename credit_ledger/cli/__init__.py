"""
credit_ledger.cli — the `credit-ledger` command line.

See `credit_ledger.cli.main` for commands and global options.
"""

from .main import app, main

__all__ = ["app", "main"]

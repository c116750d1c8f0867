"""Shared setup for CLI commands that touch the ledger."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

import click

from atlas.errors import AtlasError
from atlas.portfolio.ledger import Ledger


def fail(message: str) -> None:
    """Report an error on stderr and end the command with exit code 1."""
    click.echo(f"Error: {message}", err=True)
    raise SystemExit(1)


@contextmanager
def open_ledger(ctx: click.Context) -> Generator[Ledger, None, None]:
    """Load config, open and migrate the database, and yield a Ledger.

    Engine and input errors raised inside the block end the command via
    :func:`fail`.
    """
    from atlas.config.loader import load_config, resolve_path
    from atlas.storage.database import Database
    from atlas.storage.migrations import ensure_schema

    try:
        config = load_config(ctx.obj.get("config_path"))
    except AtlasError as e:
        fail(str(e))

    with Database(resolve_path(config.database.path)) as db:
        ensure_schema(db)
        try:
            yield Ledger(db, config)
        except (AtlasError, ValueError) as e:
            fail(str(e))

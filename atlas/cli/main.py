"""Top-level CLI entry point for Atlas."""

from __future__ import annotations

import logging

import click

from atlas import __version__
from atlas.cli.session import open_ledger


@click.group()
@click.version_option(version=__version__, prog_name="atlas")
@click.option(
    "--config",
    type=click.Path(),
    default=None,
    envvar="ATLAS_CONFIG",
    help="Path to config.yaml",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Atlas -- multi-account portfolio ledger and risk engine."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


# Register sub-commands
from atlas.cli.config_cmd import config_group  # noqa: E402
from atlas.cli.holdings_cmd import holdings_cmd, risk_group  # noqa: E402
from atlas.cli.reference_cmd import (  # noqa: E402
    account_group,
    member_group,
    org_group,
    security_group,
)
from atlas.cli.sync_cmd import sync_cmd  # noqa: E402
from atlas.cli.tx_cmd import tx_group  # noqa: E402

cli.add_command(account_group, "account")
cli.add_command(config_group, "config")
cli.add_command(holdings_cmd, "holdings")
cli.add_command(member_group, "member")
cli.add_command(org_group, "org")
cli.add_command(risk_group, "risk")
cli.add_command(security_group, "security")
cli.add_command(sync_cmd, "sync")
cli.add_command(tx_group, "tx")


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create or migrate the ledger and load organizations and accounts from config."""
    with open_ledger(ctx) as ledger:
        n_orgs, n_accounts = ledger.seed_from_config()
        click.echo(f"Ledger: {ledger.db.path} (schema v{ledger.db.schema_version()})")

    if n_orgs or n_accounts:
        click.echo(f"Seeded {n_orgs} organizations and {n_accounts} accounts from config.")
    else:
        click.echo("No organizations in config; add them with `atlas org add`.")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()

"""CLI command: atlas sync -- reconcile a broker holdings CSV into the ledger."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from atlas.cli.session import open_ledger

logger = logging.getLogger(__name__)


@click.command("sync")
@click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--org", "org_id", required=True, help="Organization ID")
@click.option("--account", "account_id", required=True, help="Account the snapshot belongs to")
@click.option("--date", "as_of", default=None, help="Date for adjustments (default today)")
@click.pass_context
def sync_cmd(
    ctx: click.Context,
    csv_path: str,
    org_id: str,
    account_id: str,
    as_of: str | None,
) -> None:
    """Append ADJUST entries so ACCOUNT matches the holdings in CSV_PATH.

    Existing transactions are never changed. Running the same file twice
    adds nothing the second time.
    """
    from atlas.data.snapshot_sync import sync_holdings_csv

    text = Path(csv_path).read_text(encoding="utf-8-sig")

    with open_ledger(ctx) as ledger:
        result = sync_holdings_csv(ledger, org_id, text, account_id, today=as_of)
        tickers = {s.id: s.ticker for s in ledger.securities().values()}

    click.echo(f"Snapshot sync: {csv_path} -> {account_id}")
    click.echo("=" * 40)
    click.echo(f"Rows processed: {result.rows_processed}")
    if result.rows_skipped:
        click.echo(f"Rows skipped:   {result.rows_skipped}")
    if result.securities_created:
        click.echo(f"New securities: {', '.join(result.securities_created)} "
                   f"(placeholder prices, refresh with `atlas security price`)")

    if not result.adjustments:
        click.echo("Ledger already matches the snapshot.")
        return

    click.echo(f"\nAdjustments ({len(result.adjustments)}):")
    for tx in result.adjustments:
        click.echo(f"  {tickers.get(tx.security_id, tx.security_id):<10} {tx.quantity:+g} @ {tx.price:g}")

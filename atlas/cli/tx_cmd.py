"""Transaction CLI commands: add, list."""

from __future__ import annotations

import click

from atlas.cli.session import open_ledger

_TYPES = ["BUY", "SELL", "DIVIDEND", "SPLIT", "ADJUST"]


@click.group("tx")
def tx_group() -> None:
    """Record and inspect ledger transactions."""
    pass


@tx_group.command("add")
@click.argument("ticker")
@click.option("--account", "account_id", required=True, help="Account ID")
@click.option("--qty", "quantity", type=float, required=True, help="Units traded")
@click.option("--price", type=float, required=True, help="Execution price per unit")
@click.option(
    "--type", "tx_type",
    type=click.Choice(_TYPES, case_sensitive=False),
    default="BUY",
    show_default=True,
)
@click.option("--currency", default=None, help="Currency for a new security (default: account's)")
@click.option("--date", "tx_date", default=None, help="Trade date YYYY-MM-DD (default today)")
@click.option("--note", default=None)
@click.pass_context
def tx_add(
    ctx: click.Context,
    ticker: str,
    account_id: str,
    quantity: float,
    price: float,
    tx_type: str,
    currency: str | None,
    tx_date: str | None,
    note: str | None,
) -> None:
    """Append a manually entered transaction to the ledger."""
    from atlas.portfolio.ledger import ManualTransactionInput
    from atlas.portfolio.models import TransactionType

    entry = ManualTransactionInput(
        ticker=ticker,
        account_id=account_id,
        quantity=quantity,
        price=price,
        currency=currency,
        type=TransactionType(tx_type.upper()),
        date=tx_date,
        note=note,
    )
    with open_ledger(ctx) as ledger:
        tx = ledger.add_manual_transaction(entry)
        security = ledger.get_security(tx.security_id)

    click.echo(
        f"Recorded {tx.type.value} {security.ticker} {tx.quantity:+g} @ {tx.price:g} "
        f"on {tx.date} ({tx.id})"
    )


@tx_group.command("list")
@click.option("--account", "account_id", default=None, help="Only this account")
@click.option("--limit", default=50, show_default=True, help="Most recent N entries")
@click.pass_context
def tx_list(ctx: click.Context, account_id: str | None, limit: int) -> None:
    """Show ledger entries, newest last."""
    with open_ledger(ctx) as ledger:
        txs = ledger.transactions([account_id] if account_id else None)
        tickers = {s.id: s.ticker for s in ledger.securities().values()}

    if not txs:
        click.echo("Ledger is empty.")
        return

    shown = txs[-limit:] if limit > 0 else txs
    click.echo(f"{'Date':<11} {'Account':<10} {'Type':<8} {'Ticker':<10} {'Qty':>12} {'Price':>12}  Note")
    click.echo("-" * 90)
    for tx in shown:
        click.echo(
            f"{tx.date:<11} {tx.account_id:<10} {tx.type.value:<8} "
            f"{tickers.get(tx.security_id, tx.security_id):<10} "
            f"{tx.quantity:>12,.4g} {tx.price:>12,.2f}  {tx.note or ''}"
        )
    click.echo(f"\n{len(shown)} of {len(txs)} transactions")

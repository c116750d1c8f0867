"""Holdings and risk CLI commands."""

from __future__ import annotations

import click

from atlas.cli.session import open_ledger


@click.command("holdings")
@click.option("--org", "org_id", required=True, help="Organization ID")
@click.option("--base", "base_currency", default=None, help="Override reporting currency")
@click.pass_context
def holdings_cmd(ctx: click.Context, org_id: str, base_currency: str | None) -> None:
    """Show current holdings valued in the base currency, largest first."""
    from atlas.portfolio.valuation import total_market_value

    with open_ledger(ctx) as ledger:
        org = ledger.get_organization(org_id)
        holdings = ledger.get_aggregated_holdings(org_id, base_currency)

    base = (base_currency or org.base_currency).upper()
    click.echo(f"{org.name} holdings ({base})")
    click.echo("=" * 40)

    if not holdings:
        click.echo("No open positions.")
        return

    click.echo(
        f"{'Ticker':<10} {'Account':<10} {'Qty':>12} {'Avg cost':>12} "
        f"{'Value (' + base + ')':>16} {'G/L %':>8} {'Weight':>7}"
    )
    click.echo("-" * 82)
    for h in holdings:
        click.echo(
            f"{h.ticker:<10} {h.account.id:<10} {h.quantity:>12,.4g} "
            f"{h.cost_basis:>12,.2f} {h.market_value_base:>16,.2f} "
            f"{h.gain_loss_percent:>+8.1f} {h.weight:>7.1%}"
        )
    click.echo(f"\nTotal: {total_market_value(holdings):,.2f} {base}")


@click.group("risk")
def risk_group() -> None:
    """Risk score and risk thresholds."""
    pass


@risk_group.command("show")
@click.option("--org", "org_id", required=True, help="Organization ID")
@click.pass_context
def risk_show(ctx: click.Context, org_id: str) -> None:
    """Score portfolio concentration and exposure risk."""
    with open_ledger(ctx) as ledger:
        metric = ledger.calculate_risk(org_id)

    click.echo(f"Risk score: {metric.score}/100")
    click.echo(f"Top holding: {metric.top_concentration_ticker}"
               f"{' (CONCENTRATED)' if metric.concentration_high else ''}")

    for title, exposures in (
        ("Sectors", metric.sector_concentration),
        ("Currencies", metric.currency_exposure),
        ("Countries", metric.country_exposure),
    ):
        if exposures:
            click.echo(f"\n{title}:")
            for e in exposures:
                click.echo(f"  {e.name:<20} {e.percent:>7.1%}")

    if metric.warnings:
        click.echo(f"\nWARNINGS ({len(metric.warnings)}):")
        for w in metric.warnings:
            click.echo(f"  - {w}")


@risk_group.command("thresholds")
@click.option("--org", "org_id", required=True, help="Organization ID")
@click.pass_context
def risk_thresholds(ctx: click.Context, org_id: str) -> None:
    """Print the organization's risk thresholds."""
    with open_ledger(ctx) as ledger:
        ledger.get_organization(org_id)
        t = ledger.get_risk_thresholds(org_id)

    click.echo(f"Concentration limit: {t.concentration_limit:.0%}")
    click.echo(f"Sector limit:        {t.sector_limit:.0%}")
    click.echo(f"Min cash weight:     {t.min_cash_weight:.0%}")


@risk_group.command("set")
@click.option("--org", "org_id", required=True, help="Organization ID")
@click.option("--concentration", type=float, default=None, help="Single-asset limit (0-1)")
@click.option("--sector", type=float, default=None, help="Single-sector limit (0-1)")
@click.option("--min-cash", type=float, default=None, help="Minimum cash weight (0-1)")
@click.option("--as", "actor", default=None, help="User making the change (owners expected)")
@click.pass_context
def risk_set(
    ctx: click.Context,
    org_id: str,
    concentration: float | None,
    sector: float | None,
    min_cash: float | None,
    actor: str | None,
) -> None:
    """Replace the organization's risk thresholds.

    Changing thresholds is an owner action. Roles are advisory: a
    non-owner passed with --as gets a warning and the change is saved.
    """
    from pydantic import ValidationError

    from atlas.config.schema import RiskThresholdConfig
    from atlas.portfolio.models import OrgRole

    with open_ledger(ctx) as ledger:
        current = ledger.get_risk_thresholds(org_id)
        updates = {
            k: v for k, v in (
                ("concentration_limit", concentration),
                ("sector_limit", sector),
                ("min_cash_weight", min_cash),
            ) if v is not None
        }
        try:
            new = RiskThresholdConfig(**{**current.model_dump(), **updates})
        except ValidationError as e:
            click.echo(f"Invalid thresholds: {e}", err=True)
            raise SystemExit(1) from None
        if actor is not None and ledger.get_user_role(org_id, actor) is not OrgRole.OWNER:
            click.echo(f"Warning: {actor} is not an owner of {org_id}", err=True)
        saved = ledger.update_risk_thresholds(org_id, new, actor=actor)

    click.echo(
        f"Saved thresholds for {org_id}: concentration {saved.concentration_limit:.0%}, "
        f"sector {saved.sector_limit:.0%}, min cash {saved.min_cash_weight:.0%}"
    )

"""Reference data CLI commands: organizations, accounts, securities."""

from __future__ import annotations

import click

from atlas.cli.session import open_ledger

# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

@click.group("org")
def org_group() -> None:
    """Manage organizations."""
    pass


@org_group.command("add")
@click.argument("org_id")
@click.argument("name")
@click.option("--base", "base_currency", default="USD", help="Reporting currency")
@click.pass_context
def org_add(ctx: click.Context, org_id: str, name: str, base_currency: str) -> None:
    """Register an organization."""
    with open_ledger(ctx) as ledger:
        org = ledger.add_organization(org_id, name, base_currency)
    click.echo(f"Saved organization {org.id} ({org.name}, base {org.base_currency})")


@org_group.command("list")
@click.pass_context
def org_list(ctx: click.Context) -> None:
    """List organizations."""
    with open_ledger(ctx) as ledger:
        orgs = ledger.list_organizations()

    if not orgs:
        click.echo("No organizations registered.")
        return
    click.echo(f"{'ID':<12} {'Name':<30} {'Base'}")
    click.echo("-" * 50)
    for org in orgs:
        click.echo(f"{org.id:<12} {org.name[:29]:<30} {org.base_currency}")


@org_group.command("set-base")
@click.argument("org_id")
@click.argument("currency")
@click.pass_context
def org_set_base(ctx: click.Context, org_id: str, currency: str) -> None:
    """Change an organization's reporting currency."""
    with open_ledger(ctx) as ledger:
        org = ledger.set_base_currency(org_id, currency)
    click.echo(f"{org.id} now reports in {org.base_currency}")


@org_group.command("rename")
@click.argument("org_id")
@click.argument("name")
@click.pass_context
def org_rename(ctx: click.Context, org_id: str, name: str) -> None:
    """Change an organization's display name."""
    with open_ledger(ctx) as ledger:
        org = ledger.rename_organization(org_id, name)
    click.echo(f"{org.id} renamed to {org.name}")


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

ROLE_CHOICE = click.Choice(["owner", "editor", "viewer"], case_sensitive=False)


@click.group("member")
def member_group() -> None:
    """Manage organization members and their roles."""
    pass


@member_group.command("add")
@click.argument("user_id")
@click.option("--org", "org_id", required=True, help="Organization ID")
@click.option("--name", required=True, help="Display name")
@click.option("--email", default="", help="Contact email")
@click.option("--role", type=ROLE_CHOICE, default="viewer", show_default=True)
@click.pass_context
def member_add(
    ctx: click.Context, user_id: str, org_id: str, name: str, email: str, role: str,
) -> None:
    """Add a member to an organization, or change their role."""
    from atlas.portfolio.models import OrgRole

    with open_ledger(ctx) as ledger:
        member = ledger.add_member(org_id, user_id, name, role=OrgRole(role.upper()), email=email)
    click.echo(f"{member.name} ({member.user_id}) is {member.role.value} of {org_id}")


@member_group.command("list")
@click.option("--org", "org_id", required=True, help="Organization ID")
@click.pass_context
def member_list(ctx: click.Context, org_id: str) -> None:
    """List an organization's members."""
    with open_ledger(ctx) as ledger:
        members = ledger.list_members(org_id)

    if not members:
        click.echo("No members.")
        return
    click.echo(f"{'User':<12} {'Name':<24} {'Role':<8} {'Joined'}")
    click.echo("-" * 58)
    for m in members:
        click.echo(f"{m.user_id:<12} {m.name[:23]:<24} {m.role.value:<8} {m.joined_at}")


@member_group.command("role")
@click.argument("user_id")
@click.option("--org", "org_id", required=True, help="Organization ID")
@click.pass_context
def member_role(ctx: click.Context, user_id: str, org_id: str) -> None:
    """Show a user's role in an organization."""
    with open_ledger(ctx) as ledger:
        role = ledger.get_user_role(org_id, user_id)
    click.echo(role.value)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

@click.group("account")
def account_group() -> None:
    """Manage brokerage accounts."""
    pass


@account_group.command("add")
@click.argument("account_id")
@click.argument("name")
@click.option("--org", "org_id", required=True, help="Owning organization")
@click.option("--broker", default="", help="Broker label")
@click.option("--currency", default="USD", help="Account currency")
@click.option("--tax-advantaged", is_flag=True, help="Tax-advantaged account (e.g. NISA)")
@click.pass_context
def account_add(
    ctx: click.Context,
    account_id: str,
    name: str,
    org_id: str,
    broker: str,
    currency: str,
    tax_advantaged: bool,
) -> None:
    """Register an account under an organization."""
    with open_ledger(ctx) as ledger:
        acct = ledger.add_account(
            account_id, org_id, name,
            broker=broker, currency=currency, is_tax_advantaged=tax_advantaged,
        )
    click.echo(f"Saved account {acct.id} ({acct.name}, {acct.currency}) in {acct.org_id}")


@account_group.command("list")
@click.option("--org", "org_id", default=None, help="Only this organization")
@click.pass_context
def account_list(ctx: click.Context, org_id: str | None) -> None:
    """List accounts."""
    with open_ledger(ctx) as ledger:
        accounts = ledger.list_accounts(org_id)

    if not accounts:
        click.echo("No accounts registered.")
        return
    click.echo(f"{'ID':<12} {'Org':<10} {'Name':<28} {'Broker':<22} {'Ccy':<4} {'CSV mapping'}")
    click.echo("-" * 100)
    for a in accounts:
        mapping = ""
        if a.csv_mapping is not None:
            m = a.csv_mapping
            mapping = f"{m.ticker_column}/{m.quantity_column}/{m.cost_column or '-'}"
        click.echo(
            f"{a.id:<12} {a.org_id:<10} {a.name[:27]:<28} {a.broker[:21]:<22} "
            f"{a.currency:<4} {mapping}"
        )


@account_group.command("mapping")
@click.argument("account_id")
@click.option("--ticker-col", default=None, help="Header of the ticker column")
@click.option("--qty-col", default=None, help="Header of the quantity column")
@click.option("--cost-col", default=None, help="Header of the cost column")
@click.option("--clear", is_flag=True, help="Remove the mapping and use default synonyms")
@click.pass_context
def account_mapping(
    ctx: click.Context,
    account_id: str,
    ticker_col: str | None,
    qty_col: str | None,
    cost_col: str | None,
    clear: bool,
) -> None:
    """Set or clear an account's CSV column mapping."""
    from atlas.config.schema import CsvMappingConfig

    if not clear and not (ticker_col and qty_col):
        click.echo("Both --ticker-col and --qty-col are required (or use --clear).", err=True)
        raise SystemExit(1)

    mapping = None
    if not clear:
        mapping = CsvMappingConfig(
            ticker_column=ticker_col, quantity_column=qty_col, cost_column=cost_col,
        )

    with open_ledger(ctx) as ledger:
        ledger.update_account(account_id, csv_mapping=mapping, clear_csv_mapping=clear)

    if clear:
        click.echo(f"Cleared CSV mapping for {account_id}")
    else:
        click.echo(f"CSV mapping for {account_id}: {mapping.model_dump()}")


# ---------------------------------------------------------------------------
# Securities
# ---------------------------------------------------------------------------

@click.group("security")
def security_group() -> None:
    """Manage the security reference table."""
    pass


@security_group.command("add")
@click.argument("ticker")
@click.option("--name", default=None)
@click.option("--currency", default="USD")
@click.option("--price", type=float, default=0.0, help="Current price")
@click.option(
    "--type", "sec_type",
    type=click.Choice(["STOCK", "ETF", "BOND", "CRYPTO", "CASH"], case_sensitive=False),
    default="STOCK",
)
@click.option("--sector", default="Other")
@click.option("--industry", default="Unknown")
@click.option("--country", default="Global")
@click.pass_context
def security_add(
    ctx: click.Context,
    ticker: str,
    name: str | None,
    currency: str,
    price: float,
    sec_type: str,
    sector: str,
    industry: str,
    country: str,
) -> None:
    """Register a security."""
    from atlas.portfolio.models import SecurityType

    with open_ledger(ctx) as ledger:
        if ledger.find_security_by_ticker(ticker) is not None:
            click.echo(f"Security {ticker.upper()} already registered.", err=True)
            raise SystemExit(1)
        sec = ledger.add_security(
            ticker, name=name, currency=currency, current_price=price,
            type=SecurityType(sec_type.upper()), sector=sector,
            industry=industry, country=country,
        )
    click.echo(f"Registered {sec.ticker} as {sec.id}")


@security_group.command("list")
@click.pass_context
def security_list(ctx: click.Context) -> None:
    """List registered securities."""
    with open_ledger(ctx) as ledger:
        securities = sorted(ledger.securities().values(), key=lambda s: s.ticker)

    if not securities:
        click.echo("No securities registered.")
        return
    click.echo(f"{'Ticker':<10} {'Name':<28} {'Type':<6} {'Sector':<16} {'Ccy':<4} {'Price':>12} {'As of'}")
    click.echo("-" * 95)
    for s in securities:
        click.echo(
            f"{s.ticker:<10} {s.name[:27]:<28} {s.type.value:<6} {s.sector[:15]:<16} "
            f"{s.currency:<4} {s.current_price:>12,.2f} {s.last_updated}"
        )


@security_group.command("price")
@click.argument("ticker")
@click.argument("price", type=float)
@click.option("--as-of", default=None, help="Price date (YYYY-MM-DD), default today")
@click.pass_context
def security_price(ctx: click.Context, ticker: str, price: float, as_of: str | None) -> None:
    """Refresh a security's current price."""
    with open_ledger(ctx) as ledger:
        sec = ledger.find_security_by_ticker(ticker)
        if sec is None:
            click.echo(f"Security {ticker.upper()} not found.", err=True)
            raise SystemExit(1)
        sec = ledger.update_security_price(sec.id, price, as_of)
    click.echo(f"{sec.ticker}: {sec.current_price:,.4g} {sec.currency} as of {sec.last_updated}")

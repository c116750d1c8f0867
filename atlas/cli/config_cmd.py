"""``atlas config``: inspect the resolved configuration."""

from __future__ import annotations

import click

from atlas.errors import ConfigError


def _load(ctx: click.Context):
    from atlas.config.loader import load_config

    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.echo(f"Config validation failed: {e}", err=True)
        raise SystemExit(1) from None


@click.group("config")
def config_group() -> None:
    """Inspect configuration."""
    pass


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the effective configuration as YAML, defaults filled in."""
    import yaml

    config = _load(ctx)
    click.echo(yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False, allow_unicode=True))


@config_group.command("validate")
@click.pass_context
def config_validate(ctx: click.Context) -> None:
    """Check config.yaml against the schema and summarize it."""
    config = _load(ctx)
    risk = config.risk
    click.echo("Config is valid.")
    click.echo(f"  Organizations: {len(config.organizations)}")
    click.echo(f"  Accounts:      {len(config.accounts)}")
    click.echo(f"  FX pairs:      {', '.join(sorted(config.fx_rates)) or 'none'}")
    click.echo(
        f"  Risk limits:   asset {risk.concentration_limit:.0%}, "
        f"sector {risk.sector_limit:.0%}, cash {risk.min_cash_weight:.0%}"
    )
    click.echo(f"  Database:      {config.database.path}")

"""Root CLI app - entry point and command registration."""

from pathlib import Path

import typer

from mystmarket.config import get_settings
from mystmarket.config.settings import configure_logging
from mystmarket.economics.errors import SettlementError

app = typer.Typer(
    name="myst",
    help="MYST prediction markets - stakes, pari-mutuel settlement, fee split and ledger.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. dev) to overlay on default.toml"
    ),
) -> None:
    """Configure logging, validate economics config and store both in context."""
    settings = get_settings(profile, config_dir)
    configure_logging(settings)
    try:
        economics = settings.economics()
    except SettlementError as e:
        typer.echo(f"Invalid configuration [{e.code}]: {e.message}", err=True)
        raise typer.Exit(1)
    ctx.obj = {"settings": settings, "economics": economics, "config_dir": config_dir, "profile": profile}


# Subcommands registered from other modules
from mystmarket.cli import ledger, markets, sim  # noqa: E402

app.add_typer(markets.app, name="markets")
app.add_typer(ledger.app, name="ledger")
app.add_typer(sim.app, name="sim")


def run() -> None:
    app()


if __name__ == "__main__":
    run()

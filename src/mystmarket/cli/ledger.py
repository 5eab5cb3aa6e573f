"""Ledger subcommand: balance, pools, entries, export, reconcile, quote-withdrawal."""

from __future__ import annotations

import typer

from mystmarket.cli.common import engine_errors, open_db
from mystmarket.economics.currency import format_usd, from_minor_units, quote_withdrawal, to_minor_units
from mystmarket.replay.engine import reconcile_all, reconcile_market
from mystmarket.storage.export import export_ledger_to_parquet
from mystmarket.storage.ledger import list_entries, pool_balances, user_balance

app = typer.Typer(help="Audit ledger, balances and reconciliation")


@app.command("balance")
def balance(
    ctx: typer.Context,
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
) -> None:
    """Show a user's MYST balance (sum of ledger entries)."""
    settings = ctx.obj["settings"]
    with open_db(ctx) as conn:
        amount = user_balance(conn, user)
        typer.echo(f"{user}: {from_minor_units(amount)} MYST ({format_usd(amount, settings.myst_per_usd)})")


@app.command("pools")
def pools(ctx: typer.Context) -> None:
    """Show fee sub-pool balances."""
    settings = ctx.obj["settings"]
    with open_db(ctx) as conn:
        balances = pool_balances(conn)
        for pool_id, amount in balances.items():
            typer.echo(f"  {pool_id:<14} {from_minor_units(amount):>14} MYST  {format_usd(amount, settings.myst_per_usd)}")
        typer.echo(f"Total: {from_minor_units(sum(balances.values()))} MYST")


@app.command("entries")
def entries(
    ctx: typer.Context,
    market: str | None = typer.Option(None, "--market", "-m", help="Filter by market ID"),
    account: str | None = typer.Option(None, "--account", "-a", help="Filter by user or pool ID"),
    limit: int = typer.Option(100, "--limit", "-n", help="Max rows"),
) -> None:
    """List ledger entries in insertion order."""
    with open_db(ctx) as conn:
        for e in list_entries(conn, market_id=market, account_id=account, limit=limit):
            typer.echo(
                f"  {e['id']:>6}  {e['entry_type']:<18} {e['account_id'][:20]:<20} "
                f"{from_minor_units(e['amount']):>14}  {e['market_id'] or ''}"
            )


@app.command("export")
def export(
    ctx: typer.Context,
    market: str | None = typer.Option(None, "--market", "-m", help="Filter by market ID"),
    output: str = typer.Option("ledger.parquet", "--output", "-o", help="Output path"),
) -> None:
    """Export ledger entries to Parquet."""
    with open_db(ctx) as conn:
        count = export_ledger_to_parquet(conn, output, market_id=market)
        typer.echo(f"Exported {count} ledger entries to {output}")


@app.command("reconcile")
def reconcile(
    ctx: typer.Context,
    market: str | None = typer.Option(None, "--market", "-m", help="Market ID (default: all markets)"),
) -> None:
    """Rebuild pools from the bet log and check stored pools and ledger totals."""
    with open_db(ctx) as conn:
        reports = [reconcile_market(conn, market)] if market else reconcile_all(conn)
        failed = 0
        for r in reports:
            state = "OK" if r.ok else "DRIFT"
            typer.echo(f"  {r.market_id[:20]:<20} {r.status:<9} {state}  ledger_net={from_minor_units(r.ledger_net)}")
            if r.drift:
                typer.echo(f"    pool drift: {r.drift}")
            failed += 0 if r.ok else 1
        typer.echo(f"Reconciled {len(reports)} markets, {failed} with drift")
        if failed:
            raise typer.Exit(1)


@app.command("quote-withdrawal")
def quote(
    ctx: typer.Context,
    amount: str = typer.Option(..., "--amount", "-a", help="MYST to withdraw"),
) -> None:
    """Price a withdrawal: fee, burn, net USD and minimum check."""
    settings = ctx.obj["settings"]
    with engine_errors():
        q = quote_withdrawal(
            to_minor_units(amount),
            settings.withdrawal_fee_rate,
            settings.withdrawal_min_usd,
            settings.myst_per_usd,
        )
        typer.echo(f"MYST amount:  {from_minor_units(q.amount)} MYST")
        typer.echo(f"Fee:          {from_minor_units(q.fee)} MYST ({settings.withdrawal_fee_rate * 100}%)")
        typer.echo(f"Net USD:      ${q.net_usd:,.2f}")
        typer.echo(f"Min required: ${q.min_usd:,.2f}")
        typer.echo(f"Eligible:     {'YES' if q.eligible else 'NO (below minimum)'}")

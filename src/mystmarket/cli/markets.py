"""Markets subcommand: create, stake, resolve, cancel, show, list."""

from __future__ import annotations

import duckdb
import typer

from mystmarket.cli.common import echo_settlement, open_db
from mystmarket.economics.currency import from_minor_units, to_minor_units
from mystmarket.models import MarketStatus
from mystmarket.storage.markets import create_market, get_market, list_bets, place_bet
from mystmarket.storage.markets import list_markets as storage_list_markets
from mystmarket.storage.settlements import cancel_market, get_settlement, resolve_market

app = typer.Typer(help="Prediction markets: stakes and settlement")


@app.command("create")
def create(
    ctx: typer.Context,
    market: str = typer.Option(..., "--market", "-m", help="Market ID"),
    title: str = typer.Option("", "--title", "-t", help="Question shown to bettors"),
    outcomes: str = typer.Option("YES,NO", "--outcomes", help="Comma-separated outcome labels"),
) -> None:
    """Create an OPEN market with empty pools."""
    labels = [o.strip() for o in outcomes.split(",") if o.strip()]
    with open_db(ctx) as conn:
        try:
            m = create_market(conn, market, labels, title)
        except duckdb.ConstraintException:
            typer.echo(f"Market already exists: {market}", err=True)
            raise typer.Exit(1)
        except ValueError as e:
            typer.echo(f"Invalid market: {e}", err=True)
            raise typer.Exit(1)
        typer.echo(f"Created market {m.market_id} with outcomes {', '.join(m.outcomes)}")


@app.command("stake")
def stake(
    ctx: typer.Context,
    market: str = typer.Option(..., "--market", "-m", help="Market ID"),
    user: str = typer.Option(..., "--user", "-u", help="Bettor ID"),
    outcome: str = typer.Option(..., "--outcome", "-o", help="Outcome label"),
    amount: str = typer.Option(..., "--amount", "-a", help="Stake in MYST (e.g. 12.5)"),
) -> None:
    """Place a stake on an outcome."""
    economics = ctx.obj["economics"]
    with open_db(ctx) as conn:
        bet = place_bet(conn, market, user, outcome, to_minor_units(amount), economics)
        typer.echo(f"Bet {bet.bet_id}: {from_minor_units(bet.amount)} MYST on {bet.outcome}")


@app.command("resolve")
def resolve(
    ctx: typer.Context,
    market: str = typer.Option(..., "--market", "-m", help="Market ID"),
    winner: str = typer.Option(..., "--winner", "-w", help="Winning outcome label"),
) -> None:
    """Resolve a market and apply payouts and the fee split to the ledger."""
    economics = ctx.obj["economics"]
    with open_db(ctx) as conn:
        result = resolve_market(conn, market, winner, economics)
        echo_settlement(result)


@app.command("cancel")
def cancel(
    ctx: typer.Context,
    market: str = typer.Option(..., "--market", "-m", help="Market ID"),
) -> None:
    """Cancel a market and refund every stake."""
    economics = ctx.obj["economics"]
    with open_db(ctx) as conn:
        result = cancel_market(conn, market, economics)
        echo_settlement(result)


@app.command("show")
def show(
    ctx: typer.Context,
    market: str = typer.Option(..., "--market", "-m", help="Market ID"),
) -> None:
    """Show pools, bets and (if settled) the settlement of a market."""
    with open_db(ctx) as conn:
        m = get_market(conn, market)
        typer.echo(f"{m.market_id}  {m.status.value}  {m.title}")
        for outcome in m.outcomes:
            typer.echo(f"  {outcome:<10} {from_minor_units(m.pool_by_outcome[outcome])} MYST")
        typer.echo(f"  {'total':<10} {from_minor_units(m.total_pool)} MYST")
        bets = list_bets(conn, market)
        typer.echo(f"Bets: {len(bets)}")
        settlement = get_settlement(conn, market)
        if settlement:
            echo_settlement(settlement)


@app.command("list")
def list_markets(
    ctx: typer.Context,
    status: str | None = typer.Option(None, "--status", "-s", help="OPEN, RESOLVED or CANCELLED"),
) -> None:
    """List markets."""
    try:
        wanted = MarketStatus(status.upper()) if status else None
    except ValueError:
        typer.echo(f"Unknown status: {status}", err=True)
        raise typer.Exit(1)
    with open_db(ctx) as conn:
        rows = storage_list_markets(conn, status=wanted)
        for m in rows:
            typer.echo(f"  {m.market_id[:20]:<20}  {m.status.value:<9}  {from_minor_units(m.total_pool):>14}  {m.title[:50]}")
        typer.echo(f"Total: {len(rows)} markets")

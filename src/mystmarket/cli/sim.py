"""Sim subcommand: example, run, report."""

from __future__ import annotations

import typer

from mystmarket.cli.common import echo_settlement, engine_errors, open_db
from mystmarket.economics.currency import format_usd, from_minor_units, usd_to_minor
from mystmarket.economics.payout import compute_bettor_payout
from mystmarket.simulation.economy import EXAMPLE_STAKE, requirement_example
from mystmarket.simulation.runner import get_run_result, run_simulation, save_run_result

app = typer.Typer(help="Economic model simulation")


@app.command("example")
def example(ctx: typer.Context) -> None:
    """Settle the worked example (YES=4000, NO=6000, NO wins) through the engine."""
    economics = ctx.obj["economics"]
    with engine_errors():
        result = requirement_example(economics)
        echo_settlement(result)
        payout = compute_bettor_payout(EXAMPLE_STAKE, result.payout_multiplier)
        profit = payout - EXAMPLE_STAKE
        typer.echo(
            f"A {EXAMPLE_STAKE} stake on {result.winning_outcome} receives {payout} "
            f"(profit {profit}, {profit * 100 // EXAMPLE_STAKE}%)"
        )


@app.command("run")
def run_sim(
    ctx: typer.Context,
    runs: int | None = typer.Option(None, "--runs", "-n", help="Number of markets (default from config)"),
    pool_usd: int | None = typer.Option(None, "--pool-usd", help="Pool size per market in USD"),
    seed: int | None = typer.Option(None, "--seed", help="RNG seed for a reproducible run"),
) -> None:
    """Simulate random markets and verify conservation on each."""
    settings = ctx.obj["settings"]
    economics = ctx.obj["economics"]
    total_pool = usd_to_minor(pool_usd or settings.sim_pool_size_usd, settings.myst_per_usd)
    with open_db(ctx) as conn:
        result = run_simulation(
            economics,
            total_pool,
            runs=runs or settings.sim_runs,
            seed=seed if seed is not None else settings.sim_seed,
            myst_per_usd=settings.myst_per_usd,
        )
        save_run_result(conn, result)
        for s in result.runs:
            r = s.result
            typer.echo(
                f"  #{s.run:<3} YES={from_minor_units(s.pools['YES']):>12} NO={from_minor_units(s.pools['NO']):>12} "
                f"winner={r.winning_outcome:<3} fee={from_minor_units(r.platform_fee):>10} "
                f"({format_usd(r.platform_fee, settings.myst_per_usd)}) "
                f"{'OK' if s.conserved else 'NOT CONSERVED'}"
            )
        typer.echo(f"Run id: {result.run_id}  markets: {result.markets}")
        typer.echo(f"Volume: {from_minor_units(result.total_volume)} MYST  Fees: {from_minor_units(result.total_fees)} MYST")
        typer.echo(f"Dust: {from_minor_units(result.total_dust)}  Unclaimed: {from_minor_units(result.total_unclaimed)}")
        if not result.conserved:
            raise typer.Exit(1)


@app.command("report")
def report(
    ctx: typer.Context,
    run_id: str = typer.Option(..., "--run-id", help="Simulation run ID"),
) -> None:
    """Show report for a simulation run."""
    with open_db(ctx) as conn:
        result = get_run_result(conn, run_id)
        if not result:
            typer.echo(f"Run not found: {run_id}")
            raise typer.Exit(1)
        typer.echo(f"Run: {result.run_id}  params: {result.params}")
        typer.echo(f"Markets: {result.markets}  Conserved: {result.conserved}")
        typer.echo(f"Volume: {from_minor_units(result.total_volume)} MYST  Fees: {from_minor_units(result.total_fees)} MYST")
        typer.echo(f"Dust: {from_minor_units(result.total_dust)}  Unclaimed: {from_minor_units(result.total_unclaimed)}")

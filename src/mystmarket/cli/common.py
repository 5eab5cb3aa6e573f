"""Shared CLI helpers - DB connection and engine error reporting."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import typer

from mystmarket.economics.currency import from_minor_units
from mystmarket.economics.errors import SettlementError
from mystmarket.models import SettlementResult
from mystmarket.storage.db import get_connection, init_schema

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


@contextmanager
def engine_errors() -> Iterator[None]:
    """Report engine errors as "Error [code]: message" and exit 1."""
    try:
        yield
    except SettlementError as e:
        typer.echo(f"Error [{e.code}]: {e.message}", err=True)
        raise typer.Exit(1)


@contextmanager
def open_db(ctx: typer.Context) -> Iterator[DuckDBPyConnection]:
    """Connection with schema ensured. Engine errors exit 1 with their code."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        with engine_errors():
            yield conn
    finally:
        conn.close()


def echo_settlement(result: SettlementResult) -> None:
    m = from_minor_units
    typer.echo(f"Market: {result.market_id}  ({result.kind})")
    if result.winning_outcome:
        typer.echo(f"Winning outcome: {result.winning_outcome}")
    typer.echo(f"Total pool:      {m(result.total_pool)} MYST")
    typer.echo(f"Winning pool:    {m(result.winning_pool_total)} MYST")
    typer.echo(f"Losing pool:     {m(result.losing_pool_total)} MYST")
    typer.echo(f"Platform fee:    {m(result.platform_fee)} MYST")
    for name, amount in result.fee_split.items():
        typer.echo(f"  {name:<14} {m(amount)} MYST")
    typer.echo(f"Distributable:   {m(result.distributable_pool)} MYST")
    multiplier = result.payout_multiplier
    if multiplier:
        typer.echo(f"Payout per MYST: {float(multiplier):.4f}x  ({multiplier})")
    else:
        typer.echo("Payout per MYST: NO_WINNERS")
    typer.echo(f"Payouts:         {len(result.payouts)} bets, {m(result.total_paid)} MYST")
    if result.rounding_dust:
        typer.echo(f"Rounding dust:   {m(result.rounding_dust)} MYST -> treasury")
    if result.unclaimed_pool:
        typer.echo(f"Unclaimed pool:  {m(result.unclaimed_pool)} MYST -> treasury")

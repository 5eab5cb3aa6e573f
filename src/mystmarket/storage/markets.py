"""Market, pool and bet persistence. Stake recording is guarded by status + version."""

from __future__ import annotations

import json
import time
import uuid
from typing import TYPE_CHECKING

import structlog

from mystmarket.economics import pool
from mystmarket.economics.errors import MarketClosed, MarketNotFound, StaleMarket
from mystmarket.models import Bet, Market, MarketStatus
from mystmarket.storage import ledger
from mystmarket.storage.db import transaction

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from mystmarket.economics.engine import EconomicsConfig

log = structlog.get_logger(__name__)

_MARKET_COLUMNS = "market_id, title, outcomes, status, winning_outcome, version, created_at, resolved_at"


def create_market(
    conn: DuckDBPyConnection,
    market_id: str,
    outcomes: list[str] | None = None,
    title: str = "",
) -> Market:
    """Insert an OPEN market with all pools at zero."""
    market = Market(
        market_id=market_id,
        title=title,
        outcomes=outcomes or ["YES", "NO"],
        created_at=int(time.time() * 1000),
    )
    with transaction(conn):
        conn.execute(
            f"INSERT INTO markets ({_MARKET_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                market.market_id,
                market.title,
                json.dumps(market.outcomes),
                market.status.value,
                None,
                market.version,
                market.created_at,
                None,
            ],
        )
        conn.executemany(
            "INSERT INTO market_pools (market_id, outcome, amount) VALUES (?, ?, 0)",
            [[market.market_id, o] for o in market.outcomes],
        )
    log.info("market_created", market_id=market_id, outcomes=market.outcomes)
    return market


def _row_to_market(conn: DuckDBPyConnection, row: tuple) -> Market:
    outcomes = json.loads(row[2]) if isinstance(row[2], str) else row[2]
    pools = conn.execute(
        "SELECT outcome, amount FROM market_pools WHERE market_id = ?", [row[0]]
    ).fetchall()
    return Market(
        market_id=row[0],
        title=row[1] or "",
        outcomes=outcomes,
        pool_by_outcome={o: int(a) for o, a in pools},
        status=MarketStatus(row[3]),
        winning_outcome=row[4],
        version=int(row[5]),
        created_at=row[6],
        resolved_at=row[7],
    )


def get_market(conn: DuckDBPyConnection, market_id: str) -> Market:
    row = conn.execute(
        f"SELECT {_MARKET_COLUMNS} FROM markets WHERE market_id = ?", [market_id]
    ).fetchone()
    if not row:
        raise MarketNotFound(f"Market not found: {market_id}")
    return _row_to_market(conn, row)


def list_markets(conn: DuckDBPyConnection, status: MarketStatus | None = None) -> list[Market]:
    if status is not None:
        rows = conn.execute(
            f"SELECT {_MARKET_COLUMNS} FROM markets WHERE status = ? ORDER BY created_at", [status.value]
        ).fetchall()
    else:
        rows = conn.execute(f"SELECT {_MARKET_COLUMNS} FROM markets ORDER BY created_at").fetchall()
    return [_row_to_market(conn, r) for r in rows]


def list_bets(conn: DuckDBPyConnection, market_id: str, outcome: str | None = None) -> list[Bet]:
    """Bets for a market in placement order."""
    sql = "SELECT bet_id, market_id, bettor_id, outcome, amount, created_at FROM bets WHERE market_id = ?"
    params: list = [market_id]
    if outcome is not None:
        sql += " AND outcome = ?"
        params.append(outcome)
    rows = conn.execute(sql + " ORDER BY seq ASC", params).fetchall()
    return [
        Bet(bet_id=r[0], market_id=r[1], bettor_id=r[2], outcome=r[3], amount=int(r[4]), created_at=r[5])
        for r in rows
    ]


def bump_version(conn: DuckDBPyConnection, market: Market, expected_version: int) -> None:
    """Compare-and-swap the market row from (OPEN, expected_version) to the in-memory state.

    Raises MarketClosed if the market left OPEN meanwhile, StaleMarket if another writer
    bumped the version first.
    """
    row = conn.execute(
        """
        UPDATE markets SET status = ?, winning_outcome = ?, version = ?, resolved_at = ?
        WHERE market_id = ? AND status = 'OPEN' AND version = ?
        RETURNING market_id
        """,
        [
            market.status.value,
            market.winning_outcome,
            market.version,
            market.resolved_at,
            market.market_id,
            expected_version,
        ],
    ).fetchone()
    if row is not None:
        return
    current = conn.execute(
        "SELECT status, version FROM markets WHERE market_id = ?", [market.market_id]
    ).fetchone()
    if current is None:
        raise MarketNotFound(f"Market not found: {market.market_id}")
    if current[0] != MarketStatus.OPEN.value:
        raise MarketClosed(f"Betting is closed for market {market.market_id} ({current[0]})")
    raise StaleMarket(
        f"Market {market.market_id} changed concurrently (version {current[1]}, expected {expected_version})"
    )


def place_bet(
    conn: DuckDBPyConnection,
    market_id: str,
    bettor_id: str,
    outcome: str,
    amount: int,
    config: EconomicsConfig,
) -> Bet:
    """Record a stake atomically: pool increment, bet row and the bettor's spend_bet debit."""
    with transaction(conn):
        market = get_market(conn, market_id)
        expected = market.version
        pool.record_stake(market, outcome, amount, minimum=config.minimum_bet)
        bump_version(conn, market, expected)
        conn.execute(
            "UPDATE market_pools SET amount = amount + ? WHERE market_id = ? AND outcome = ?",
            [amount, market_id, outcome],
        )
        bet = Bet(
            bet_id=str(uuid.uuid4()),
            market_id=market_id,
            bettor_id=bettor_id,
            outcome=outcome,
            amount=amount,
            created_at=int(time.time() * 1000),
        )
        conn.execute(
            "INSERT INTO bets (bet_id, market_id, bettor_id, outcome, amount, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            [bet.bet_id, bet.market_id, bet.bettor_id, bet.outcome, bet.amount, bet.created_at],
        )
        ledger.append_entry(
            conn, bettor_id, ledger.USER, ledger.SPEND_BET, -amount,
            market_id=market_id, bet_id=bet.bet_id, meta={"outcome": outcome}, now_ms=bet.created_at,
        )
    log.info("stake_recorded", market_id=market_id, bettor_id=bettor_id, outcome=outcome, amount=amount)
    return bet

"""Transactional resolution and cancellation.

The engine computes the settlement on a snapshot read inside the transaction; the
market row is then moved out of OPEN with a compare-and-swap on (status, version), so
a stake racing the resolution either lands before the snapshot or fails with
MarketClosed, and two resolvers cannot both apply payouts.
"""

from __future__ import annotations

import json
import time
from typing import TYPE_CHECKING

import structlog

from mystmarket.economics import engine
from mystmarket.economics.errors import AlreadyResolved, MarketClosed
from mystmarket.models import Market, MarketStatus, SettlementResult
from mystmarket.storage import ledger
from mystmarket.storage.db import transaction
from mystmarket.storage.markets import bump_version, get_market, list_bets

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from mystmarket.economics.engine import EconomicsConfig

log = structlog.get_logger(__name__)


def _canonical(result: SettlementResult) -> str:
    return json.dumps(result.to_dict(), sort_keys=True, separators=(",", ":"))


def get_settlement(conn: DuckDBPyConnection, market_id: str) -> SettlementResult | None:
    row = conn.execute("SELECT result FROM settlements WHERE market_id = ?", [market_id]).fetchone()
    if not row:
        return None
    raw = json.loads(row[0]) if isinstance(row[0], str) else row[0]
    return SettlementResult.from_dict(raw)


def _store(conn: DuckDBPyConnection, result: SettlementResult) -> None:
    conn.execute(
        "INSERT INTO settlements (market_id, kind, winning_outcome, result, created_at) VALUES (?, ?, ?, ?, ?)",
        [result.market_id, result.kind, result.winning_outcome, _canonical(result), int(time.time() * 1000)],
    )


def _replay_or_conflict(
    stored: SettlementResult | None,
    recomputed: SettlementResult,
    market_id: str,
) -> SettlementResult:
    if stored is not None and _canonical(stored) == _canonical(recomputed):
        log.info("settlement_replayed", market_id=market_id, kind=stored.kind)
        return stored
    log.warning("resolve_conflict", market_id=market_id)
    raise AlreadyResolved(
        f"Market {market_id} is already settled with a different result",
        winning_outcome=stored.winning_outcome if stored else None,
    )


def _commit_transition(conn: DuckDBPyConnection, market: Market, expected_version: int) -> None:
    try:
        bump_version(conn, market, expected_version)
    except MarketClosed:
        raise AlreadyResolved(f"Market {market.market_id} was settled concurrently") from None


def resolve_market(
    conn: DuckDBPyConnection,
    market_id: str,
    winning_outcome: str,
    config: EconomicsConfig,
) -> SettlementResult:
    """Resolve, store and apply the settlement in one transaction.

    Retrying with the same outcome returns the stored result and writes nothing.
    """
    with transaction(conn):
        market = get_market(conn, market_id)
        bets = list_bets(conn, market_id)
        if market.status is MarketStatus.RESOLVED:
            recomputed = engine.settle(market, winning_outcome, bets, config)
            return _replay_or_conflict(get_settlement(conn, market_id), recomputed, market_id)
        expected = market.version
        result = engine.settle(market, winning_outcome, bets, config)
        _commit_transition(conn, market, expected)
        _store(conn, result)
        ledger.apply_settlement(conn, result, config.treasury_pool)
    log.info(
        "market_resolved",
        market_id=market_id,
        winning_outcome=winning_outcome,
        total_pool=result.total_pool,
        platform_fee=result.platform_fee,
        multiplier=str(result.payout_multiplier),
        winners=len(result.payouts),
    )
    return result


def cancel_market(conn: DuckDBPyConnection, market_id: str, config: EconomicsConfig) -> SettlementResult:
    """Cancel an OPEN market and refund every stake 1:1. Repeatable once cancelled."""
    with transaction(conn):
        market = get_market(conn, market_id)
        bets = list_bets(conn, market_id)
        if market.status is MarketStatus.CANCELLED:
            recomputed = engine.cancel(market, bets, config)
            return _replay_or_conflict(get_settlement(conn, market_id), recomputed, market_id)
        expected = market.version
        result = engine.cancel(market, bets, config)
        _commit_transition(conn, market, expected)
        _store(conn, result)
        ledger.apply_settlement(conn, result, config.treasury_pool)
    log.info("market_cancelled", market_id=market_id, refunded=result.total_paid, bets=len(result.payouts))
    return result

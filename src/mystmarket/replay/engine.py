"""Deterministic replay of the bet log - rebuild pools and reconcile against stored totals."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

import structlog

from mystmarket.models import Bet, MarketStatus
from mystmarket.storage.ledger import market_ledger_net
from mystmarket.storage.markets import get_market, list_markets

log = structlog.get_logger(__name__)


@dataclass
class ReconcileReport:
    """Stored pools vs pools rebuilt from bets, plus the market's net ledger movement."""

    market_id: str
    status: str
    stored_pools: dict[str, int]
    replayed_pools: dict[str, int]
    ledger_net: int
    expected_ledger_net: int
    drift: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.drift and self.ledger_net == self.expected_ledger_net


def stream_bets(conn: Any, market_id: str) -> Iterator[Bet]:
    """Yield bets for a market in placement order."""
    rows = conn.execute(
        "SELECT bet_id, market_id, bettor_id, outcome, amount, created_at FROM bets WHERE market_id = ? ORDER BY seq ASC",
        [market_id],
    ).fetchall()
    for r in rows:
        yield Bet(bet_id=r[0], market_id=r[1], bettor_id=r[2], outcome=r[3], amount=int(r[4]), created_at=r[5])


def replay_pools(conn: Any, market_id: str, outcomes: list[str]) -> dict[str, int]:
    """Rebuild per-outcome pools from the bet log. Same log -> same pools."""
    pools = dict.fromkeys(outcomes, 0)
    for bet in stream_bets(conn, market_id):
        pools[bet.outcome] = pools.get(bet.outcome, 0) + bet.amount
    return pools


def reconcile_market(conn: Any, market_id: str) -> ReconcileReport:
    """Compare stored pools with the replayed bet log and check the ledger nets out.

    While OPEN the ledger holds the stakes as debits (net = -total pool); once settled
    every debit is matched by payouts and pool credits (net = 0).
    """
    market = get_market(conn, market_id)
    replayed = replay_pools(conn, market_id, market.outcomes)
    keys = set(replayed) | set(market.pool_by_outcome)
    drift = {
        k: replayed.get(k, 0) - market.pool_by_outcome.get(k, 0)
        for k in sorted(keys)
        if replayed.get(k, 0) != market.pool_by_outcome.get(k, 0)
    }
    expected_net = -market.total_pool if market.status is MarketStatus.OPEN else 0
    report = ReconcileReport(
        market_id=market_id,
        status=market.status.value,
        stored_pools=dict(market.pool_by_outcome),
        replayed_pools=replayed,
        ledger_net=market_ledger_net(conn, market_id),
        expected_ledger_net=expected_net,
        drift=drift,
    )
    if not report.ok:
        log.warning("reconcile_drift", market_id=market_id, drift=drift, ledger_net=report.ledger_net)
    return report


def reconcile_all(conn: Any) -> list[ReconcileReport]:
    return [reconcile_market(conn, m.market_id) for m in list_markets(conn)]

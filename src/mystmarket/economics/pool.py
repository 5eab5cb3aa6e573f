"""Pool accountant - per-outcome stake totals and the resolution split."""

from __future__ import annotations

import time

from mystmarket.economics.errors import AlreadyResolved, InvalidAmount, InvalidOutcome, MarketClosed
from mystmarket.models.market import Market, MarketStatus
from mystmarket.models.settlement import PoolTotals


def _require_outcome(market: Market, outcome: str) -> None:
    if outcome not in market.outcomes:
        raise InvalidOutcome(
            f"Outcome {outcome!r} is not one of {market.outcomes} for market {market.market_id}"
        )


def record_stake(market: Market, outcome: str, amount: int, minimum: int = 1) -> Market:
    """Add amount to the outcome's pool. Append-only: pools never decrease."""
    if not market.is_open:
        raise MarketClosed(f"Betting is closed for market {market.market_id} ({market.status.value})")
    _require_outcome(market, outcome)
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(f"Stake must be a positive integer number of minor units, got {amount!r}")
    if amount < minimum:
        raise InvalidAmount(f"Stake {amount} is below the minimum bet of {minimum}")
    market.pool_by_outcome[outcome] += amount
    market.version += 1
    return market


def pool_totals(market: Market, winning_outcome: str) -> PoolTotals:
    """Winning/losing split of the market's pools. Pure; "losing" is all non-winning pools combined."""
    _require_outcome(market, winning_outcome)
    total = market.total_pool
    winning = market.pool_by_outcome[winning_outcome]
    return PoolTotals(
        winning_outcome=winning_outcome,
        winning_pool_total=winning,
        losing_pool_total=total - winning,
        total_pool=total,
    )


def resolve(market: Market, winning_outcome: str, now_ms: int | None = None) -> PoolTotals:
    """Snapshot the pools and transition OPEN -> RESOLVED. Fails with AlreadyResolved otherwise."""
    if not market.is_open:
        raise AlreadyResolved(
            f"Market {market.market_id} is already {market.status.value}",
            winning_outcome=market.winning_outcome,
        )
    totals = pool_totals(market, winning_outcome)
    market.status = MarketStatus.RESOLVED
    market.winning_outcome = winning_outcome
    market.resolved_at = now_ms if now_ms is not None else int(time.time() * 1000)
    market.version += 1
    return totals


def cancel(market: Market, now_ms: int | None = None) -> int:
    """Transition OPEN -> CANCELLED. Returns the total pool to be refunded 1:1."""
    if not market.is_open:
        raise AlreadyResolved(
            f"Market {market.market_id} is already {market.status.value}",
            winning_outcome=market.winning_outcome,
        )
    market.status = MarketStatus.CANCELLED
    market.resolved_at = now_ms if now_ms is not None else int(time.time() * 1000)
    market.version += 1
    return market.total_pool

"""Canonical schema - Market, Bet (pydantic) and settlement value objects."""

from mystmarket.models.market import Bet, Market, MarketStatus
from mystmarket.models.settlement import (
    NO_WINNERS,
    BettorPayout,
    NoWinners,
    PoolTotals,
    SettlementResult,
    WithdrawalQuote,
)

__all__ = [
    "Market",
    "MarketStatus",
    "Bet",
    "NO_WINNERS",
    "NoWinners",
    "PoolTotals",
    "BettorPayout",
    "SettlementResult",
    "WithdrawalQuote",
]

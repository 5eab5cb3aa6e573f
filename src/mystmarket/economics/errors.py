"""Settlement engine error taxonomy. Every error carries a machine-readable code."""

from __future__ import annotations


class SettlementError(Exception):
    """Base for all engine errors. Raised before any state is mutated."""

    code = "settlement_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidAmount(SettlementError):
    """Amount is negative, non-finite, too precise, out of range, or below the minimum bet."""

    code = "invalid_amount"


class InvalidOutcome(SettlementError):
    """Outcome is not one of the market's outcomes."""

    code = "invalid_outcome"


class InvalidFee(SettlementError):
    """Platform fee (or fee rate) is negative or otherwise unusable."""

    code = "invalid_fee"


class InvalidSplitConfig(SettlementError):
    """Fee split is empty, malformed, or does not sum to exactly 1."""

    code = "invalid_split_config"


class MarketClosed(SettlementError):
    """Stake attempted on a market that is no longer OPEN."""

    code = "market_closed"


class AlreadyResolved(SettlementError):
    """Resolution attempted on a market that is not OPEN, with a conflicting outcome."""

    code = "already_resolved"

    def __init__(self, message: str, winning_outcome: str | None = None) -> None:
        super().__init__(message)
        self.winning_outcome = winning_outcome


class NoWinnersDegenerate(SettlementError):
    """Nobody staked on the winning outcome; a house policy must be applied by the caller."""

    code = "no_winners"


class MarketNotFound(SettlementError):
    code = "market_not_found"


class StaleMarket(SettlementError):
    """Optimistic version check lost against a concurrent writer."""

    code = "stale_market"


class InvariantViolation(SettlementError):
    """Arithmetic inconsistency detected. Fatal: the market must not be settled."""

    code = "invariant_violation"

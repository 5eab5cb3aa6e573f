"""Payout calculator - exact pari-mutuel multiplier and floor-rounded bettor payouts."""

from __future__ import annotations

from collections.abc import Iterable
from fractions import Fraction

from mystmarket.economics.errors import InvalidAmount, InvariantViolation, NoWinnersDegenerate
from mystmarket.models.market import Bet
from mystmarket.models.settlement import NO_WINNERS, BettorPayout, Multiplier


def compute_multiplier(distributable_pool: int, winning_pool_total: int) -> Multiplier:
    """distributable_pool / winning_pool_total as an exact Fraction, or NO_WINNERS."""
    if distributable_pool < 0 or winning_pool_total < 0:
        raise InvalidAmount("Pool totals must be non-negative")
    if winning_pool_total == 0:
        return NO_WINNERS
    return Fraction(distributable_pool, winning_pool_total)


def compute_bettor_payout(bet_amount: int, multiplier: Multiplier) -> int:
    """floor(bet_amount * multiplier) in minor units."""
    if multiplier is NO_WINNERS:
        raise NoWinnersDegenerate("No stake on the winning outcome; apply the no-winners policy")
    if isinstance(bet_amount, bool) or not isinstance(bet_amount, int) or bet_amount < 0:
        raise InvalidAmount(f"Bet amount must be a non-negative integer, got {bet_amount!r}")
    return (bet_amount * multiplier.numerator) // multiplier.denominator


def compute_payouts(
    winning_bets: Iterable[Bet],
    multiplier: Multiplier,
    distributable_pool: int,
) -> tuple[tuple[BettorPayout, ...], int]:
    """Payout per winning bet plus the rounding dust left in the distributable pool."""
    payouts = tuple(
        BettorPayout(
            bet_id=bet.bet_id,
            bettor_id=bet.bettor_id,
            stake=bet.amount,
            payout=compute_bettor_payout(bet.amount, multiplier),
        )
        for bet in winning_bets
    )
    dust = distributable_pool - sum(p.payout for p in payouts)
    if dust < 0:
        raise InvariantViolation(
            f"Payouts exceed the distributable pool by {-dust} minor units"
        )
    return payouts, dust


def refund_payouts(bets: Iterable[Bet]) -> tuple[BettorPayout, ...]:
    """Return every stake 1:1 (cancellation and refund policy)."""
    return tuple(
        BettorPayout(bet_id=b.bet_id, bettor_id=b.bettor_id, stake=b.amount, payout=b.amount)
        for b in bets
    )

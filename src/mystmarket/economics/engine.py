"""Settlement engine - pari-mutuel resolution of one market.

Pure orchestration over the pool accountant, fee distributor and payout calculator.
Everything is computed and verified before the market is transitioned, so a failure
leaves the market untouched. Conservation is checked on every result:

    sum(fee_split) == platform_fee
    distributable_pool + platform_fee == total_pool
    sum(payouts) + rounding_dust + unclaimed_pool == distributable_pool
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from fractions import Fraction

from mystmarket.economics import pool
from mystmarket.economics.errors import (
    AlreadyResolved,
    InvalidAmount,
    InvalidFee,
    InvalidSplitConfig,
    InvariantViolation,
)
from mystmarket.economics.fees import DEFAULT_FEE_SPLIT, FeeSplitConfig, distribute_fee
from mystmarket.economics.payout import compute_multiplier, compute_payouts, refund_payouts
from mystmarket.models.market import Bet, Market, MarketStatus
from mystmarket.models.settlement import NO_WINNERS, PoolTotals, SettlementResult


class NoWinnersPolicy(str, Enum):
    """What to do when nobody staked on the winning outcome."""

    TREASURY = "treasury"  # charge the fee, sweep the distributable pool to the treasury
    REFUND = "refund"  # no fee, every stake returned 1:1


@dataclass(frozen=True)
class EconomicsConfig:
    """Validated economics parameters. Build once at startup and pass in explicitly."""

    fee_rate: Decimal = Decimal("0.10")
    fee_split: FeeSplitConfig = DEFAULT_FEE_SPLIT
    minimum_bet: int = 200  # minor units (2 MYST)
    no_winners_policy: NoWinnersPolicy = NoWinnersPolicy.TREASURY
    treasury_pool: str = "treasury"

    def __post_init__(self) -> None:
        if not isinstance(self.fee_rate, Decimal) or not self.fee_rate.is_finite():
            raise InvalidFee(f"Fee rate must be a finite Decimal, got {self.fee_rate!r}")
        if not Decimal(0) <= self.fee_rate < 1:
            raise InvalidFee(f"Fee rate must be in [0, 1), got {self.fee_rate}")
        if self.treasury_pool not in self.fee_split.names:
            raise InvalidSplitConfig(
                f"Treasury pool {self.treasury_pool!r} is not in the fee split {self.fee_split.names}"
            )
        if isinstance(self.minimum_bet, bool) or not isinstance(self.minimum_bet, int) or self.minimum_bet < 1:
            raise InvalidAmount(f"Minimum bet must be a positive integer, got {self.minimum_bet!r}")


def platform_fee(losing_pool_total: int, fee_rate: Decimal) -> int:
    """floor(losing_pool_total * fee_rate). The fee is never charged on the winning side."""
    if losing_pool_total < 0:
        raise InvalidAmount(f"Losing pool must be non-negative, got {losing_pool_total}")
    if fee_rate < 0:
        raise InvalidFee(f"Fee rate must be non-negative, got {fee_rate}")
    fee = losing_pool_total * Fraction(fee_rate)
    return fee.numerator // fee.denominator


def verify_settlement(result: SettlementResult) -> SettlementResult:
    """Raise InvariantViolation if any conservation check fails."""
    if sum(result.fee_split.values()) != result.platform_fee:
        raise InvariantViolation(
            f"Fee split sums to {sum(result.fee_split.values())}, platform fee is {result.platform_fee}"
        )
    if any(v < 0 for v in result.fee_split.values()):
        raise InvariantViolation(f"Negative fee share in {result.fee_split}")
    if result.distributable_pool + result.platform_fee != result.total_pool:
        raise InvariantViolation(
            f"Distributable {result.distributable_pool} + fee {result.platform_fee} "
            f"!= total pool {result.total_pool}"
        )
    if result.winning_pool_total + result.losing_pool_total != result.total_pool:
        raise InvariantViolation("Winning and losing pools do not add up to the total pool")
    if result.rounding_dust < 0 or result.unclaimed_pool < 0:
        raise InvariantViolation("Dust and unclaimed amounts must be non-negative")
    if any(p.payout < 0 for p in result.payouts):
        raise InvariantViolation("Negative bettor payout")
    paid = result.total_paid + result.rounding_dust + result.unclaimed_pool
    if paid != result.distributable_pool:
        raise InvariantViolation(
            f"Payouts {result.total_paid} + dust {result.rounding_dust} + unclaimed "
            f"{result.unclaimed_pool} != distributable pool {result.distributable_pool}"
        )
    return result


def check_bets(market: Market, bets: Sequence[Bet]) -> None:
    """Bets must belong to the market and sum to its per-outcome pools."""
    by_outcome = dict.fromkeys(market.outcomes, 0)
    for bet in bets:
        if bet.market_id != market.market_id:
            raise InvariantViolation(f"Bet {bet.bet_id} belongs to market {bet.market_id}")
        if bet.outcome not in by_outcome:
            raise InvariantViolation(f"Bet {bet.bet_id} is on unknown outcome {bet.outcome!r}")
        by_outcome[bet.outcome] += bet.amount
    if by_outcome != market.pool_by_outcome:
        raise InvariantViolation(
            f"Bets {by_outcome} do not match pools {market.pool_by_outcome} for market {market.market_id}"
        )


def compute_settlement(
    market_id: str,
    totals: PoolTotals,
    bets: Sequence[Bet],
    config: EconomicsConfig,
) -> SettlementResult:
    """Settlement for a resolution snapshot. Pure: no market state is touched."""
    fee = platform_fee(totals.losing_pool_total, config.fee_rate)
    distributable = totals.total_pool - fee
    multiplier = compute_multiplier(distributable, totals.winning_pool_total)

    if multiplier is NO_WINNERS:
        if config.no_winners_policy is NoWinnersPolicy.REFUND:
            result = SettlementResult(
                market_id=market_id,
                kind="refunded",
                winning_outcome=totals.winning_outcome,
                total_pool=totals.total_pool,
                winning_pool_total=totals.winning_pool_total,
                losing_pool_total=totals.losing_pool_total,
                platform_fee=0,
                fee_split=distribute_fee(0, config.fee_split),
                distributable_pool=totals.total_pool,
                payout_multiplier=Fraction(1),
                payouts=refund_payouts(bets),
            )
        else:
            result = SettlementResult(
                market_id=market_id,
                winning_outcome=totals.winning_outcome,
                total_pool=totals.total_pool,
                winning_pool_total=0,
                losing_pool_total=totals.losing_pool_total,
                platform_fee=fee,
                fee_split=distribute_fee(fee, config.fee_split),
                distributable_pool=distributable,
                payout_multiplier=NO_WINNERS,
                unclaimed_pool=distributable,
            )
        return verify_settlement(result)

    winning_bets = [b for b in bets if b.outcome == totals.winning_outcome]
    payouts, dust = compute_payouts(winning_bets, multiplier, distributable)
    result = SettlementResult(
        market_id=market_id,
        winning_outcome=totals.winning_outcome,
        total_pool=totals.total_pool,
        winning_pool_total=totals.winning_pool_total,
        losing_pool_total=totals.losing_pool_total,
        platform_fee=fee,
        fee_split=distribute_fee(fee, config.fee_split),
        distributable_pool=distributable,
        payout_multiplier=multiplier,
        payouts=payouts,
        rounding_dust=dust,
    )
    return verify_settlement(result)


def settle(
    market: Market,
    winning_outcome: str,
    bets: Sequence[Bet],
    config: EconomicsConfig,
    now_ms: int | None = None,
) -> SettlementResult:
    """Resolve market in favour of winning_outcome and return its settlement.

    Repeating the call with the same outcome on a RESOLVED market recomputes the identical
    result from the frozen pools without touching the market; a different outcome, or a
    CANCELLED market, raises AlreadyResolved.
    """
    if market.status is MarketStatus.RESOLVED:
        if market.winning_outcome != winning_outcome:
            raise AlreadyResolved(
                f"Market {market.market_id} already resolved to {market.winning_outcome!r}",
                winning_outcome=market.winning_outcome,
            )
        check_bets(market, bets)
        return compute_settlement(market.market_id, pool.pool_totals(market, winning_outcome), bets, config)
    if market.status is not MarketStatus.OPEN:
        raise AlreadyResolved(f"Market {market.market_id} is {market.status.value}")

    totals = pool.pool_totals(market, winning_outcome)
    check_bets(market, bets)
    result = compute_settlement(market.market_id, totals, bets, config)
    pool.resolve(market, winning_outcome, now_ms=now_ms)
    return result


def cancel(
    market: Market,
    bets: Sequence[Bet],
    config: EconomicsConfig,
    now_ms: int | None = None,
) -> SettlementResult:
    """Cancel an OPEN market: no fee, every stake refunded 1:1. Repeatable on CANCELLED."""
    if market.status is MarketStatus.RESOLVED:
        raise AlreadyResolved(
            f"Market {market.market_id} already resolved to {market.winning_outcome!r}",
            winning_outcome=market.winning_outcome,
        )
    check_bets(market, bets)
    total = market.total_pool
    result = verify_settlement(
        SettlementResult(
            market_id=market.market_id,
            kind="cancelled",
            winning_outcome=None,
            total_pool=total,
            winning_pool_total=total,
            losing_pool_total=0,
            platform_fee=0,
            fee_split=distribute_fee(0, config.fee_split),
            distributable_pool=total,
            payout_multiplier=Fraction(1),
            payouts=refund_payouts(bets),
        )
    )
    if market.is_open:
        pool.cancel(market, now_ms=now_ms)
    return result

"""Economic simulation: random pari-mutuel markets settled through the real engine."""

from __future__ import annotations

import random
from dataclasses import dataclass
from decimal import Decimal

from mystmarket.economics import engine, pool
from mystmarket.economics.currency import MYST_PER_USD, minor_to_usd
from mystmarket.economics.engine import EconomicsConfig
from mystmarket.economics.errors import InvalidAmount
from mystmarket.models import Bet, Market, SettlementResult

# Requirement example: YES=4000, NO=6000, NO wins, one bettor staked 1000 on NO
EXAMPLE_POOLS = {"YES": 4000, "NO": 6000}
EXAMPLE_WINNER = "NO"
EXAMPLE_STAKE = 1000


@dataclass
class SimulationRun:
    """One simulated market and its settlement."""

    run: int
    pools: dict[str, int]
    bet_count: int
    result: SettlementResult
    fee_usd: Decimal

    @property
    def conserved(self) -> bool:
        r = self.result
        return (
            r.platform_fee + r.distributable_pool == r.total_pool
            and sum(r.fee_split.values()) == r.platform_fee
            and r.total_paid + r.rounding_dust + r.unclaimed_pool == r.distributable_pool
        )


def split_stakes(rng: random.Random, total: int, count: int, minimum: int) -> list[int]:
    """Split total into up to count random stakes, each >= minimum, summing exactly to total."""
    if total <= 0:
        return []
    if total < minimum:
        raise InvalidAmount(f"Cannot split {total} into stakes of at least {minimum}")
    count = max(1, min(count, total // minimum))
    spare = total - minimum * count
    cuts = sorted(rng.randint(0, spare) for _ in range(count - 1))
    bounds = [0, *cuts, spare]
    return [minimum + bounds[i + 1] - bounds[i] for i in range(count)]


def build_market(
    market_id: str,
    stakes_by_outcome: dict[str, list[int]],
    minimum: int = 1,
) -> tuple[Market, list[Bet]]:
    """Open a market and record the given stakes through the pool accountant."""
    market = Market(market_id=market_id, outcomes=list(stakes_by_outcome))
    bets: list[Bet] = []
    for outcome, stakes in stakes_by_outcome.items():
        for amount in stakes:
            pool.record_stake(market, outcome, amount, minimum=minimum)
            bets.append(
                Bet(
                    bet_id=f"{market_id}-{len(bets) + 1}",
                    market_id=market_id,
                    bettor_id=f"user-{len(bets) + 1}",
                    outcome=outcome,
                    amount=amount,
                )
            )
    return market, bets


def requirement_example(config: EconomicsConfig) -> SettlementResult:
    """Settle the requirement example. The first NO bet is the 1000 stake."""
    other_no = EXAMPLE_POOLS["NO"] - EXAMPLE_STAKE
    market, bets = build_market(
        "example",
        {"YES": [EXAMPLE_POOLS["YES"]], "NO": [EXAMPLE_STAKE, other_no]},
    )
    return engine.settle(market, EXAMPLE_WINNER, bets, config)


def simulate_market(
    rng: random.Random,
    run: int,
    total_pool: int,
    config: EconomicsConfig,
    max_bets_per_side: int = 50,
    myst_per_usd: int = MYST_PER_USD,
) -> SimulationRun:
    """Random YES/NO split of total_pool, random bettors per side, 50/50 winner.

    A side too small for one minimum bet is folded into the other side.
    """
    minimum = config.minimum_bet
    if total_pool < minimum:
        raise InvalidAmount(f"Pool of {total_pool} is below the minimum bet of {minimum}")
    yes_total = rng.randint(0, total_pool)
    if yes_total < minimum:
        yes_total = 0
    elif total_pool - yes_total < minimum:
        yes_total = total_pool
    stakes = {
        "YES": split_stakes(rng, yes_total, rng.randint(1, max_bets_per_side), minimum),
        "NO": split_stakes(rng, total_pool - yes_total, rng.randint(1, max_bets_per_side), minimum),
    }
    market, bets = build_market(f"sim-{run}", stakes, minimum=minimum)
    winner = "YES" if rng.random() > 0.5 else "NO"
    result = engine.settle(market, winner, bets, config)
    return SimulationRun(
        run=run,
        pools=dict(market.pool_by_outcome),
        bet_count=len(bets),
        result=result,
        fee_usd=minor_to_usd(result.platform_fee, myst_per_usd),
    )


def run_economy(
    config: EconomicsConfig,
    total_pool: int,
    runs: int = 5,
    seed: int | None = None,
    myst_per_usd: int = MYST_PER_USD,
) -> list[SimulationRun]:
    """Simulate runs markets of total_pool minor units each. Seeded runs are reproducible."""
    rng = random.Random(seed)
    return [
        simulate_market(rng, i, total_pool, config, myst_per_usd=myst_per_usd)
        for i in range(1, runs + 1)
    ]

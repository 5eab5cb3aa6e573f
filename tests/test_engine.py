"""Settlement engine tests: the worked example, conservation and terminal-state rules."""

import dataclasses
import random
from decimal import Decimal
from fractions import Fraction

import pytest

from mystmarket.economics import engine, pool
from mystmarket.economics.engine import EconomicsConfig, NoWinnersPolicy, platform_fee, verify_settlement
from mystmarket.economics.errors import (
    AlreadyResolved,
    InvalidAmount,
    InvalidFee,
    InvalidSplitConfig,
    InvariantViolation,
    MarketClosed,
)
from mystmarket.models import NO_WINNERS, MarketStatus
from mystmarket.simulation.economy import build_market


def test_worked_example(economics):
    market, bets = build_market("m1", {"YES": [4000], "NO": [1000, 5000]})
    result = engine.settle(market, "NO", bets, economics)

    assert result.total_pool == 10000
    assert result.winning_pool_total == 6000
    assert result.losing_pool_total == 4000
    assert result.platform_fee == 400
    assert result.fee_split == {"leaderboard": 60, "referral": 40, "wheel": 20, "treasury": 280}
    assert result.distributable_pool == 9600
    assert result.payout_multiplier == Fraction("1.6")
    assert [(p.bettor_id, p.payout) for p in result.payouts] == [("user-2", 1600), ("user-3", 8000)]
    assert result.payouts[0].profit == 600
    assert result.rounding_dust == 0
    assert market.status is MarketStatus.RESOLVED


def test_platform_fee_rounds_down():
    assert platform_fee(4000, Decimal("0.10")) == 400
    assert platform_fee(15, Decimal("0.10")) == 1
    assert platform_fee(9, Decimal("0.10")) == 0
    assert platform_fee(1000, Decimal("0.333")) == 333


def test_conservation_over_random_markets():
    rng = random.Random(2024)
    rates = [Decimal("0.10"), Decimal("0.07"), Decimal("0.333"), Decimal("0")]
    for i in range(300):
        outcomes = ["A", "B", "C", "D"][: rng.randint(2, 4)]
        stakes = {o: [rng.randint(1, 10**6) for _ in range(rng.randint(0, 8))] for o in outcomes}
        config = EconomicsConfig(fee_rate=rng.choice(rates), minimum_bet=1)
        market, bets = build_market(f"r{i}", stakes)
        winner = rng.choice(outcomes)
        result = engine.settle(market, winner, bets, config)

        assert result.platform_fee == platform_fee(result.losing_pool_total, config.fee_rate)
        assert sum(result.fee_split.values()) == result.platform_fee
        assert result.distributable_pool + result.platform_fee == result.total_pool
        assert result.total_paid + result.rounding_dust + result.unclaimed_pool == result.distributable_pool
        assert result.total_paid <= result.distributable_pool
        assert all(p.payout >= 0 for p in result.payouts)
        if result.payout_multiplier is NO_WINNERS:
            assert result.payouts == ()
            assert result.unclaimed_pool == result.distributable_pool
        else:
            assert result.payout_multiplier == Fraction(result.distributable_pool, result.winning_pool_total)


def test_settle_is_idempotent(economics):
    market, bets = build_market("m1", {"YES": [4000], "NO": [1000, 5000]})
    first = engine.settle(market, "NO", bets, economics)
    version = market.version
    second = engine.settle(market, "NO", bets, economics)
    assert second == first
    assert market.version == version


def test_settle_with_other_outcome_after_resolution(economics):
    market, bets = build_market("m1", {"YES": [4000], "NO": [6000]})
    engine.settle(market, "NO", bets, economics)
    with pytest.raises(AlreadyResolved) as exc:
        engine.settle(market, "YES", bets, economics)
    assert exc.value.winning_outcome == "NO"
    assert market.winning_outcome == "NO"


def test_no_stake_after_settlement(economics):
    market, bets = build_market("m1", {"YES": [4000], "NO": [6000]})
    engine.settle(market, "YES", bets, economics)
    with pytest.raises(MarketClosed):
        pool.record_stake(market, "NO", 500)


def test_no_winners_goes_to_treasury_by_default(economics):
    market, bets = build_market("m1", {"YES": [500], "NO": []})
    result = engine.settle(market, "NO", bets, economics)
    assert result.payout_multiplier is NO_WINNERS
    assert result.platform_fee == 50
    assert result.fee_split == {"leaderboard": 7, "referral": 5, "wheel": 2, "treasury": 36}
    assert result.distributable_pool == 450
    assert result.unclaimed_pool == 450
    assert result.payouts == ()
    assert market.status is MarketStatus.RESOLVED


def test_no_winners_refund_policy():
    config = EconomicsConfig(no_winners_policy=NoWinnersPolicy.REFUND)
    market, bets = build_market("m1", {"YES": [500, 300], "NO": []})
    result = engine.settle(market, "NO", bets, config)
    assert result.kind == "refunded"
    assert result.platform_fee == 0
    assert set(result.fee_split.values()) == {0}
    assert [p.payout for p in result.payouts] == [500, 300]
    assert result.total_paid == result.total_pool
    assert result.unclaimed_pool == 0


def test_empty_market_settles_to_nothing(economics):
    market, bets = build_market("m1", {"YES": [], "NO": []})
    result = engine.settle(market, "YES", bets, economics)
    assert result.total_pool == 0
    assert result.platform_fee == 0
    assert result.payout_multiplier is NO_WINNERS
    assert result.unclaimed_pool == 0


def test_mismatched_bets_leave_market_open(economics):
    market, bets = build_market("m1", {"YES": [4000], "NO": [6000]})
    with pytest.raises(InvariantViolation):
        engine.settle(market, "NO", bets[:1], economics)
    assert market.is_open

    foreign = bets[0].model_copy(update={"market_id": "other"})
    with pytest.raises(InvariantViolation):
        engine.settle(market, "NO", [foreign, bets[1]], economics)
    assert market.is_open


def test_cancel_refunds_everything(economics):
    market, bets = build_market("m1", {"YES": [4000], "NO": [1000, 5000]})
    result = engine.cancel(market, bets, economics)
    assert result.kind == "cancelled"
    assert result.platform_fee == 0
    assert result.payout_multiplier == 1
    assert [p.payout for p in result.payouts] == [4000, 1000, 5000]
    assert market.status is MarketStatus.CANCELLED

    assert engine.cancel(market, bets, economics) == result
    with pytest.raises(AlreadyResolved):
        engine.settle(market, "YES", bets, economics)


def test_cancel_after_resolution_fails(economics):
    market, bets = build_market("m1", {"YES": [4000], "NO": [6000]})
    engine.settle(market, "NO", bets, economics)
    with pytest.raises(AlreadyResolved):
        engine.cancel(market, bets, economics)


def test_verify_settlement_catches_tampering(economics):
    market, bets = build_market("m1", {"YES": [4000], "NO": [1000, 5000]})
    result = engine.settle(market, "NO", bets, economics)
    with pytest.raises(InvariantViolation):
        verify_settlement(dataclasses.replace(result, platform_fee=401))
    with pytest.raises(InvariantViolation):
        verify_settlement(dataclasses.replace(result, rounding_dust=1))
    with pytest.raises(InvariantViolation):
        verify_settlement(dataclasses.replace(result, fee_split={**result.fee_split, "treasury": 281}))


def test_economics_config_validation():
    with pytest.raises(InvalidFee):
        EconomicsConfig(fee_rate=Decimal("1"))
    with pytest.raises(InvalidFee):
        EconomicsConfig(fee_rate=Decimal("-0.01"))
    with pytest.raises(InvalidFee):
        EconomicsConfig(fee_rate=0.1)
    with pytest.raises(InvalidSplitConfig):
        EconomicsConfig(treasury_pool="vault")
    with pytest.raises(InvalidAmount):
        EconomicsConfig(minimum_bet=0)

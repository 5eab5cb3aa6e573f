"""Persistence tests: stakes, transactional resolution, ledger and sub-pool balances."""

import tempfile
from pathlib import Path

import duckdb
import pytest

from mystmarket.economics import pool
from mystmarket.economics.engine import EconomicsConfig, NoWinnersPolicy
from mystmarket.economics.errors import (
    AlreadyResolved,
    InvalidAmount,
    InvalidOutcome,
    MarketClosed,
    MarketNotFound,
    StaleMarket,
)
from mystmarket.models import MarketStatus
from mystmarket.storage.export import export_ledger_to_parquet
from mystmarket.storage.ledger import list_entries, market_ledger_net, pool_balances, user_balance
from mystmarket.storage.markets import bump_version, create_market, get_market, list_bets, list_markets, place_bet
from mystmarket.storage.settlements import cancel_market, get_settlement, resolve_market


def _worked_example(conn, economics, market_id="m1"):
    create_market(conn, market_id, title="Will it rain?")
    place_bet(conn, market_id, "alice", "YES", 4000, economics)
    place_bet(conn, market_id, "bob", "NO", 1000, economics)
    place_bet(conn, market_id, "carol", "NO", 5000, economics)


def test_place_bet_updates_pools_bets_and_ledger(temp_db, economics):
    _worked_example(temp_db, economics)
    market = get_market(temp_db, "m1")
    assert market.pool_by_outcome == {"YES": 4000, "NO": 6000}
    assert market.version == 3
    assert [b.bettor_id for b in list_bets(temp_db, "m1")] == ["alice", "bob", "carol"]
    assert [b.amount for b in list_bets(temp_db, "m1", outcome="NO")] == [1000, 5000]
    assert user_balance(temp_db, "alice") == -4000
    assert market_ledger_net(temp_db, "m1") == -10000


def test_rejected_stakes_write_nothing(temp_db, economics):
    create_market(temp_db, "m1")
    with pytest.raises(InvalidOutcome):
        place_bet(temp_db, "m1", "alice", "MAYBE", 1000, economics)
    with pytest.raises(InvalidAmount):
        place_bet(temp_db, "m1", "alice", "YES", 199, economics)
    with pytest.raises(MarketNotFound):
        place_bet(temp_db, "nope", "alice", "YES", 1000, economics)
    assert get_market(temp_db, "m1").total_pool == 0
    assert list_bets(temp_db, "m1") == []
    assert list_entries(temp_db) == []


def test_duplicate_market_rejected(temp_db):
    create_market(temp_db, "m1")
    with pytest.raises(duckdb.ConstraintException):
        create_market(temp_db, "m1")
    assert len(list_markets(temp_db)) == 1


def test_resolve_applies_payouts_and_fee_split(temp_db, economics):
    _worked_example(temp_db, economics)
    result = resolve_market(temp_db, "m1", "NO", economics)

    assert result.platform_fee == 400
    assert result.distributable_pool == 9600
    assert get_market(temp_db, "m1").status is MarketStatus.RESOLVED
    assert get_settlement(temp_db, "m1") == result
    assert user_balance(temp_db, "alice") == -4000
    assert user_balance(temp_db, "bob") == 600
    assert user_balance(temp_db, "carol") == 3000
    assert pool_balances(temp_db) == {"leaderboard": 60, "referral": 40, "treasury": 280, "wheel": 20}
    assert market_ledger_net(temp_db, "m1") == 0


def test_resolve_retry_is_idempotent(temp_db, economics):
    _worked_example(temp_db, economics)
    first = resolve_market(temp_db, "m1", "NO", economics)
    entries = len(list_entries(temp_db, market_id="m1"))
    second = resolve_market(temp_db, "m1", "NO", economics)
    assert second == first
    assert len(list_entries(temp_db, market_id="m1")) == entries
    assert pool_balances(temp_db)["treasury"] == 280


def test_resolve_with_different_outcome_fails(temp_db, economics):
    _worked_example(temp_db, economics)
    resolve_market(temp_db, "m1", "NO", economics)
    with pytest.raises(AlreadyResolved):
        resolve_market(temp_db, "m1", "YES", economics)
    assert get_market(temp_db, "m1").winning_outcome == "NO"


def test_no_stake_after_resolution(temp_db, economics):
    _worked_example(temp_db, economics)
    resolve_market(temp_db, "m1", "NO", economics)
    with pytest.raises(MarketClosed):
        place_bet(temp_db, "m1", "dave", "YES", 1000, economics)
    assert len(list_bets(temp_db, "m1")) == 3
    assert get_market(temp_db, "m1").total_pool == 10000


def test_resolve_unknown_outcome_keeps_market_open(temp_db, economics):
    _worked_example(temp_db, economics)
    with pytest.raises(InvalidOutcome):
        resolve_market(temp_db, "m1", "MAYBE", economics)
    market = get_market(temp_db, "m1")
    assert market.status is MarketStatus.OPEN
    assert get_settlement(temp_db, "m1") is None


def test_no_winners_sweeps_pool_to_treasury(temp_db, economics):
    create_market(temp_db, "m1")
    place_bet(temp_db, "m1", "alice", "YES", 1000, economics)
    result = resolve_market(temp_db, "m1", "NO", economics)
    assert result.unclaimed_pool == 900
    assert pool_balances(temp_db) == {"leaderboard": 15, "referral": 10, "treasury": 970, "wheel": 5}
    assert user_balance(temp_db, "alice") == -1000
    assert market_ledger_net(temp_db, "m1") == 0


def test_rounding_dust_swept_to_treasury(temp_db, economics):
    create_market(temp_db, "m1")
    for user in ["alice", "bob", "carol"]:
        place_bet(temp_db, "m1", user, "YES", 300, economics)
    place_bet(temp_db, "m1", "dave", "NO", 201, economics)
    result = resolve_market(temp_db, "m1", "YES", economics)

    # fee floor(20.1) = 20, each winner gets floor(300 * 1081 / 900) = 360
    assert result.platform_fee == 20
    assert [p.payout for p in result.payouts] == [360, 360, 360]
    assert result.rounding_dust == 1
    dust = [e for e in list_entries(temp_db, market_id="m1") if e["entry_type"] == "rounding_dust"]
    assert [(e["account_id"], e["amount"]) for e in dust] == [("treasury", 1)]
    assert pool_balances(temp_db) == {"leaderboard": 3, "referral": 2, "treasury": 15, "wheel": 1}
    assert market_ledger_net(temp_db, "m1") == 0


def test_no_winners_refund_policy_writes_refunds(temp_db):
    config = EconomicsConfig(no_winners_policy=NoWinnersPolicy.REFUND)
    create_market(temp_db, "m1")
    place_bet(temp_db, "m1", "alice", "YES", 500, config)
    place_bet(temp_db, "m1", "bob", "YES", 300, config)
    result = resolve_market(temp_db, "m1", "NO", config)

    assert result.kind == "refunded"
    assert result.platform_fee == 0
    refunds = [e for e in list_entries(temp_db, market_id="m1") if e["entry_type"] == "prediction_refund"]
    assert [(e["account_id"], e["amount"]) for e in refunds] == [("alice", 500), ("bob", 300)]
    assert user_balance(temp_db, "alice") == 0
    assert user_balance(temp_db, "bob") == 0
    assert pool_balances(temp_db) == {}
    assert market_ledger_net(temp_db, "m1") == 0
    assert get_market(temp_db, "m1").status is MarketStatus.RESOLVED
    assert resolve_market(temp_db, "m1", "NO", config) == result


def test_cancel_refunds_and_closes(temp_db, economics):
    create_market(temp_db, "m1")
    place_bet(temp_db, "m1", "alice", "YES", 4000, economics)
    place_bet(temp_db, "m1", "bob", "NO", 1000, economics)
    result = cancel_market(temp_db, "m1", economics)

    assert result.kind == "cancelled"
    assert user_balance(temp_db, "alice") == 0
    assert user_balance(temp_db, "bob") == 0
    assert pool_balances(temp_db) == {}
    assert get_market(temp_db, "m1").status is MarketStatus.CANCELLED

    entries = len(list_entries(temp_db))
    assert cancel_market(temp_db, "m1", economics) == result
    assert len(list_entries(temp_db)) == entries
    with pytest.raises(AlreadyResolved):
        resolve_market(temp_db, "m1", "YES", economics)
    with pytest.raises(MarketClosed):
        place_bet(temp_db, "m1", "carol", "NO", 1000, economics)


def test_cancel_after_resolution_fails(temp_db, economics):
    _worked_example(temp_db, economics)
    resolve_market(temp_db, "m1", "YES", economics)
    with pytest.raises(AlreadyResolved):
        cancel_market(temp_db, "m1", economics)


def test_version_guard(temp_db):
    create_market(temp_db, "m1")
    market = get_market(temp_db, "m1")
    with pytest.raises(StaleMarket):
        bump_version(temp_db, market, expected_version=market.version + 5)
    ghost = market.model_copy(update={"market_id": "ghost"})
    with pytest.raises(MarketNotFound):
        bump_version(temp_db, ghost, expected_version=0)


def test_stake_racing_resolution_is_rejected(temp_db, economics):
    _worked_example(temp_db, economics)
    staker = temp_db.cursor()
    staker.begin()
    market = get_market(staker, "m1")
    expected = market.version
    pool.record_stake(market, "YES", 500)

    resolve_market(temp_db, "m1", "NO", economics)

    with pytest.raises((MarketClosed, StaleMarket, duckdb.Error)):
        bump_version(staker, market, expected)
    staker.rollback()
    staker.close()
    assert get_market(temp_db, "m1").total_pool == 10000
    assert get_market(temp_db, "m1").status is MarketStatus.RESOLVED


def test_export_ledger_to_parquet(temp_db, economics):
    _worked_example(temp_db, economics)
    resolve_market(temp_db, "m1", "NO", economics)
    out = Path(tempfile.mkdtemp()) / "ledger.parquet"
    count = export_ledger_to_parquet(temp_db, out, market_id="m1")
    assert count == 9
    assert out.exists()
    rows = temp_db.execute(f"SELECT SUM(amount) FROM read_parquet('{out}')").fetchone()
    assert rows[0] == 0
    out.unlink()
    out.parent.rmdir()

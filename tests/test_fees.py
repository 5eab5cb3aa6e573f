"""Fee distributor tests."""

import random
from decimal import Decimal

import pytest

from mystmarket.economics.errors import InvalidFee, InvalidSplitConfig
from mystmarket.economics.fees import DEFAULT_FEE_SPLIT, FeeSplitConfig, distribute_fee


def test_worked_example_split():
    assert distribute_fee(400, DEFAULT_FEE_SPLIT) == {
        "leaderboard": 60,
        "referral": 40,
        "wheel": 20,
        "treasury": 280,
    }


def test_one_minor_unit_goes_to_last_pool():
    assert distribute_fee(1, DEFAULT_FEE_SPLIT) == {"leaderboard": 0, "referral": 0, "wheel": 0, "treasury": 1}


def test_zero_fee():
    assert distribute_fee(0, DEFAULT_FEE_SPLIT) == dict.fromkeys(DEFAULT_FEE_SPLIT.names, 0)


def test_rounding_remainder_absorbed_by_last():
    # 7 * 0.15 = 1.05 -> 1, 7 * 0.10 -> 0, 7 * 0.05 -> 0, treasury takes 6
    assert distribute_fee(7, DEFAULT_FEE_SPLIT) == {"leaderboard": 1, "referral": 0, "wheel": 0, "treasury": 6}


def test_configuration_order_decides_remainder_pool():
    config = FeeSplitConfig.from_mapping(
        {"treasury": "0.70", "leaderboard": "0.15", "referral": "0.10", "wheel": "0.05"}
    )
    assert config.remainder_pool == "wheel"
    assert distribute_fee(1, config) == {"treasury": 0, "leaderboard": 0, "referral": 0, "wheel": 1}


def test_split_is_exact_for_random_fees_and_configs():
    rng = random.Random(7)
    for _ in range(500):
        n = rng.randint(1, 6)
        cuts = sorted(rng.randint(0, 100) for _ in range(n - 1))
        percents = [b - a for a, b in zip([0, *cuts], [*cuts, 100])]
        config = FeeSplitConfig.from_mapping({f"pool{i}": Decimal(p) / 100 for i, p in enumerate(percents)})
        fee = rng.choice([0, 1, 2, 3, 99, rng.randint(0, 10**12)])
        split = distribute_fee(fee, config)
        assert sum(split.values()) == fee
        assert all(v >= 0 for v in split.values())
        for name, share in config.shares[:-1]:
            assert split[name] == int(fee * share)


def test_toml_floats_parse_exactly():
    # 0.15 + 0.1 + 0.05 + 0.7 is not 1.0 in binary floating point
    config = FeeSplitConfig.from_mapping({"a": 0.15, "b": 0.1, "c": 0.05, "d": 0.7})
    assert config.percentages() == {"a": 15, "b": 10, "c": 5, "d": 70}


@pytest.mark.parametrize(
    "raw",
    [
        {},
        {"a": "0.5", "b": "0.49"},
        {"a": "1.1", "b": "-0.1"},
        {"a": "abc"},
        {"a": "0.5", "": "0.5"},
        [("a", "0.5"), ("a", "0.5")],
    ],
)
def test_invalid_split_configs(raw):
    with pytest.raises(InvalidSplitConfig):
        FeeSplitConfig.from_mapping(raw)


def test_invalid_fee():
    with pytest.raises(InvalidFee):
        distribute_fee(-1, DEFAULT_FEE_SPLIT)
    with pytest.raises(InvalidFee):
        distribute_fee(1.5, DEFAULT_FEE_SPLIT)

"""MYST economics - currency units, pool accounting, fee split, payouts, settlement."""

from mystmarket.economics.engine import (
    EconomicsConfig,
    NoWinnersPolicy,
    cancel,
    compute_settlement,
    platform_fee,
    settle,
    verify_settlement,
)
from mystmarket.economics.fees import FeeSplitConfig, distribute_fee
from mystmarket.economics.payout import compute_bettor_payout, compute_multiplier

__all__ = [
    "EconomicsConfig",
    "NoWinnersPolicy",
    "FeeSplitConfig",
    "cancel",
    "compute_settlement",
    "compute_bettor_payout",
    "compute_multiplier",
    "distribute_fee",
    "platform_fee",
    "settle",
    "verify_settlement",
]

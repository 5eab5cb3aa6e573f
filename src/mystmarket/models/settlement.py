"""Settlement outputs - pure value objects produced by the economics engine."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from fractions import Fraction
from typing import Any


class NoWinners:
    """Sentinel multiplier for a market where nobody staked on the winning outcome."""

    _instance: NoWinners | None = None

    def __new__(cls) -> NoWinners:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_WINNERS"

    def __bool__(self) -> bool:
        return False


NO_WINNERS = NoWinners()

Multiplier = Fraction | NoWinners


@dataclass(frozen=True)
class PoolTotals:
    """Resolution snapshot of a market's pools."""

    winning_outcome: str
    winning_pool_total: int
    losing_pool_total: int
    total_pool: int


@dataclass(frozen=True)
class BettorPayout:
    """Credit owed to one bet at settlement (payout or refund)."""

    bet_id: str
    bettor_id: str
    stake: int
    payout: int

    @property
    def profit(self) -> int:
        return self.payout - self.stake


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of settling one market. Computed once; the ledger applies it atomically.

    For a cancelled market (or a refunded no-winners market) winning_outcome may be None,
    the fee is zero and every stake is returned 1:1.
    """

    market_id: str
    winning_outcome: str | None
    total_pool: int
    winning_pool_total: int
    losing_pool_total: int
    platform_fee: int
    fee_split: dict[str, int]
    distributable_pool: int
    payout_multiplier: Multiplier
    payouts: tuple[BettorPayout, ...] = ()
    rounding_dust: int = 0
    unclaimed_pool: int = 0
    kind: str = "resolved"  # resolved | refunded | cancelled

    @property
    def total_paid(self) -> int:
        return sum(p.payout for p in self.payouts)

    def to_dict(self) -> dict[str, Any]:
        """Canonical JSON-safe form; the multiplier is kept as an exact "num/den" string."""
        multiplier = self.payout_multiplier
        return {
            "market_id": self.market_id,
            "kind": self.kind,
            "winning_outcome": self.winning_outcome,
            "total_pool": self.total_pool,
            "winning_pool_total": self.winning_pool_total,
            "losing_pool_total": self.losing_pool_total,
            "platform_fee": self.platform_fee,
            "fee_split": dict(self.fee_split),
            "distributable_pool": self.distributable_pool,
            "payout_multiplier": (
                None if multiplier is NO_WINNERS
                else f"{multiplier.numerator}/{multiplier.denominator}"
            ),
            "payouts": [
                {"bet_id": p.bet_id, "bettor_id": p.bettor_id, "stake": p.stake, "payout": p.payout}
                for p in self.payouts
            ],
            "rounding_dust": self.rounding_dust,
            "unclaimed_pool": self.unclaimed_pool,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> SettlementResult:
        multiplier = raw.get("payout_multiplier")
        return cls(
            market_id=raw["market_id"],
            kind=raw.get("kind", "resolved"),
            winning_outcome=raw.get("winning_outcome"),
            total_pool=int(raw["total_pool"]),
            winning_pool_total=int(raw["winning_pool_total"]),
            losing_pool_total=int(raw["losing_pool_total"]),
            platform_fee=int(raw["platform_fee"]),
            fee_split={k: int(v) for k, v in raw["fee_split"].items()},
            distributable_pool=int(raw["distributable_pool"]),
            payout_multiplier=NO_WINNERS if multiplier is None else Fraction(multiplier),
            payouts=tuple(
                BettorPayout(
                    bet_id=p["bet_id"],
                    bettor_id=p["bettor_id"],
                    stake=int(p["stake"]),
                    payout=int(p["payout"]),
                )
                for p in raw.get("payouts") or []
            ),
            rounding_dust=int(raw.get("rounding_dust", 0)),
            unclaimed_pool=int(raw.get("unclaimed_pool", 0)),
        )


@dataclass(frozen=True)
class WithdrawalQuote:
    """Priced withdrawal. Amounts in MYST minor units, USD exact to the cent."""

    amount: int
    fee: int
    burn: int
    net_usd: Decimal
    min_usd: Decimal
    eligible: bool

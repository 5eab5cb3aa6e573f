"""Market, Bet - canonical prediction market entities."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


class MarketStatus(str, Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"
    CANCELLED = "CANCELLED"

    @property
    def terminal(self) -> bool:
        return self is not MarketStatus.OPEN


class Market(BaseModel):
    """One resolvable prediction question with a stake pool per outcome (minor units)."""

    market_id: str
    title: str = ""
    outcomes: list[str] = Field(default_factory=lambda: ["YES", "NO"])
    pool_by_outcome: dict[str, int] = Field(default_factory=dict)
    status: MarketStatus = MarketStatus.OPEN
    winning_outcome: str | None = None
    version: int = 0  # bumped on every write, used for optimistic checks in storage
    created_at: int | None = None  # ms epoch
    resolved_at: int | None = None  # ms epoch

    @field_validator("outcomes")
    @classmethod
    def _distinct_outcomes(cls, v: list[str]) -> list[str]:
        if len(v) < 2:
            raise ValueError("a market needs at least two outcomes")
        if len(set(v)) != len(v):
            raise ValueError("outcomes must be distinct")
        if any(not o for o in v):
            raise ValueError("outcome labels must be non-empty")
        return v

    @model_validator(mode="after")
    def _fill_pools(self) -> Market:
        unknown = set(self.pool_by_outcome) - set(self.outcomes)
        if unknown:
            raise ValueError(f"pools for unknown outcomes: {sorted(unknown)}")
        for outcome in self.outcomes:
            amount = self.pool_by_outcome.setdefault(outcome, 0)
            if amount < 0:
                raise ValueError(f"pool for {outcome} is negative")
        if self.winning_outcome is not None and self.status is not MarketStatus.RESOLVED:
            raise ValueError("winning_outcome is only set on RESOLVED markets")
        return self

    @property
    def total_pool(self) -> int:
        return sum(self.pool_by_outcome.values())

    @property
    def is_open(self) -> bool:
        return self.status is MarketStatus.OPEN


class Bet(BaseModel):
    """One bettor's stake on one outcome. Immutable once recorded."""

    model_config = {"frozen": True}

    bet_id: str
    market_id: str
    bettor_id: str
    outcome: str
    amount: int = Field(..., gt=0, description="Stake in MYST minor units")
    created_at: int | None = None  # ms epoch

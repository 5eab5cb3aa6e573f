"""Fee distributor - split the platform fee across named sub-pools with no rounding leakage."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from fractions import Fraction
from typing import Any

from mystmarket.economics.errors import InvalidFee, InvalidSplitConfig


def parse_share(value: Any) -> Decimal:
    """Parse a share/rate from config. Floats go through str() so 0.15 stays exactly 0.15."""
    if isinstance(value, bool):
        raise InvalidSplitConfig(f"Not a share: {value!r}")
    try:
        share = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidSplitConfig(f"Not a share: {value!r}") from None
    if not share.is_finite():
        raise InvalidSplitConfig(f"Share must be finite, got {value!r}")
    return share


@dataclass(frozen=True)
class FeeSplitConfig:
    """Ordered sub-pool shares summing to exactly 1. The last pool absorbs the remainder."""

    shares: tuple[tuple[str, Decimal], ...]

    def __post_init__(self) -> None:
        if not self.shares:
            raise InvalidSplitConfig("Fee split must name at least one sub-pool")
        names = [name for name, _ in self.shares]
        if any(not isinstance(n, str) or not n.strip() for n in names):
            raise InvalidSplitConfig("Sub-pool names must be non-empty strings")
        if len(set(names)) != len(names):
            raise InvalidSplitConfig(f"Duplicate sub-pool in fee split: {names}")
        for name, share in self.shares:
            if not isinstance(share, Decimal) or not share.is_finite():
                raise InvalidSplitConfig(f"Share for {name} must be a finite Decimal")
            if share < 0 or share > 1:
                raise InvalidSplitConfig(f"Share for {name} must be in [0, 1], got {share}")
        total = sum((share for _, share in self.shares), Decimal(0))
        if total != 1:
            raise InvalidSplitConfig(f"Fee split shares must sum to exactly 1, got {total}")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> FeeSplitConfig:
        """Build from an ordered mapping (e.g. a TOML table) of name -> share."""
        items = raw.items() if isinstance(raw, Mapping) else raw
        return cls(shares=tuple((str(name), parse_share(share)) for name, share in items))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.shares]

    @property
    def remainder_pool(self) -> str:
        return self.shares[-1][0]

    def percentages(self) -> dict[str, Decimal]:
        return {name: share * 100 for name, share in self.shares}


DEFAULT_FEE_SPLIT = FeeSplitConfig.from_mapping(
    {"leaderboard": "0.15", "referral": "0.10", "wheel": "0.05", "treasury": "0.70"}
)


def distribute_fee(platform_fee: int, config: FeeSplitConfig) -> dict[str, int]:
    """Split platform_fee (minor units) by config order.

    Every pool but the last gets floor(fee * share); the last gets what is left, so the
    parts always sum to platform_fee exactly.
    """
    if isinstance(platform_fee, bool) or not isinstance(platform_fee, int):
        raise InvalidFee(f"Platform fee must be an integer number of minor units, got {platform_fee!r}")
    if platform_fee < 0:
        raise InvalidFee(f"Platform fee must be non-negative, got {platform_fee}")
    split: dict[str, int] = {}
    assigned = 0
    *head, (last_name, _) = config.shares
    for name, share in head:
        amount = platform_fee * Fraction(share)
        part = amount.numerator // amount.denominator
        split[name] = part
        assigned += part
    split[last_name] = platform_fee - assigned
    return split

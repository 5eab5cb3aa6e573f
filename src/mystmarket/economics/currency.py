"""MYST currency and unit model.

All internal arithmetic is done on integers in minor units (1 MYST = 100 minor units).
The MYST/USD exchange rate is used only at display and withdrawal boundaries, never
inside pool math.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_EVEN, Decimal, Inexact, InvalidOperation, Overflow, localcontext

from mystmarket.economics.errors import InvalidAmount, InvalidFee
from mystmarket.models.settlement import WithdrawalQuote

MYST_DECIMALS = 2
MINOR_PER_MYST = 10**MYST_DECIMALS

# 1 USD = 50 MYST (fixed rate)
MYST_PER_USD = 50

# Ledger amounts are stored as BIGINT
MAX_MINOR_UNITS = 2**63 - 1

_CENT = Decimal("0.01")


def _as_decimal(value: int | str | float | Decimal) -> Decimal:
    if isinstance(value, bool):
        raise InvalidAmount(f"Not an amount: {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, str)):
        try:
            return Decimal(value.strip() if isinstance(value, str) else value)
        except InvalidOperation:
            raise InvalidAmount(f"Not an amount: {value!r}") from None
    if isinstance(value, float):
        # str() gives the shortest repr, so 0.1 becomes Decimal("0.1") not the binary expansion
        return Decimal(str(value))
    raise InvalidAmount(f"Not an amount: {value!r}")


def _scale(amount: Decimal, factor: int, original: object) -> Decimal:
    """amount * factor, failing instead of rounding or overflowing the decimal context."""
    with localcontext() as ctx:
        ctx.traps[Inexact] = True
        ctx.traps[Overflow] = True
        try:
            return amount * factor
        except (Inexact, Overflow):
            raise InvalidAmount(f"Amount {original!r} is too precise or out of range") from None


def to_minor_units(major_amount: int | str | float | Decimal) -> int:
    """Convert a MYST amount (e.g. "12.5") to integer minor units (1250).

    Rejects negative, non-finite and out-of-range values, and values with more
    precision than one minor unit (no silent truncation).
    """
    amount = _as_decimal(major_amount)
    if not amount.is_finite():
        raise InvalidAmount(f"Amount must be finite, got {major_amount!r}")
    if amount < 0:
        raise InvalidAmount(f"Amount must be non-negative, got {major_amount!r}")
    minor = _scale(amount, MINOR_PER_MYST, major_amount)
    if minor != minor.to_integral_value():
        raise InvalidAmount(
            f"Amount {major_amount!r} has more than {MYST_DECIMALS} decimal places"
        )
    result = int(minor)
    if result > MAX_MINOR_UNITS:
        raise InvalidAmount(f"Amount {major_amount!r} exceeds the supported range")
    return result


def from_minor_units(minor_amount: int) -> str:
    """Format minor units as a MYST decimal string, e.g. 1250 -> "12.50". Display only."""
    if isinstance(minor_amount, bool) or not isinstance(minor_amount, int):
        raise InvalidAmount(f"Minor amount must be an integer, got {minor_amount!r}")
    sign = "-" if minor_amount < 0 else ""
    whole, frac = divmod(abs(minor_amount), MINOR_PER_MYST)
    return f"{sign}{whole}.{frac:0{MYST_DECIMALS}d}"


def minor_to_usd(minor_amount: int, myst_per_usd: int = MYST_PER_USD) -> Decimal:
    """Exact USD value of a MYST minor-unit amount. Reporting/withdrawal boundary only."""
    return Decimal(minor_amount) / (MINOR_PER_MYST * myst_per_usd)


def format_usd(minor_amount: int, myst_per_usd: int = MYST_PER_USD) -> str:
    """USD display string for a minor-unit amount, e.g. 50000 -> "$10.00"."""
    usd = minor_to_usd(minor_amount, myst_per_usd).quantize(_CENT, rounding=ROUND_HALF_EVEN)
    return f"-${-usd:,.2f}" if usd < 0 else f"${usd:,.2f}"


def usd_to_minor(usd: int | str | Decimal, myst_per_usd: int = MYST_PER_USD) -> int:
    """MYST minor units bought by a USD amount (simulation pool sizing)."""
    return to_minor_units(_scale(_as_decimal(usd), myst_per_usd, usd))


def quote_withdrawal(
    amount_minor: int,
    fee_rate: Decimal,
    min_usd: Decimal,
    myst_per_usd: int = MYST_PER_USD,
) -> WithdrawalQuote:
    """Price a withdrawal: fee is retained, the rest is burned and paid out in USD."""
    if isinstance(amount_minor, bool) or not isinstance(amount_minor, int) or amount_minor <= 0:
        raise InvalidAmount(f"Withdrawal amount must be a positive integer, got {amount_minor!r}")
    if amount_minor > MAX_MINOR_UNITS:
        raise InvalidAmount(f"Withdrawal amount {amount_minor} exceeds the supported range")
    if not Decimal(0) <= fee_rate < 1:
        raise InvalidFee(f"Withdrawal fee rate must be in [0, 1), got {fee_rate}")
    fee_minor = int((amount_minor * fee_rate).to_integral_value(rounding=ROUND_DOWN))
    burn_minor = amount_minor - fee_minor
    net_usd = minor_to_usd(burn_minor, myst_per_usd).quantize(_CENT, rounding=ROUND_DOWN)
    return WithdrawalQuote(
        amount=amount_minor,
        fee=fee_minor,
        burn=burn_minor,
        net_usd=net_usd,
        min_usd=min_usd,
        eligible=net_usd >= min_usd,
    )

"""Decimal amount parsing and base-unit scaling."""

from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from nullwallet.errors import InvalidRequest

Amount = Union[Decimal, int, str]

# Enough digits for any uint256 at 18 decimals
_PRECISION = 80


def parse_amount(amount: Amount) -> Decimal:
    """Parse a positive, finite amount. Raises InvalidRequest otherwise."""
    if isinstance(amount, bool) or amount is None:
        raise InvalidRequest(f"Invalid amount: {amount!r}")
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise InvalidRequest(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise InvalidRequest(f"Amount must be greater than 0, got {amount!r}")
    return value


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Scale a decimal amount to integer base units.

    Raises:
        ValueError: amount has more fractional digits than the token supports
    """
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        scaled = amount.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"Amount {amount} has more than {decimals} decimal places")
        return int(scaled)


def from_base_units(value: int, decimals: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(value).scaleb(-decimals)

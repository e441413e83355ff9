"""
Fixed-point amount conversion.

The engine stores every amount as an integer count of the settlement
currency's smallest unit (6 decimals for USDC). These helpers convert
between that representation and human-entered decimal strings.
"""

from decimal import Decimal, InvalidOperation
from typing import Union

from .errors import InvalidAmount

DEFAULT_DECIMALS = 6


def to_units(value: Union[str, int, Decimal], decimals: int = DEFAULT_DECIMALS) -> int:
    """
    Convert a decimal amount to integer minor units.

    Args:
        value: Amount such as "12.5", 12 or Decimal("0.000001")
        decimals: Number of minor-unit decimals

    Returns:
        Integer amount in minor units

    Raises:
        InvalidAmount: If value is not a finite number or has more
            precision than the currency supports
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmount(f"Amount must be a decimal string, int or Decimal, got {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidAmount(f"Not a number: {value!r}")
    if not amount.is_finite():
        raise InvalidAmount(f"Not a finite amount: {value!r}")

    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvalidAmount(f"Amount {value} has more than {decimals} decimals")
    return int(scaled)


def format_units(units: int, decimals: int = DEFAULT_DECIMALS) -> str:
    """
    Format integer minor units as a fixed-point decimal string.

    Args:
        units: Amount in minor units
        decimals: Number of minor-unit decimals

    Returns:
        String such as "12.500000"
    """
    sign = "-" if units < 0 else ""
    whole, frac = divmod(abs(units), 10 ** decimals)
    if decimals == 0:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{frac:0{decimals}d}"

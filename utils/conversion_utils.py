"""
Amount conversion utilities for token amounts and slippage calculations.

All arithmetic is done with Decimal under a context wide enough for any
uint256 value, so amounts never pass through floating point.
"""

from decimal import Decimal, ROUND_DOWN, localcontext
from typing import Union

# Native currency (ETH/BNB/MATIC...) always uses 18 decimals
NATIVE_DECIMALS = 18
GWEI_DECIMALS = 9

# uint256 max has 78 digits, plus room for up to 255 fractional digits
_PRECISION = 400

Amount = Union[Decimal, int, str, float]


def to_decimal(amount: Amount) -> Decimal:
    """Coerce an amount to Decimal (floats go through their string form)."""
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


def _check_decimals(decimals: int) -> int:
    decimals = int(decimals)
    if decimals < 0 or decimals > 255:
        raise ValueError(f"decimals must be in [0, 255], got {decimals}")
    return decimals


def to_base_units(amount: Amount, decimals: int) -> int:
    """
    Convert human-readable amount to token's smallest unit.

    The result is truncated toward zero, never rounded up.

    Args:
        amount: Amount in human-readable units
        decimals: Number of decimals for the token

    Returns:
        Amount in smallest unit (wei/smallest denomination)
    """
    value = to_decimal(amount)
    decimals = _check_decimals(decimals)
    if not value.is_finite() or value < 0:
        raise ValueError(f"amount must be a non-negative number, got {amount}")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return int(value.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN))


def from_base_units(amount: int, decimals: int) -> Decimal:
    """
    Convert amount from token's smallest unit to human-readable format.

    Args:
        amount: Amount in smallest unit
        decimals: Number of decimals for the token

    Returns:
        Amount in human-readable units, with full precision
    """
    amount = int(amount)
    decimals = _check_decimals(decimals)
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(amount).scaleb(-decimals)


def apply_slippage(amount_out: Amount, slippage_percent: Amount) -> Decimal:
    """
    Calculate minimum amount out with slippage applied.

    Args:
        amount_out: Quoted output amount in human-readable units
        slippage_percent: Slippage tolerance in percent (0.5 = 0.5%)

    Returns:
        Minimum acceptable output in human-readable units
    """
    amount = to_decimal(amount_out)
    slippage = to_decimal(slippage_percent)
    if amount < 0:
        raise ValueError(f"amount_out must be non-negative, got {amount_out}")
    if slippage < 0 or slippage > 100:
        raise ValueError(f"slippage must be in [0, 100] percent, got {slippage_percent}")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return amount - amount * slippage / Decimal(100)

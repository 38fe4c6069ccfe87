"""
amounts.py - Fixed-point conversion between token amounts and planck

Token amounts in the remediation records are human-readable decimals
(e.g. 1270.9946). On chain every balance is an integer number of planck,
10^-12 of a token.

Conversion never multiplies a float by 10^12: the decimal digits actually
present in the input are read from its shortest string form and scaled
with integer arithmetic.

    to_planck(100000.3827)  -> 100000382700000000
    from_planck(10 ** 12)   -> Decimal("1")
"""

from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from .core import PLANCK_DECIMALS, PLANCK_PER_UNIT


AmountLike = Union[Decimal, float, int, str]

# Working precision for conversion. Covers amounts up to 10^30 planck.
AMOUNT_PRECISION = 50


def _to_decimal(amount: AmountLike) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    if isinstance(amount, bool):
        raise ValueError(f"Amount must be numeric, got {amount!r}")
    # str() of a float is its shortest round-trip representation
    try:
        return Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Amount must be numeric, got {amount!r}") from None


def fraction_digits(amount: AmountLike) -> int:
    """Return the number of fractional digits present in the decimal form of amount."""
    exponent = _to_decimal(amount).as_tuple().exponent
    if not isinstance(exponent, int):
        raise ValueError(f"Amount must be finite, got {amount!r}")
    return max(0, -exponent)


def to_planck(amount: AmountLike) -> int:
    """
    Convert a token amount into an integer number of planck.

    Args:
        amount: Non-negative token amount. Floats are read through their
                shortest decimal representation.

    Returns:
        amount * 10^12 as an exact int. Digits beyond the 12th decimal
        place are truncated.

    Raises:
        ValueError: If the amount is negative, NaN or infinite.
    """
    value = _to_decimal(amount)
    if not value.is_finite():
        raise ValueError(f"Amount must be finite, got {amount!r}")
    if value < 0:
        raise ValueError(f"Amount cannot be negative, got {amount!r}")

    whole = int(value)  # truncates toward zero
    digits = fraction_digits(value)
    if digits == 0:
        return whole * PLANCK_PER_UNIT

    with localcontext() as ctx:
        ctx.prec = AMOUNT_PRECISION
        fraction = int((value - whole).scaleb(digits))
    if digits <= PLANCK_DECIMALS:
        fraction *= 10 ** (PLANCK_DECIMALS - digits)
    else:
        fraction //= 10 ** (digits - PLANCK_DECIMALS)
    return whole * PLANCK_PER_UNIT + fraction


def from_planck(planck: int) -> Decimal:
    """Convert an integer planck amount back to an exact token Decimal."""
    with localcontext() as ctx:
        ctx.prec = AMOUNT_PRECISION
        return Decimal(planck).scaleb(-PLANCK_DECIMALS)


def format_planck(planck: int) -> str:
    """Render a planck amount as a plain token string, e.g. '989.5'."""
    normalized = from_planck(planck).normalize()
    return format(normalized, 'f')


def _self_check() -> None:
    if 111.111 != to_planck(111.111) / PLANCK_PER_UNIT:
        raise ArithmeticError("wrong number conversion")


_self_check()

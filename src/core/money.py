"""
Monetary rounding policy.

All engine arithmetic is rounded here, half away from zero
(``ROUND_HALF_UP`` in the decimal module). Amounts carry 2 decimals;
tariff prices derived from multiplicative factors carry 0.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

Number = Union[Decimal, int, float, str]

MONEY_PLACES = Decimal("0.01")
UNIT_PLACES = Decimal("1")
MONEY_TOLERANCE = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Number) -> Decimal:
    """Convert to Decimal, going through str for floats."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Not a numeric value: {value!r}") from exc


def to_money(value: Number) -> Decimal:
    """Round to 2 decimals, half away from zero."""
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def to_currency_unit(value: Number) -> Decimal:
    """Round to the smallest currency unit (0 decimals)."""
    return to_decimal(value).quantize(UNIT_PLACES, rounding=ROUND_HALF_UP)


def is_money_precision(value: Number) -> bool:
    """True when the value already has at most 2 decimals."""
    dec = to_decimal(value)
    return dec == dec.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def percent_of(amount: Number, percent: Number) -> Decimal:
    """``amount * percent / 100`` rounded to money precision."""
    return to_money(to_decimal(amount) * to_decimal(percent) / HUNDRED)


def ratio_percent(part: Number, whole: Number) -> Decimal:
    """``part / whole * 100`` rounded to 2 decimals; 0 when whole is 0."""
    whole_dec = to_decimal(whole)
    if whole_dec == ZERO:
        return ZERO
    return to_money(to_decimal(part) / whole_dec * HUNDRED)


def clamp(value: Decimal, lower: Decimal, upper: Decimal) -> Decimal:
    return max(lower, min(upper, value))


def non_negative(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO

"""
Decimal helpers for currency math.

All amounts are rupees with two decimal places. Floats never enter
the settlement path: inputs are converted through str() first.
"""
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Convert to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round2(value: Number) -> Decimal:
    """Round half-up to two decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def floor2(value: Number) -> Decimal:
    """Round toward negative infinity at two decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_FLOOR)


def percent_of(amount: Number, percent: Number) -> Decimal:
    """Unrounded `amount * percent / 100`."""
    return to_decimal(amount) * to_decimal(percent) / Decimal(100)


def to_json_amount(value: Number) -> str:
    """Amounts travel in JSON as fixed two-decimal strings."""
    return str(round2(value))

"""
Domain: monetary arithmetic helpers (pure).

Amounts and percentages are Decimals. Money lines are quantized to two
places with half-up rounding, so a breakdown total is reproducible from its
itemized lines.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

Number = Union[Decimal, int, str]

ZERO = Decimal("0")
HUNDRED = Decimal("100")
_CENT = Decimal("0.01")
_PERCENT_PLACES = Decimal("0.0001")


def to_decimal(value: Number) -> Decimal:
    """Convert ints/strings to Decimal. Floats are rejected to keep totals exact."""

    if isinstance(value, float):
        raise TypeError("monetary values must not be floats; pass Decimal or str")
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


def money(value: Number) -> Decimal:
    """Quantize to two decimal places (ROUND_HALF_UP)."""

    return to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def percent(value: Number) -> Decimal:
    return to_decimal(value).quantize(_PERCENT_PLACES, rounding=ROUND_HALF_UP)


def percent_of(amount: Number, rate: Number) -> Decimal:
    """``rate`` percent of ``amount``, quantized as money."""

    return money(to_decimal(amount) * to_decimal(rate) / HUNDRED)


def share_of(part: Number, whole: Number) -> Decimal:
    """Express ``part`` as a percentage of ``whole`` (0 when whole is 0)."""

    whole_d = to_decimal(whole)
    if whole_d == ZERO:
        return ZERO
    return percent(to_decimal(part) * HUNDRED / whole_d)


def total(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)

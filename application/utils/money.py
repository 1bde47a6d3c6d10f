"""Decimal <-> integer minor unit conversion."""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP


def to_minor_units(amount: Decimal, exponent: int) -> int:
    """19.99 with exponent 2 -> 1999; 500 with exponent 0 -> 500."""
    scaled = Decimal(amount) * (Decimal(10) ** exponent)
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int, exponent: int) -> Decimal:
    return (Decimal(amount) / (Decimal(10) ** exponent)).quantize(Decimal(1).scaleb(-exponent))

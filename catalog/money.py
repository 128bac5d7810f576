"""
Money helpers.

Amounts are stored as two-place Decimals and computed as integer minor units
(paise, cents). Rounding is half-up and happens only where a fractional minor
unit is produced.
"""

from decimal import ROUND_HALF_UP, Decimal

TWO_PLACES = Decimal('0.01')
MINOR_PER_MAJOR = 100


def to_minor(amount) -> int:
    """Convert a major-unit amount (Decimal, str or int) to integer minor units."""
    value = Decimal(str(amount)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    return int(value * MINOR_PER_MAJOR)


def to_major(minor: int) -> Decimal:
    return (Decimal(minor) / MINOR_PER_MAJOR).quantize(TWO_PLACES)


def round_minor(value: Decimal) -> int:
    """Round a fractional minor-unit amount half-up to a whole minor unit."""
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))

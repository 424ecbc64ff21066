"""Money type shared by ledger rows and API responses.

Amounts are Decimal in the currency's major unit and always quantized to the
minor unit (0.01). DynamoDB stores them as numbers; JSON renders them as floats.
"""

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Annotated

from pydantic import Field, PlainSerializer

MINOR_UNIT = Decimal("0.01")
MINOR_UNITS_PER_MAJOR = 100

Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]

# Amounts entering the ledger; anything finer than the minor unit is rejected
MinorUnitMoney = Annotated[Money, Field(decimal_places=2)]


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Coerce a value to Decimal without float noise (floats go through str)."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_half_up(value: Decimal) -> Decimal:
    """Round to the minor unit, halves away from zero."""
    return value.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def round_down(value: Decimal) -> Decimal:
    """Round toward negative infinity at the minor unit."""
    return value.quantize(MINOR_UNIT, rounding=ROUND_FLOOR)


def to_minor_units(value: Decimal) -> int:
    """Convert a major-unit amount to integer minor units (kobo, cents)."""
    return int(round_half_up(value) * MINOR_UNITS_PER_MAJOR)


def from_minor_units(value: int) -> Decimal:
    """Convert integer minor units back to a major-unit Decimal."""
    return (Decimal(value) / MINOR_UNITS_PER_MAJOR).quantize(MINOR_UNIT)

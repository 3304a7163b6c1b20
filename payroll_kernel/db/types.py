"""
Decimal rounding helpers shared by every payroll calculation.

Amounts are always ``Decimal``; floats never enter a calculation.  Money
is rounded half-up to whole cents with ``round_money``.  The installment
scheduler floors with ``truncate_money`` and carries the remainder to the
final month instead of rounding it away.
"""

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

ZERO = Decimal("0")
CENT = Decimal("0.01")


def round_money(value: Decimal, decimal_places: int = 2, rounding: str = ROUND_HALF_UP) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=rounding)


def truncate_money(value: Decimal, decimal_places: int = 2) -> Decimal:
    return round_money(value, decimal_places, ROUND_FLOOR)


def is_cent_precise(value: Decimal) -> bool:
    return value == round_money(value)


def to_decimal(value: object) -> Decimal:
    """YAML and JSON numbers to Decimal; floats go through ``str`` so 0.05 stays 0.05."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)

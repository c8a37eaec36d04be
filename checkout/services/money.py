"""
Money Utilities - Safe Decimal operations for monetary values.

Avoids float precision issues by using Decimal throughout. Amounts are in
major units (rupees) unless a name says minor units (paise).
"""
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

Numeric = Union[str, int, float, Decimal]

# Default precision for money operations (2 decimal places)
MONEY_PRECISION = Decimal("0.01")

# Whole currency units
INTEGER_PRECISION = Decimal("1")


def to_decimal(value: Numeric | None) -> Decimal:
    """
    Convert any value to Decimal safely.

    Returns Decimal("0") for None or unparseable input.
    """
    if value is None:
        return Decimal("0")

    if isinstance(value, Decimal):
        return value

    try:
        # Via str so 0.1 stays 0.1
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")


def round_money(value: Numeric, to_int: bool = False) -> Decimal:
    """Round monetary value to 2 decimals (or whole units)."""
    decimal_value = to_decimal(value)
    precision = INTEGER_PRECISION if to_int else MONEY_PRECISION
    return decimal_value.quantize(precision, rounding=ROUND_HALF_UP)


def floor_money(value: Numeric) -> Decimal:
    """Round down to whole currency units."""
    return to_decimal(value).quantize(INTEGER_PRECISION, rounding=ROUND_FLOOR)


def to_minor_units(value: Numeric) -> int:
    """
    Convert decimal amount to minor units (paise).

    This is the amount gateways are asked to charge.

    Example:
        to_minor_units("699.50") -> 69950
    """
    decimal_value = to_decimal(value)
    return int((decimal_value * 100).to_integral_value(rounding=ROUND_HALF_UP))


def to_float(value: Numeric) -> float:
    """
    Convert Decimal to float for JSON serialization or external APIs.

    Use only at API boundaries, not for internal calculations.
    """
    return float(to_decimal(value))


def percent(value: Numeric, percent_value: Numeric) -> Decimal:
    """Calculate percentage of a monetary value."""
    return to_decimal(value) * to_decimal(percent_value) / Decimal(100)

"""
Money helpers.

Balances are NUMERIC(12, 2) in the database and Decimal in services; API
payloads carry plain JSON numbers.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional, Union

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_money(value: Optional[Number]) -> Decimal:
    """
    Convert a number to a Decimal rounded to cents.

    Floats go through ``str`` so 0.1 stays 0.10 instead of its binary expansion.

    Raises:
        ValueError: If the value isn't a finite number
    """
    if value is None:
        return Decimal("0.00")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_to_float(value: Optional[Number]) -> float:
    """Serialize a money value for JSON responses."""
    return float(to_money(value))


def format_inr(value: Number) -> str:
    """Format an amount the way user-facing messages show it, e.g. "₹100.00"."""
    return f"₹{to_money(value):,.2f}"

"""Monetary rounding and numeric coercion.

Every amount in the settlement core goes through ``round2`` when it is
computed and again when it is compared, so two values that print the same
also compare equal.
"""

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_number(value: Any) -> Decimal:
    """
    Coerce any input to a finite Decimal.

    Unparseable input, None, NaN and infinities all become 0. Floats are
    converted through their shortest repr, so ``to_number(0.1)`` is exactly
    ``Decimal("0.1")`` rather than the binary approximation.

    Args:
        value: Anything (Decimal, int, float, str, None, ...)

    Returns:
        A finite Decimal, never raises
    """
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, bool):
        number = Decimal(int(value))
    elif isinstance(value, int):
        number = Decimal(value)
    else:
        try:
            number = Decimal(str(value).strip())
        except (InvalidOperation, ValueError, TypeError):
            return Decimal(0)

    if not number.is_finite():
        return Decimal(0)
    return number


def round2(value: Any) -> Decimal:
    """
    Round to 2 decimal places, half-up.

    Uses ROUND_HALF_UP on an exact decimal value, so ``round2(1.005)`` is
    ``Decimal("1.01")`` even though the float 1.005 is stored as 1.00499...

    Args:
        value: Anything accepted by ``to_number``

    Returns:
        Decimal quantized to cents (``0.00`` instead of ``-0.00``)
    """
    try:
        rounded = to_number(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Magnitude beyond the decimal context precision
        return ZERO
    if not rounded:
        return ZERO
    return rounded


def remaining_amount(total: Any, settled: Any) -> Decimal:
    """Outstanding part of ``total`` after ``settled``, floored at zero."""
    return round2(max(Decimal(0), round2(total) - round2(settled)))


def sum_amounts(values: Iterable[Any]) -> Decimal:
    """Sum amounts, rounding each term and the result."""
    return round2(sum((round2(v) for v in values), Decimal(0)))

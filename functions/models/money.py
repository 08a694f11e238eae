"""Decimal money helpers shared by the pricing models and services."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")
DOLLAR = Decimal("1")
ZERO = Decimal("0")


def to_decimal(value: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Coerce a numeric-ish value to Decimal.

    Floats go through their string form so ``4.5`` becomes ``Decimal("4.5")``
    rather than its binary expansion. ``None`` and ``""`` return ``default``.

    Raises:
        ValueError: If the value is not numeric.
    """
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got boolean {value!r}")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError(f"Expected a number, got {value!r}")
    if not result.is_finite():
        raise ValueError(f"Expected a finite number, got {value!r}")
    return result


def quantize_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def round_dollars(value: Decimal) -> Decimal:
    return value.quantize(DOLLAR, rounding=ROUND_HALF_UP)


def to_float(value: Optional[Decimal]) -> Optional[float]:
    """Convert to float for stores without a decimal type (Firestore)."""
    return None if value is None else float(value)

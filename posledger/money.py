"""
Fixed-precision money helpers.

All amounts and unit costs are Decimal, stored as NUMERIC(15, 2). Results of
division (WAC, cost per unit) are rounded to the cent, half-up.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .services.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# NUMERIC(15, 2) holds 13 integer digits
MAX_MONEY = Decimal(10) ** 13


def to_decimal(value, *, field: str = "amount") -> Decimal:
    """Coerce int/str/Decimal (and floats via their repr) to Decimal."""
    if value is None:
        raise ValidationError(f"{field} is required", details={"field": field})
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", details={"field": field})
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be a number", details={"field": field, "value": str(value)})
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", details={"field": field})
    if abs(result) >= MAX_MONEY:
        raise ValidationError(
            f"{field} is out of range",
            details={"field": field, "value": str(value), "max": str(MAX_MONEY)},
        )
    return result


def quantize_money(value: Decimal) -> Decimal:
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError("amount is out of range", details={"value": str(value)})


def money_str(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(quantize_money(value))

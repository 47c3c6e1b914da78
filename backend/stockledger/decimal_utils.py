from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from .errors import InvalidQuantity

# Scale of every persisted quantity column (NUMERIC(18, 6))
QUANTITY_PLACES = Decimal("0.000001")

# Scale of every persisted cost column (NUMERIC(18, 4))
COST_PLACES = Decimal("0.0001")

ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    """
    Coerce user/DB input to a finite Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its binary expansion.
    Raises InvalidQuantity (a ValueError) for anything else, NaN and Infinity included.
    """
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise InvalidQuantity("boolean is not a number")
    if not isinstance(value, Decimal):
        if isinstance(value, float):
            value = str(value)
        try:
            value = Decimal(value.strip() if isinstance(value, str) else value)
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise InvalidQuantity(f"not a number: {value!r}") from exc
    if not value.is_finite():
        raise InvalidQuantity(f"not a finite number: {value}")
    return value


def _quantize(value, exponent: Decimal) -> Decimal:
    value = to_decimal(value)
    try:
        return value.quantize(exponent, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise InvalidQuantity(f"{value} is out of range") from exc


def to_quantity(value) -> Decimal:
    """Round a quantity half-up to the persisted scale."""
    return _quantize(value, QUANTITY_PLACES)


def to_cost(value) -> Decimal:
    """Round a unit cost half-up to the persisted scale."""
    return _quantize(value, COST_PLACES)


def round_half_up(value, places: int) -> Decimal:
    return _quantize(value, Decimal(1).scaleb(-places))

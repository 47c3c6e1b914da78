# Overview: Unit graph; resolves packaging units to base units and converts quantities.

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import Unit
from ..errors import IncompatibleUnits, InvalidQuantity, InvalidUnitGraph, UnitNotFound
from ..decimal_utils import to_decimal
"""
Unit Graph Invariants (authoritative)

- Depth 1: a conversion unit references a base unit directly. No chains.
- A base unit converts to itself with factor 1.
- "1 <unit> = conversion_factor <base unit>".
- convert(q, A, B) = q * factor(A) / factor(B), defined only when A and B
  resolve to the same base unit; otherwise IncompatibleUnits.
- Conversion is the caller's responsibility: no other service converts
  implicitly. Results are NOT rounded here; callers round at persistence.
"""

ONE = Decimal("1")


def get_unit(unit_id: int, *, store_id: int | None = None) -> Unit:
    if isinstance(unit_id, Unit):
        unit = unit_id
    else:
        unit = db.session.get(Unit, unit_id)
    if unit is None:
        raise UnitNotFound(unit_id)
    if store_id is not None and unit.store_id != store_id:
        raise UnitNotFound(unit.id)
    return unit


def resolve_to_base(unit) -> tuple[Unit, Decimal]:
    """
    Return (base_unit, factor) for a Unit or unit id.

    Base unit -> (itself, 1). Conversion unit -> (its base unit, its factor).
    """
    unit = get_unit(unit)

    if unit.is_base_unit or unit.base_unit_id is None:
        return unit, ONE

    base = get_unit(unit.base_unit_id)
    if not base.is_base_unit or base.base_unit_id is not None:
        raise InvalidUnitGraph(
            f"unit {unit.id} references unit {base.id}, which is not a base unit"
        )
    return base, to_decimal(unit.conversion_factor)


def convert(quantity, from_unit, to_unit) -> Decimal:
    """Convert quantity between two units sharing a base unit."""
    quantity = to_decimal(quantity)
    from_unit = get_unit(from_unit)
    to_unit = get_unit(to_unit)
    if from_unit.id == to_unit.id:
        return quantity

    from_base, from_factor = resolve_to_base(from_unit)
    to_base, to_factor = resolve_to_base(to_unit)
    if from_base.id != to_base.id:
        raise IncompatibleUnits(from_unit.id, to_unit.id)

    return quantity * from_factor / to_factor


def to_base_terms(unit, quantity, unit_price) -> tuple[Decimal, Decimal]:
    """
    Express an entered (quantity, unit_price) in base-unit terms.

    base_quantity = quantity * factor, base_unit_price = unit_price / factor.
    """
    _, factor = resolve_to_base(unit)
    return to_decimal(quantity) * factor, to_decimal(unit_price) / factor


def _parse_factor(value) -> Decimal:
    try:
        return to_decimal(value)
    except InvalidQuantity as exc:
        raise InvalidUnitGraph("conversion factor must be a number") from exc


def create_unit(
    *,
    store_id: int,
    name: str,
    base_unit_id: int | None = None,
    conversion_factor=None,
    commit: bool = True,
) -> Unit:
    """
    Create a base unit (no base_unit_id) or a conversion unit over a base unit.

    Raises:
        InvalidUnitGraph: chained reference, cross-store reference, or factor <= 0
        UnitNotFound: base_unit_id does not exist
    """
    name = (name or "").strip()
    if not name:
        raise InvalidUnitGraph("unit name is required")

    if base_unit_id is None:
        if conversion_factor is not None and _parse_factor(conversion_factor) != ONE:
            raise InvalidUnitGraph("a base unit must have conversion factor 1")
        unit = Unit(
            store_id=store_id,
            name=name,
            is_base_unit=True,
            base_unit_id=None,
            conversion_factor=ONE,
        )
    else:
        base = get_unit(base_unit_id)
        if base.store_id != store_id:
            raise InvalidUnitGraph("base unit belongs to a different store")
        if not base.is_base_unit:
            raise InvalidUnitGraph(
                f"unit {base.id} is itself a conversion unit; chained conversions are not allowed"
            )
        factor = _parse_factor(conversion_factor if conversion_factor is not None else 0)
        if factor <= 0:
            raise InvalidUnitGraph("conversion factor must be positive")
        unit = Unit(
            store_id=store_id,
            name=name,
            is_base_unit=False,
            base_unit_id=base.id,
            conversion_factor=factor,
        )

    db.session.add(unit)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return unit


def update_conversion_factor(unit_id: int, conversion_factor, *, commit: bool = True) -> Unit:
    """Correct the factor of a conversion unit. Base units stay at 1."""
    unit = get_unit(unit_id)
    if unit.is_base_unit:
        raise InvalidUnitGraph("the conversion factor of a base unit is always 1")
    factor = _parse_factor(conversion_factor)
    if factor <= 0:
        raise InvalidUnitGraph("conversion factor must be positive")
    unit.conversion_factor = factor
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return unit


def list_convertible_units(unit_id: int) -> list[Unit]:
    """The base unit of unit_id plus every unit referencing it, by factor."""
    base, _ = resolve_to_base(unit_id)
    units = (
        Unit.query.filter(
            Unit.store_id == base.store_id,
            db.or_(Unit.id == base.id, Unit.base_unit_id == base.id),
        )
        .order_by(Unit.conversion_factor.asc(), Unit.id.asc())
        .all()
    )
    return units


def list_units(store_id: int) -> list[Unit]:
    return Unit.query.filter_by(store_id=store_id).order_by(Unit.id.asc()).all()

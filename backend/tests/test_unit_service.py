from decimal import Decimal

import pytest

from stockledger.errors import IncompatibleUnits, InvalidUnitGraph, UnitNotFound
from stockledger.services import unit_service


def test_base_unit_resolves_to_itself(bottle):
    base, factor = unit_service.resolve_to_base(bottle.id)
    assert base.id == bottle.id
    assert factor == 1


def test_conversion_unit_resolves_to_its_base(bottle, case):
    base, factor = unit_service.resolve_to_base(case.id)
    assert base.id == bottle.id
    assert factor == 24


def test_convert_case_to_bottle_and_back(bottle, case):
    assert unit_service.convert(10, case, bottle) == 240
    assert unit_service.convert(48, bottle, case) == 2


def test_convert_between_two_conversion_units(case, six_pack):
    # 1 Case = 24 bottles = 4 six packs
    assert unit_service.convert(1, case, six_pack) == 4
    assert unit_service.convert(2, six_pack, case) == Decimal(12) / Decimal(24)


@pytest.mark.parametrize("quantity", ["5", "0.5", "7.25", "1000", "0.000001"])
def test_conversion_round_trip_within_tolerance(bottle, case, quantity):
    q = Decimal(quantity)
    there = unit_service.convert(q, bottle, case)
    back = unit_service.convert(there, case, bottle)
    assert abs(back - q) < Decimal("1e-20")


def test_convert_same_unit_is_identity(case):
    assert unit_service.convert(Decimal("3.5"), case, case) == Decimal("3.5")


def test_convert_across_base_units_fails(case, kg):
    with pytest.raises(IncompatibleUnits):
        unit_service.convert(1, case, kg)


def test_unknown_unit(db_session):
    with pytest.raises(UnitNotFound):
        unit_service.resolve_to_base(9999)


def test_get_unit_rejects_other_store(bottle, other_store):
    with pytest.raises(UnitNotFound):
        unit_service.get_unit(bottle.id, store_id=other_store.id)


def test_to_base_terms(case):
    base_quantity, base_price = unit_service.to_base_terms(case, 10, 480000)
    assert base_quantity == 240
    assert base_price == 20000


def test_chained_conversion_unit_is_rejected(store, case):
    with pytest.raises(InvalidUnitGraph):
        unit_service.create_unit(
            store_id=store.id, name="Pallet", base_unit_id=case.id, conversion_factor=40
        )


@pytest.mark.parametrize("factor", [0, -3, None])
def test_conversion_unit_needs_positive_factor(store, bottle, factor):
    with pytest.raises(InvalidUnitGraph):
        unit_service.create_unit(
            store_id=store.id, name="Crate", base_unit_id=bottle.id, conversion_factor=factor
        )


def test_base_unit_factor_must_be_one(store):
    with pytest.raises(InvalidUnitGraph):
        unit_service.create_unit(store_id=store.id, name="Litre", conversion_factor=2)


def test_base_unit_from_other_store_is_rejected(other_store, bottle):
    with pytest.raises(InvalidUnitGraph):
        unit_service.create_unit(
            store_id=other_store.id, name="Case", base_unit_id=bottle.id, conversion_factor=24
        )


def test_update_conversion_factor(bottle, case):
    unit_service.update_conversion_factor(case.id, 12)
    assert unit_service.convert(1, case.id, bottle.id) == 12


def test_base_unit_factor_cannot_be_changed(bottle):
    with pytest.raises(InvalidUnitGraph):
        unit_service.update_conversion_factor(bottle.id, 2)


def test_list_convertible_units_orders_by_factor(bottle, case, six_pack, kg):
    units = unit_service.list_convertible_units(case.id)
    assert [u.name for u in units] == ["Bottle", "Six Pack", "Case"]


@pytest.mark.parametrize("factor", ["abc", "NaN", "Infinity"])
def test_non_numeric_factor_is_rejected(store, bottle, case, factor):
    with pytest.raises(InvalidUnitGraph, match="conversion factor must be a number"):
        unit_service.create_unit(
            store_id=store.id, name="Crate", base_unit_id=bottle.id, conversion_factor=factor
        )
    with pytest.raises(InvalidUnitGraph, match="conversion factor must be a number"):
        unit_service.update_conversion_factor(case.id, factor)
    assert unit_service.convert(1, case.id, bottle.id) == 24

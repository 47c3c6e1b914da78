from decimal import Decimal

import pytest

from stockledger.errors import InvalidQuantity
from stockledger.services import costing_service, stock_service


def test_purchase_line_in_case_expressed_in_bottles(case):
    line = costing_service.convert_purchase_line(case.id, 10, 480000)
    assert line["quantity"] == 10
    assert line["unit_price"] == 480000
    assert line["base_quantity"] == 240
    assert line["base_unit_price"] == 20000
    assert line["total_amount"] == Decimal("4800000.00")


def test_purchase_line_in_base_unit_is_unchanged(bottle):
    line = costing_service.convert_purchase_line(bottle.id, "3", "1.25")
    assert line["base_quantity"] == 3
    assert line["base_unit_price"] == Decimal("1.25")
    assert line["total_amount"] == Decimal("3.75")


def test_purchase_line_rejects_bad_input(case):
    with pytest.raises(InvalidQuantity):
        costing_service.convert_purchase_line(case.id, 0, 100)
    with pytest.raises(InvalidQuantity):
        costing_service.convert_purchase_line(case.id, 1, -1)
    with pytest.raises(InvalidQuantity):
        costing_service.convert_purchase_line(case.id, "NaN", 100)
    with pytest.raises(InvalidQuantity):
        costing_service.convert_purchase_line(case.id, 1, "Infinity")


@pytest.mark.parametrize(
    "value, places, expected",
    [
        ("2.345", 2, "2.35"),
        ("2.344", 2, "2.34"),
        ("-2.345", 2, "-2.35"),
        ("20000.5", 0, "20001"),
        ("19999.49", 0, "19999"),
    ],
)
def test_round_currency_half_up(app, monkeypatch, value, places, expected):
    monkeypatch.setitem(app.config, "CURRENCY_DECIMALS", places)
    assert costing_service.round_currency(Decimal(value)) == Decimal(expected)


def test_average_cost_after_first_purchase(product, case):
    stock_service.receive_purchase(
        store_id=product.store_id, product_id=product.id, unit_id=case.id,
        quantity=10, unit_cost=480000, purchase_order_id="PO1",
    )
    summaries = costing_service.average_cost(product.id, product.store_id)
    assert list(summaries) == [case.id]
    assert summaries[case.id].average_cost == 480000
    assert summaries[case.id].remaining_quantity == 10


def test_inventory_value_tracks_live_lots(product, bottle):
    stock_service.receive_purchase(
        store_id=product.store_id, product_id=product.id, unit_id=bottle.id,
        quantity=3, unit_cost="1.10", purchase_order_id="PO1",
    )
    stock_service.receive_purchase(
        store_id=product.store_id, product_id=product.id, unit_id=bottle.id,
        quantity=2, unit_cost="1.35", purchase_order_id="PO2",
    )
    assert costing_service.inventory_value(product.id, product.store_id) == Decimal("6.00")

    stock_service.deduct_for_sale(
        store_id=product.store_id, product_id=product.id, unit_id=bottle.id, quantity=3,
    )
    assert costing_service.inventory_value(product.id, product.store_id) == Decimal("2.70")


def test_estimate_margin(product, case):
    stock_service.receive_purchase(
        store_id=product.store_id, product_id=product.id, unit_id=case.id,
        quantity=10, unit_cost=480000, purchase_order_id="PO1",
    )
    margin = costing_service.estimate_margin(product.id, product.store_id, case.id, 600000)
    assert margin["average_cost"] == 480000
    assert margin["margin"] == 120000
    assert margin["margin_percent"] == Decimal("20.00")


def test_estimate_margin_without_live_lots(product, bottle):
    margin = costing_service.estimate_margin(product.id, product.store_id, bottle.id, 25000)
    assert margin["average_cost"] is None
    assert margin["margin"] is None

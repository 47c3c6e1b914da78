from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from stockledger.errors import (
    InsufficientLotStock,
    LotAlreadyConsumed,
    NoLotsAvailable,
    PurchaseOrderNotFound,
)
from stockledger.models import StockLot
from stockledger.services import lot_service

T0 = datetime(2026, 1, 5, 9, 0, 0)


def _lot(product, unit, quantity, unit_cost, po=None, received_at=T0):
    return lot_service.create_lot(
        product_id=product.id,
        store_id=product.store_id,
        unit_id=unit.id,
        quantity=quantity,
        unit_cost=unit_cost,
        purchase_order_id=po,
        received_at=received_at,
    )


def test_create_lot_starts_untouched_with_base_terms(product, case):
    lot = _lot(product, case, 10, 480000, po="PO1")
    assert lot.remaining_quantity == lot.quantity == 10
    assert lot.base_quantity == 240
    assert lot.base_unit_cost == 20000
    assert lot.purchase_order_id == "PO1"


def test_consume_is_oldest_first_across_lots(product, bottle):
    older = _lot(product, bottle, 5, 100, received_at=T0)
    newer = _lot(product, bottle, 5, 120, received_at=T0 + timedelta(days=1))

    draws = lot_service.consume(product.id, product.store_id, bottle.id, 7)

    assert [(d.lot_id, d.quantity) for d in draws] == [(older.id, 5), (newer.id, 2)]
    assert older.remaining_quantity == 0
    assert newer.remaining_quantity == 3
    assert sum(d.cost_amount for d in draws) == 5 * 100 + 2 * 120


def test_consume_insufficient_touches_nothing(product, bottle):
    a = _lot(product, bottle, 3, 100)
    b = _lot(product, bottle, 2, 100, received_at=T0 + timedelta(hours=1))

    with pytest.raises(InsufficientLotStock) as excinfo:
        lot_service.consume(product.id, product.store_id, bottle.id, 6)

    assert excinfo.value.available == 5
    assert a.remaining_quantity == 3
    assert b.remaining_quantity == 2


def test_consume_never_crosses_units(product, bottle, case):
    _lot(product, case, 10, 480000)
    with pytest.raises(NoLotsAvailable):
        lot_service.consume(product.id, product.store_id, bottle.id, 5)


def test_exhausted_lots_are_not_live(product, bottle):
    _lot(product, bottle, 2, 100)
    lot_service.consume(product.id, product.store_id, bottle.id, 2)
    with pytest.raises(NoLotsAvailable):
        lot_service.consume(product.id, product.store_id, bottle.id, 1)


def test_draw_from_locked_lots_stops_when_lots_run_out(product, bottle, case):
    older = _lot(product, bottle, 2, 100, received_at=T0)
    newer = _lot(product, bottle, 3, 120, received_at=T0 + timedelta(hours=1))
    _lot(product, case, 1, 480000)

    lots = lot_service.lock_live_lots(product.id, product.store_id, bottle.id)
    assert [lot.id for lot in lots] == [older.id, newer.id]

    draws = lot_service.draw_from_lots(lots, Decimal("9"))

    assert [(d.lot_id, d.quantity) for d in draws] == [(older.id, 2), (newer.id, 3)]
    assert lot_service.lock_live_lots(product.id, product.store_id, bottle.id) == []


def test_purchase_order_stock_keys(product, bottle, case):
    _lot(product, case, 2, 480000, po="PO9")
    _lot(product, bottle, 6, 20000, po="PO9")
    _lot(product, case, 1, 480000, po="PO9")

    assert lot_service.purchase_order_stock_keys("PO9") == sorted([
        (product.id, product.store_id, case.id),
        (product.id, product.store_id, bottle.id),
    ])
    assert lot_service.purchase_order_stock_keys("missing") == []


def test_reverse_untouched_order_deletes_lots_and_groups_by_unit(product, bottle, case):
    _lot(product, case, 10, 480000, po="PO1")
    _lot(product, case, 2, 470000, po="PO1")
    _lot(product, bottle, 6, 21000, po="PO1")
    _lot(product, bottle, 4, 21000, po="PO2")

    reversed_lines = lot_service.reverse_by_purchase_order("PO1")

    by_unit = {line.unit_id: line.quantity for line in reversed_lines}
    assert by_unit == {case.id: 12, bottle.id: 6}
    assert StockLot.query.filter_by(purchase_order_id="PO1").count() == 0
    assert StockLot.query.filter_by(purchase_order_id="PO2").count() == 1


def test_reverse_with_consumed_lot_is_rejected(product, bottle, case):
    _lot(product, case, 10, 480000, po="PO1")
    _lot(product, bottle, 6, 21000, po="PO1")
    lot_service.consume(product.id, product.store_id, bottle.id, 1)

    with pytest.raises(LotAlreadyConsumed):
        lot_service.reverse_by_purchase_order("PO1")
    assert StockLot.query.filter_by(purchase_order_id="PO1").count() == 2


def test_reverse_unknown_order(db_session):
    with pytest.raises(PurchaseOrderNotFound):
        lot_service.reverse_by_purchase_order("NOPE")


def test_average_cost_is_weighted_by_remaining(product, bottle, case):
    _lot(product, bottle, 10, 100, received_at=T0)
    _lot(product, bottle, 30, 200, received_at=T0 + timedelta(days=1))
    _lot(product, case, 10, 480000)
    # Draw down the cheap lot: 4 left @100, 30 left @200
    lot_service.consume(product.id, product.store_id, bottle.id, 6)

    summaries = lot_service.average_cost(product.id, product.store_id)

    bottle_summary = summaries[bottle.id]
    assert bottle_summary.remaining_quantity == 34
    assert bottle_summary.average_cost == (Decimal(4 * 100 + 30 * 200) / 34).quantize(Decimal("0.0001"))
    assert summaries[case.id].average_cost == 480000
    assert summaries[case.id].remaining_quantity == 10


def test_average_cost_empty_without_live_stock(product, bottle):
    assert lot_service.average_cost(product.id, product.store_id) == {}
    _lot(product, bottle, 1, 100)
    lot_service.consume(product.id, product.store_id, bottle.id, 1)
    assert lot_service.average_cost(product.id, product.store_id) == {}

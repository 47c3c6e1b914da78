from decimal import Decimal

import pytest

from stockledger.errors import ProductNotFound
from stockledger.models import StockRecord
from stockledger.services import availability_service, stock_service


def test_fallback_reads_summary_counter_in_default_unit(legacy_product, bottle):
    available = availability_service.get_available(legacy_product.id, legacy_product.store_id, bottle.id)
    assert available == 240


def test_fallback_converts_into_requested_unit(legacy_product, case):
    available = availability_service.get_available(legacy_product.id, legacy_product.store_id, case.id)
    assert available == 10


def test_fallback_with_incompatible_unit_is_zero(legacy_product, kg):
    available = availability_service.get_available(legacy_product.id, legacy_product.store_id, kg.id)
    assert available == 0


def test_read_never_creates_a_record(legacy_product, case):
    availability_service.get_available(legacy_product.id, legacy_product.store_id, case.id)
    assert StockRecord.query.count() == 0


def test_existing_record_wins_even_when_lower(db_session, legacy_product, case):
    db_session.add(StockRecord(
        product_id=legacy_product.id,
        store_id=legacy_product.store_id,
        unit_id=case.id,
        quantity=Decimal("3"),
        updated_at=legacy_product.created_at,
    ))
    db_session.commit()

    assert availability_service.get_available(legacy_product.id, legacy_product.store_id, case.id) == 3


def test_zero_record_is_not_a_missing_record(db_session, legacy_product, bottle):
    db_session.add(StockRecord(
        product_id=legacy_product.id,
        store_id=legacy_product.store_id,
        unit_id=bottle.id,
        quantity=Decimal("0"),
        updated_at=legacy_product.created_at,
    ))
    db_session.commit()

    assert availability_service.get_available(legacy_product.id, legacy_product.store_id, bottle.id) == 0


def test_record_ignores_later_independent_counter_changes(db_session, legacy_product, case):
    stock_service.receive_purchase(
        store_id=legacy_product.store_id,
        product_id=legacy_product.id,
        unit_id=case.id,
        quantity=1,
        unit_cost=480000,
        purchase_order_id="PO-F",
    )
    # Seeded with 10 cases from the counter, plus 1 received
    assert availability_service.get_available(legacy_product.id, legacy_product.store_id, case.id) == 11

    legacy_product.stock_quantity = Decimal("9999")
    db_session.commit()

    assert availability_service.get_available(legacy_product.id, legacy_product.store_id, case.id) == 11


def test_unknown_product_without_record(store, bottle):
    with pytest.raises(ProductNotFound):
        availability_service.get_available(4242, store.id, bottle.id)


def test_product_from_other_store_is_not_found(legacy_product, other_store, bottle):
    with pytest.raises(ProductNotFound):
        availability_service.get_available(legacy_product.id, other_store.id, bottle.id)


def test_inventory_display_totals_in_base_unit(product, bottle, case):
    stock_service.receive_purchase(
        store_id=product.store_id, product_id=product.id, unit_id=case.id,
        quantity=2, unit_cost=480000, purchase_order_id="PO1",
    )
    stock_service.receive_purchase(
        store_id=product.store_id, product_id=product.id, unit_id=bottle.id,
        quantity=5, unit_cost=21000, purchase_order_id="PO1",
    )

    display = availability_service.get_inventory_display(store_id=product.store_id, product_id=product.id)

    assert display["base_unit_name"] == "Bottle"
    assert [line["unit_name"] for line in display["units"]] == ["Case", "Bottle"]
    assert Decimal(display["units"][0]["quantity_in_base_unit"]) == 48
    assert Decimal(display["total_in_base_unit"]) == 53
    assert Decimal(display["summary_counter"]) == 53


def test_low_stock_lists_records_at_or_below_threshold(product, legacy_product, bottle, case):
    stock_service.receive_purchase(
        store_id=product.store_id, product_id=product.id, unit_id=case.id,
        quantity=3, unit_cost=480000, purchase_order_id="PO1",
    )
    stock_service.receive_purchase(
        store_id=product.store_id, product_id=product.id, unit_id=bottle.id,
        quantity=50, unit_cost=21000, purchase_order_id="PO1",
    )

    rows = availability_service.list_low_stock(product.store_id, threshold=5)

    assert [(r["sku"], r["unit_name"], Decimal(r["quantity"])) for r in rows] == [
        ("BEER-001", "Case", 3),
    ]


def test_low_stock_uses_configured_threshold(app, monkeypatch, product, case):
    stock_service.receive_purchase(
        store_id=product.store_id, product_id=product.id, unit_id=case.id,
        quantity=8, unit_cost=480000, purchase_order_id="PO1",
    )
    monkeypatch.setitem(app.config, "LOW_STOCK_THRESHOLD", 5)
    assert availability_service.list_low_stock(product.store_id) == []
    monkeypatch.setitem(app.config, "LOW_STOCK_THRESHOLD", 10)
    assert len(availability_service.list_low_stock(product.store_id)) == 1

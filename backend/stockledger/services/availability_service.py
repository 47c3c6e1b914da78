# Overview: Read-only availability queries over per-unit stock records.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Product, StockRecord, Unit
from ..errors import IncompatibleUnits, ProductNotFound
from ..decimal_utils import ZERO, to_decimal, to_quantity
from ..time_utils import to_utc_z
from .concurrency import lock_for_update
from .unit_service import convert, resolve_to_base
"""
Availability Semantics (authoritative)

- The StockRecord for (product, store, unit) is authoritative once it exists,
  even when it is lower than the product's summary counter, and even when it
  is zero.
- Only when no StockRecord exists for the triple do we fall back to
  Product.stock_quantity, denominated in the base unit of Product.default_unit
  (see summary_unit) and converted
  into the requested unit. Incompatible units fall back to zero.
- Nothing in this module writes.
"""


def get_product(store_id: int, product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None or product.store_id != store_id:
        raise ProductNotFound(product_id, store_id)
    return product


def find_stock_record(product_id: int, store_id: int, unit_id: int, *, lock: bool = False) -> StockRecord | None:
    query = db.session.query(StockRecord).filter_by(
        product_id=product_id,
        store_id=store_id,
        unit_id=unit_id,
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def summary_unit(product: Product) -> Unit:
    """Unit the summary counter is kept in: the base unit of the default unit."""
    base, _ = resolve_to_base(product.default_unit_id)
    return base


def summary_in_unit(product: Product, unit_id: int) -> Decimal:
    """The summary counter expressed in unit_id (zero when not convertible)."""
    counter = product.stock_quantity if product.stock_quantity is not None else ZERO
    try:
        return convert(counter, summary_unit(product), unit_id)
    except IncompatibleUnits:
        return ZERO


def get_available(product_id: int, store_id: int, unit_id: int) -> Decimal:
    """How much of product in unit_id is available at store."""
    record = find_stock_record(product_id, store_id, unit_id)
    if record is not None:
        return record.quantity

    product = get_product(store_id, product_id)
    return to_quantity(summary_in_unit(product, unit_id))


def get_inventory_display(*, store_id: int, product_id: int) -> dict:
    """
    Every per-unit record of a product with base-unit equivalents.

    total_in_base_unit is the sum of the per-unit records only; the summary
    counter is reported separately as legacy data.
    """
    product = get_product(store_id, product_id)
    base_unit = summary_unit(product)

    records = (
        db.session.query(StockRecord, Unit)
        .join(Unit, Unit.id == StockRecord.unit_id)
        .filter(StockRecord.product_id == product_id, StockRecord.store_id == store_id)
        .order_by(Unit.conversion_factor.desc(), Unit.id.asc())
        .all()
    )

    lines = []
    total_in_base = ZERO
    for record, unit in records:
        try:
            in_base = convert(record.quantity, unit, base_unit)
        except IncompatibleUnits:
            current_app.logger.warning(
                "Stock record %s uses unit %s outside the product's unit family",
                record.id, unit.id,
            )
            in_base = None
        else:
            total_in_base += in_base
        lines.append({
            "unit_id": unit.id,
            "unit_name": unit.name,
            "quantity": str(record.quantity),
            "quantity_in_base_unit": str(to_quantity(in_base)) if in_base is not None else None,
            "updated_at": to_utc_z(record.updated_at),
        })

    return {
        "store_id": store_id,
        "product_id": product_id,
        "base_unit_id": base_unit.id,
        "base_unit_name": base_unit.name,
        "units": lines,
        "total_in_base_unit": str(to_quantity(total_in_base)),
        "summary_counter": str(product.stock_quantity),
        "summary_counter_unit_id": base_unit.id,
    }


def list_low_stock(store_id: int, threshold=None) -> list[dict]:
    """Per-unit records at or below threshold, lowest first."""
    if threshold is None:
        threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 10)
    threshold = to_decimal(threshold)

    rows = (
        db.session.query(StockRecord, Product, Unit)
        .join(Product, Product.id == StockRecord.product_id)
        .join(Unit, Unit.id == StockRecord.unit_id)
        .filter(
            StockRecord.store_id == store_id,
            StockRecord.quantity <= threshold,
            Product.is_active.is_(True),
        )
        .order_by(StockRecord.quantity.asc(), StockRecord.id.asc())
        .all()
    )
    return [
        {
            "product_id": product.id,
            "sku": product.sku,
            "product_name": product.name,
            "unit_id": unit.id,
            "unit_name": unit.name,
            "quantity": str(record.quantity),
        }
        for record, product, unit in rows
    ]

# Overview: Stock mutation service; the only writer of stock records and the summary counter.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Product, StockLot, StockRecord, Unit
from ..errors import (
    IncompatibleUnits,
    InvalidQuantity,
    LotAlreadyConsumed,
    StockLedgerError,
    InsufficientStock,
)
from ..decimal_utils import ZERO, to_quantity
from ..time_utils import utcnow
from . import lot_service
from .availability_service import find_stock_record, get_product, summary_in_unit, summary_unit
from .concurrency import run_with_retry
from .movement_service import (
    append_stock_movement,
    MOVEMENT_ADJUSTED,
    MOVEMENT_PURCHASE_RECEIVED,
    MOVEMENT_PURCHASE_REVERSED,
    MOVEMENT_RECORD_SEEDED,
    MOVEMENT_SALE_DEDUCTED,
    MOVEMENT_SALE_RESTORED,
)
from .unit_service import get_unit, resolve_to_base
"""
Stock Mutation Invariants (authoritative)

Single write path:
- Only this module changes StockRecord.quantity or Product.stock_quantity.
- Each public operation is one DB transaction: every step commits together or
  nothing does (run_with_retry rolls back and re-runs the whole operation on
  lock/version conflicts; business errors roll back and propagate).

Lock order (every operation): product rows by id, then their StockRecord rows,
then lots. reverse_purchase reads the order's (product, unit) keys first so it
can take the product and record locks before it locks and deletes the lots.

Two representations of one fact:
- The per-unit StockRecord is canonical once it exists.
- Product.stock_quantity (summary counter) is a cache kept in the base unit of
  the product's default unit. Every mutation moves it by quantity * factor in
  the same transaction; no division, so it cannot drift from the records.

Seeding (explicit one-time migration of the legacy counter):
- The first mutation touching a (product, store, unit) without a StockRecord
  creates it. When the product has no StockRecord in any unit yet, the record
  starts at the summary counter converted into that unit; otherwise it starts at
  zero, because the counter already describes tracked stock and seeding a
  second unit from it would count the same goods twice.
- When the counter does not convert exactly into the touched unit (100 bottles
  into cases of 24), the counter is seeded whole onto a base-unit record
  instead and the touched unit starts at zero.

Conservation:
- For records that were never seeded from the counter:
  StockRecord.quantity == SUM(live lot remaining_quantity) after every operation.
- Increases (receipts, positive adjustments, restored sales) always create a lot.

Decreases (sales, negative adjustments):
- Checked against the record and applied in one transaction, under the
  product/record row locks and version counters, so concurrent sales of the
  same stock cannot both pass the check.
- Lots in the unit are locked once and drawn oldest-first; whatever they do
  not cover is seeded legacy stock, decremented on the record only.
- Callers convert into the unit they sell in; no implicit conversion happens here.
"""


@dataclass(frozen=True)
class SaleDeduction:
    product_id: int
    store_id: int
    unit_id: int
    quantity: Decimal
    draws: tuple[lot_service.LotDraw, ...]
    untracked_quantity: Decimal
    cost_of_goods: Decimal | None
    remaining: Decimal


@dataclass(frozen=True)
class StockAdjustment:
    product_id: int
    store_id: int
    unit_id: int
    previous_quantity: Decimal
    counted_quantity: Decimal
    delta: Decimal
    lot_id: int | None
    draws: tuple[lot_service.LotDraw, ...]


def _require_positive(quantity, field: str = "quantity") -> Decimal:
    try:
        quantity = to_quantity(quantity)
    except ValueError as exc:
        raise InvalidQuantity(f"{field} must be a number") from exc
    if quantity <= 0:
        raise InvalidQuantity(f"{field} must be positive")
    return quantity


def _summary_factor(product: Product, unit: Unit) -> Decimal:
    """Summary-counter units per one unit (IncompatibleUnits outside the product's family)."""
    base, factor = resolve_to_base(unit)
    if base.id != summary_unit(product).id:
        raise IncompatibleUnits(unit.id, product.default_unit_id)
    return factor


def _to_summary(factor: Decimal, quantity: Decimal) -> Decimal:
    return to_quantity(quantity * factor)


def _create_record(product: Product, unit_id: int, seed: Decimal) -> StockRecord:
    record = StockRecord(
        product_id=product.id,
        store_id=product.store_id,
        unit_id=unit_id,
        quantity=seed,
        updated_at=utcnow(),
    )
    db.session.add(record)
    db.session.flush()

    append_stock_movement(
        product_id=product.id,
        store_id=product.store_id,
        unit_id=unit_id,
        movement_type=MOVEMENT_RECORD_SEEDED,
        quantity_delta=seed,
        record_before=ZERO,
        record_after=seed,
        summary_before=product.stock_quantity,
        summary_after=product.stock_quantity,
        note="seeded from summary counter" if seed else "first touch",
    )
    return record


def _ensure_stock_record(product: Product, unit: Unit) -> StockRecord:
    """Locked StockRecord for (product, unit), seeding it on first touch."""
    record = find_stock_record(product.id, product.store_id, unit.id, lock=True)
    if record is not None:
        return record

    has_records = (
        db.session.query(StockRecord.id)
        .filter_by(product_id=product.id, store_id=product.store_id)
        .first()
        is not None
    )
    counter = product.stock_quantity if product.stock_quantity is not None else ZERO
    seed = ZERO
    if not has_records and counter > 0:
        seed = to_quantity(summary_in_unit(product, unit.id))
        if _to_summary(_summary_factor(product, unit), seed) != counter:
            base = summary_unit(product)
            current_app.logger.info(
                "Summary counter %s of product %s does not divide into unit %s; seeding unit %s",
                counter, product.id, unit.id, base.id,
            )
            _create_record(product, base.id, counter)
            seed = ZERO

    return _create_record(product, unit.id, seed)


def _apply(product: Product, record: StockRecord, quantity_delta: Decimal, summary_delta: Decimal) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    """Move record and summary counter together; returns before/after of both."""
    record_before = record.quantity
    summary_before = product.stock_quantity
    record.quantity = record_before + quantity_delta
    record.updated_at = utcnow()
    product.stock_quantity = summary_before + summary_delta
    return record_before, record.quantity, summary_before, product.stock_quantity


def _draw_down(product: Product, unit: Unit, quantity: Decimal) -> tuple[list[lot_service.LotDraw], Decimal]:
    """
    Draw quantity from the unit's live lots, locked once; returns (draws, untracked).

    The record has already been checked, so any shortfall of the lots is seeded
    legacy stock and is only taken off the record.
    """
    lots = lot_service.lock_live_lots(product.id, product.store_id, unit.id)
    lot_total = sum((lot.remaining_quantity for lot in lots), ZERO)
    from_lots = min(quantity, lot_total)
    draws = lot_service.draw_from_lots(lots, from_lots) if from_lots > 0 else []
    return draws, quantity - from_lots


def _lot_cost(draws) -> Decimal | None:
    if not draws:
        return None
    return sum((d.cost_amount for d in draws), ZERO)


def _current_unit_cost(product: Product, unit: Unit) -> Decimal:
    """Live average cost of the unit, zero when nothing is live."""
    summary = lot_service.average_cost(product.id, product.store_id).get(unit.id)
    return summary.average_cost if summary is not None else ZERO


def receive_purchase(
    *,
    store_id: int,
    product_id: int,
    unit_id: int,
    quantity,
    unit_cost,
    purchase_order_id: str | None = None,
    received_at: datetime | None = None,
    note: str | None = None,
    commit: bool = True,
) -> StockLot:
    """
    Record one received purchase-order line.

    1. Create a lot (remaining = quantity).
    2. Upsert the StockRecord for (product, store, unit), seeding it on first
       touch, then add quantity.
    3. Move the summary counter by the base-unit equivalent of quantity.

    Never fails on capacity; only unit resolution (IncompatibleUnits,
    UnitNotFound) or bad input can reject it.
    """
    quantity = _require_positive(quantity)

    def _op():
        product = get_product(store_id, product_id, lock=True)
        unit = get_unit(unit_id, store_id=store_id)
        factor = _summary_factor(product, unit)

        lot = lot_service.create_lot(
            product_id=product.id,
            store_id=store_id,
            unit_id=unit.id,
            quantity=quantity,
            unit_cost=unit_cost,
            purchase_order_id=purchase_order_id,
            received_at=received_at,
        )

        record = _ensure_stock_record(product, unit)
        record_before, record_after, summary_before, summary_after = _apply(
            product, record, quantity, _to_summary(factor, quantity)
        )

        append_stock_movement(
            product_id=product.id,
            store_id=store_id,
            unit_id=unit.id,
            movement_type=MOVEMENT_PURCHASE_RECEIVED,
            quantity_delta=quantity,
            record_before=record_before,
            record_after=record_after,
            summary_before=summary_before,
            summary_after=summary_after,
            cost_amount=lot.quantity * lot.unit_cost,
            purchase_order_id=purchase_order_id,
            lot_id=lot.id,
            note=note,
        )

        if commit:
            db.session.commit()
        else:
            db.session.flush()
        current_app.logger.info(
            "Received %s x unit %s of product %s in store %s (purchase order %s, lot %s)",
            quantity, unit.id, product.id, store_id, purchase_order_id, lot.id,
        )
        return lot

    return run_with_retry(_op)


def deduct_for_sale(
    *,
    store_id: int,
    product_id: int,
    unit_id: int,
    quantity,
    note: str | None = None,
    commit: bool = True,
) -> SaleDeduction:
    """
    Deduct one sold line, in the unit selected at the register.

    Raises:
        InsufficientStock: quantity exceeds availability (nothing changes)
        IncompatibleUnits: unit outside the product's unit family
    """
    quantity = _require_positive(quantity)

    def _op():
        product = get_product(store_id, product_id, lock=True)
        unit = get_unit(unit_id, store_id=store_id)
        factor = _summary_factor(product, unit)

        record = _ensure_stock_record(product, unit)
        available = record.quantity

        if quantity > available:
            current_app.logger.warning(
                "Rejected sale of %s x unit %s of product %s in store %s: %s available",
                quantity, unit.id, product.id, store_id, available,
            )
            raise InsufficientStock(
                product_id=product.id,
                store_id=store_id,
                unit_id=unit.id,
                requested=quantity,
                available=available,
                unit_name=unit.name,
            )

        draws, untracked = _draw_down(product, unit, quantity)
        record_before, record_after, summary_before, summary_after = _apply(
            product, record, -quantity, -_to_summary(factor, quantity)
        )
        cost_of_goods = _lot_cost(draws)

        append_stock_movement(
            product_id=product.id,
            store_id=store_id,
            unit_id=unit.id,
            movement_type=MOVEMENT_SALE_DEDUCTED,
            quantity_delta=-quantity,
            record_before=record_before,
            record_after=record_after,
            summary_before=summary_before,
            summary_after=summary_after,
            cost_amount=cost_of_goods,
            note=note,
        )

        if commit:
            db.session.commit()
        else:
            db.session.flush()
        current_app.logger.info(
            "Deducted %s x unit %s of product %s in store %s (%d lots, %s untracked)",
            quantity, unit.id, product.id, store_id, len(draws), untracked,
        )
        return SaleDeduction(
            product_id=product.id,
            store_id=store_id,
            unit_id=unit.id,
            quantity=quantity,
            draws=tuple(draws),
            untracked_quantity=untracked,
            cost_of_goods=cost_of_goods,
            remaining=record_after,
        )

    return run_with_retry(_op)


def reverse_purchase(purchase_order_id: str, *, note: str | None = None, commit: bool = True) -> list[lot_service.ReversedQuantity]:
    """
    Take a deleted purchase order's stock back out.

    The caller deletes the order and its lines only after this returns.

    Raises:
        LotAlreadyConsumed: stock from the order has been sold; nothing changes
        PurchaseOrderNotFound: no lots for the order (never received or already reversed)
    """
    purchase_order_id = str(purchase_order_id)

    def _op():
        # Product and record locks first, same order as sales
        for key_product_id, key_store_id, key_unit_id in lot_service.purchase_order_stock_keys(purchase_order_id):
            product = get_product(key_store_id, key_product_id, lock=True)
            _ensure_stock_record(product, get_unit(key_unit_id, store_id=key_store_id))

        try:
            reversed_lines = lot_service.reverse_by_purchase_order(purchase_order_id)
        except LotAlreadyConsumed as exc:
            current_app.logger.warning(
                "Rejected reversal of purchase order %s: lots %s already consumed",
                purchase_order_id, exc.lot_ids,
            )
            raise

        for line in reversed_lines:
            product = get_product(line.store_id, line.product_id, lock=True)
            unit = get_unit(line.unit_id, store_id=line.store_id)
            factor = _summary_factor(product, unit)

            record = _ensure_stock_record(product, unit)
            record_before, record_after, summary_before, summary_after = _apply(
                product, record, -line.quantity, -_to_summary(factor, line.quantity)
            )

            append_stock_movement(
                product_id=product.id,
                store_id=line.store_id,
                unit_id=unit.id,
                movement_type=MOVEMENT_PURCHASE_REVERSED,
                quantity_delta=-line.quantity,
                record_before=record_before,
                record_after=record_after,
                summary_before=summary_before,
                summary_after=summary_after,
                purchase_order_id=purchase_order_id,
                note=note,
            )

        if commit:
            db.session.commit()
        else:
            db.session.flush()
        current_app.logger.info(
            "Reversed purchase order %s (%d stock lines)", purchase_order_id, len(reversed_lines)
        )
        return reversed_lines

    return run_with_retry(_op)


def adjust_stock(
    *,
    store_id: int,
    product_id: int,
    unit_id: int,
    counted_quantity,
    reason: str,
    unit_cost=None,
    commit: bool = True,
) -> StockAdjustment:
    """
    Set the stock of one unit to a counted quantity (stock take, damage, shrinkage).

    A surplus becomes a new lot at unit_cost (default: the unit's live average
    cost, zero when nothing is live). A shortfall is drawn from the unit's lots
    oldest-first like a sale, the remainder coming off legacy stock.
    A count equal to the record changes nothing beyond first-touch seeding.
    """
    try:
        counted_quantity = to_quantity(counted_quantity)
    except ValueError as exc:
        raise InvalidQuantity("counted quantity must be a number") from exc
    if counted_quantity < 0:
        raise InvalidQuantity("counted quantity cannot be negative")
    reason = (reason or "").strip()
    if not reason:
        raise StockLedgerError("an adjustment reason is required")

    def _op():
        product = get_product(store_id, product_id, lock=True)
        unit = get_unit(unit_id, store_id=store_id)
        factor = _summary_factor(product, unit)

        record = _ensure_stock_record(product, unit)
        previous = record.quantity
        delta = counted_quantity - previous

        lot = None
        draws = []
        if delta > 0:
            lot = lot_service.create_lot(
                product_id=product.id,
                store_id=store_id,
                unit_id=unit.id,
                quantity=delta,
                unit_cost=unit_cost if unit_cost is not None else _current_unit_cost(product, unit),
            )
            cost_amount = lot.quantity * lot.unit_cost
        elif delta < 0:
            draws, _ = _draw_down(product, unit, -delta)
            cost_amount = _lot_cost(draws)

        if delta != 0:
            record_before, record_after, summary_before, summary_after = _apply(
                product, record, delta, _to_summary(factor, delta)
            )
            append_stock_movement(
                product_id=product.id,
                store_id=store_id,
                unit_id=unit.id,
                movement_type=MOVEMENT_ADJUSTED,
                quantity_delta=delta,
                record_before=record_before,
                record_after=record_after,
                summary_before=summary_before,
                summary_after=summary_after,
                cost_amount=cost_amount,
                lot_id=lot.id if lot is not None else None,
                note=reason,
            )

        if commit:
            db.session.commit()
        else:
            db.session.flush()
        current_app.logger.info(
            "Adjusted unit %s of product %s in store %s from %s to %s (%s)",
            unit.id, product.id, store_id, previous, counted_quantity, reason,
        )
        return StockAdjustment(
            product_id=product.id,
            store_id=store_id,
            unit_id=unit.id,
            previous_quantity=previous,
            counted_quantity=counted_quantity,
            delta=delta,
            lot_id=lot.id if lot is not None else None,
            draws=tuple(draws),
        )

    return run_with_retry(_op)


def restore_sale(
    *,
    store_id: int,
    product_id: int,
    unit_id: int,
    quantity,
    unit_cost=None,
    note: str | None = None,
    commit: bool = True,
) -> StockLot:
    """
    Return a cancelled sale line to stock.

    The goods come back as a new lot received now, at unit_cost. Pass the
    sale's cost_of_goods / quantity to keep its cost; by default the unit's
    live average cost is used (zero when nothing is live). Lots the sale drew
    from are not reopened: they may since have been reversed or counted.
    """
    quantity = _require_positive(quantity)

    def _op():
        product = get_product(store_id, product_id, lock=True)
        unit = get_unit(unit_id, store_id=store_id)
        factor = _summary_factor(product, unit)

        record = _ensure_stock_record(product, unit)
        lot = lot_service.create_lot(
            product_id=product.id,
            store_id=store_id,
            unit_id=unit.id,
            quantity=quantity,
            unit_cost=unit_cost if unit_cost is not None else _current_unit_cost(product, unit),
        )
        record_before, record_after, summary_before, summary_after = _apply(
            product, record, quantity, _to_summary(factor, quantity)
        )

        append_stock_movement(
            product_id=product.id,
            store_id=store_id,
            unit_id=unit.id,
            movement_type=MOVEMENT_SALE_RESTORED,
            quantity_delta=quantity,
            record_before=record_before,
            record_after=record_after,
            summary_before=summary_before,
            summary_after=summary_after,
            cost_amount=lot.quantity * lot.unit_cost,
            lot_id=lot.id,
            note=note,
        )

        if commit:
            db.session.commit()
        else:
            db.session.flush()
        current_app.logger.info(
            "Restored %s x unit %s of product %s in store %s (lot %s)",
            quantity, unit.id, product.id, store_id, lot.id,
        )
        return lot

    return run_with_retry(_op)


def reconcile(store_id: int, product_id: int | None = None) -> list[dict]:
    """
    Compare every StockRecord against its live lots (read-only).

    status:
    - OK: record == live lot total
    - UNTRACKED: record holds legacy stock with no lots behind it
    - DIVERGENT: lots claim more than the record
    - MISSING_RECORD: live lots exist for a triple with no StockRecord
    """
    q = StockRecord.query.filter_by(store_id=store_id)
    if product_id is not None:
        q = q.filter_by(product_id=product_id)
    records = q.order_by(StockRecord.product_id.asc(), StockRecord.unit_id.asc()).all()

    rows = []
    seen = set()
    for record in records:
        seen.add((record.product_id, record.unit_id))
        lot_total = lot_service.live_lot_total(record.product_id, store_id, record.unit_id)
        untracked = record.quantity - lot_total
        if untracked == 0:
            status = "OK"
        elif untracked > 0:
            status = "UNTRACKED"
        else:
            status = "DIVERGENT"
        rows.append({
            "product_id": record.product_id,
            "unit_id": record.unit_id,
            "record_quantity": record.quantity,
            "lot_quantity": lot_total,
            "untracked_quantity": untracked,
            "status": status,
        })

    lot_q = db.session.query(StockLot.product_id, StockLot.unit_id).filter(
        StockLot.store_id == store_id,
        StockLot.remaining_quantity > 0,
    )
    if product_id is not None:
        lot_q = lot_q.filter(StockLot.product_id == product_id)
    for lot_product_id, lot_unit_id in sorted(set(lot_q.all())):
        if (lot_product_id, lot_unit_id) in seen:
            continue
        lot_total = lot_service.live_lot_total(lot_product_id, store_id, lot_unit_id)
        rows.append({
            "product_id": lot_product_id,
            "unit_id": lot_unit_id,
            "record_quantity": None,
            "lot_quantity": lot_total,
            "untracked_quantity": None,
            "status": "MISSING_RECORD",
        })
    return rows

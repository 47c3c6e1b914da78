# Overview: Append-only stock movement log written alongside every stock record change.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import StockMovement
from ..time_utils import utcnow
"""
Stock Movement Invariants (authoritative)

- Append-only: no updates or deletes.
- Written inside the same DB transaction as the StockRecord change it records.
- record_before/after describe the per-unit record; summary_before/after the
  product's legacy summary counter (in the base unit of its default unit).
"""

MOVEMENT_PURCHASE_RECEIVED = "PURCHASE_RECEIVED"
MOVEMENT_SALE_DEDUCTED = "SALE_DEDUCTED"
MOVEMENT_PURCHASE_REVERSED = "PURCHASE_REVERSED"
MOVEMENT_RECORD_SEEDED = "RECORD_SEEDED"
MOVEMENT_ADJUSTED = "ADJUSTED"
MOVEMENT_SALE_RESTORED = "SALE_RESTORED"

MOVEMENT_TYPES = {
    MOVEMENT_PURCHASE_RECEIVED,
    MOVEMENT_SALE_DEDUCTED,
    MOVEMENT_PURCHASE_REVERSED,
    MOVEMENT_RECORD_SEEDED,
    MOVEMENT_ADJUSTED,
    MOVEMENT_SALE_RESTORED,
}


def append_stock_movement(
    *,
    product_id: int,
    store_id: int,
    unit_id: int,
    movement_type: str,
    quantity_delta,
    record_before,
    record_after,
    summary_before,
    summary_after,
    cost_amount=None,
    purchase_order_id: str | None = None,
    lot_id: int | None = None,
    note: Optional[str] = None,
    occurred_at: Optional[datetime] = None,
) -> StockMovement:
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"unknown movement type {movement_type!r}")

    movement = StockMovement(
        product_id=product_id,
        store_id=store_id,
        unit_id=unit_id,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        record_before=record_before,
        record_after=record_after,
        summary_before=summary_before,
        summary_after=summary_after,
        cost_amount=cost_amount,
        purchase_order_id=purchase_order_id,
        lot_id=lot_id,
        note=note,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(movement)
    db.session.flush()  # ensures movement.id is assigned without committing
    return movement


def list_movements(*, store_id: int, product_id: int, limit: int = 200) -> list[StockMovement]:
    q = StockMovement.query.filter_by(
        store_id=store_id,
        product_id=product_id,
    ).order_by(
        StockMovement.occurred_at.desc(),
        StockMovement.id.desc(),
    )
    return q.limit(limit).all()

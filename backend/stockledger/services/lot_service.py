# Overview: Lot store; records received batches and draws them down oldest-first.

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from ..extensions import db
from ..models import StockLot
from ..errors import (
    InsufficientLotStock,
    InvalidQuantity,
    LotAlreadyConsumed,
    NoLotsAvailable,
    PurchaseOrderNotFound,
)
from ..decimal_utils import ZERO, to_cost, to_quantity
from ..time_utils import utcnow
from .concurrency import lock_for_update
from .unit_service import get_unit, to_base_terms
"""
Lot Store Invariants (authoritative)

- Lots only add supply: creating one never checks stock sufficiency.
- 0 <= remaining_quantity <= quantity, and remaining_quantity only decreases.
- Consumption is oldest-received-first (received_at, then id) and never crosses a
  unit boundary; converting is the caller's job.
- consume() is all-or-nothing: if the live lots cannot cover the request, no lot
  is touched.
- A purchase order's lots are deleted only when none of them has been drawn on.

None of these functions commit; the calling stock_service operation owns the
DB transaction.
"""


@dataclass(frozen=True)
class LotDraw:
    lot_id: int
    quantity: Decimal
    unit_cost: Decimal

    @property
    def cost_amount(self) -> Decimal:
        return self.quantity * self.unit_cost


@dataclass(frozen=True)
class LotCostSummary:
    unit_id: int
    average_cost: Decimal
    remaining_quantity: Decimal


@dataclass(frozen=True)
class ReversedQuantity:
    product_id: int
    store_id: int
    unit_id: int
    quantity: Decimal


def _live_lots_query(product_id: int, store_id: int, unit_id: int | None = None):
    q = StockLot.query.filter(
        StockLot.product_id == product_id,
        StockLot.store_id == store_id,
        StockLot.remaining_quantity > 0,
    )
    if unit_id is not None:
        q = q.filter(StockLot.unit_id == unit_id)
    return q


def create_lot(
    *,
    product_id: int,
    store_id: int,
    unit_id: int,
    quantity,
    unit_cost,
    purchase_order_id: str | None = None,
    received_at: datetime | None = None,
) -> StockLot:
    """Record a received batch with remaining_quantity = quantity."""
    quantity = to_quantity(quantity)
    unit_cost = to_cost(unit_cost)
    if quantity <= 0:
        raise InvalidQuantity("lot quantity must be positive")
    if unit_cost < 0:
        raise InvalidQuantity("lot unit cost cannot be negative")

    unit = get_unit(unit_id, store_id=store_id)
    base_quantity, base_unit_cost = to_base_terms(unit, quantity, unit_cost)

    lot = StockLot(
        product_id=product_id,
        store_id=store_id,
        unit_id=unit.id,
        quantity=quantity,
        remaining_quantity=quantity,
        unit_cost=unit_cost,
        base_quantity=to_quantity(base_quantity),
        base_unit_cost=to_cost(base_unit_cost),
        purchase_order_id=purchase_order_id,
        received_at=received_at or utcnow(),
    )
    db.session.add(lot)
    db.session.flush()
    return lot


def live_lot_total(product_id: int, store_id: int, unit_id: int) -> Decimal:
    total = ZERO
    for lot in _live_lots_query(product_id, store_id, unit_id).all():
        total += lot.remaining_quantity
    return total


def list_lots(product_id: int, store_id: int, *, unit_id: int | None = None, live_only: bool = False) -> list[StockLot]:
    if live_only:
        q = _live_lots_query(product_id, store_id, unit_id)
    else:
        q = StockLot.query.filter_by(product_id=product_id, store_id=store_id)
        if unit_id is not None:
            q = q.filter_by(unit_id=unit_id)
    return q.order_by(StockLot.received_at.asc(), StockLot.id.asc()).all()


def lock_live_lots(product_id: int, store_id: int, unit_id: int) -> list[StockLot]:
    """Live lots of exactly unit_id, locked, in draw order (oldest first)."""
    return lock_for_update(
        _live_lots_query(product_id, store_id, unit_id).order_by(
            StockLot.received_at.asc(), StockLot.id.asc()
        )
    ).all()


def consume(product_id: int, store_id: int, unit_id: int, quantity) -> list[LotDraw]:
    """
    Draw quantity down from live lots of exactly unit_id, oldest first.

    Raises:
        NoLotsAvailable: no live lot in this exact unit
        InsufficientLotStock: live lots hold less than quantity (nothing mutated)
    """
    quantity = to_quantity(quantity)
    if quantity <= 0:
        raise InvalidQuantity("consume quantity must be positive")

    lots = lock_live_lots(product_id, store_id, unit_id)
    if not lots:
        raise NoLotsAvailable(product_id=product_id, store_id=store_id, unit_id=unit_id)

    available = sum((lot.remaining_quantity for lot in lots), ZERO)
    if available < quantity:
        raise InsufficientLotStock(requested=quantity, available=available)

    return draw_from_lots(lots, quantity)


def draw_from_lots(lots: list[StockLot], quantity: Decimal) -> list[LotDraw]:
    """
    Draw up to quantity from already-locked lots, in the order given.

    The caller holds the lots under lock and has checked their total, so this
    never raises; it stops when quantity is met or the lots run out.
    """
    draws: list[LotDraw] = []
    outstanding = quantity
    for lot in lots:
        if outstanding <= 0:
            break
        take = min(lot.remaining_quantity, outstanding)
        if take <= 0:
            continue
        lot.remaining_quantity = lot.remaining_quantity - take
        outstanding -= take
        draws.append(LotDraw(lot_id=lot.id, quantity=take, unit_cost=lot.unit_cost))

    db.session.flush()
    return draws


def purchase_order_stock_keys(purchase_order_id: str) -> list[tuple[int, int, int]]:
    """(product_id, store_id, unit_id) of every lot of the order, sorted (read-only)."""
    rows = (
        db.session.query(StockLot.product_id, StockLot.store_id, StockLot.unit_id)
        .filter(StockLot.purchase_order_id == purchase_order_id)
        .distinct()
        .all()
    )
    return sorted((p, s, u) for p, s, u in rows)


def reverse_by_purchase_order(purchase_order_id: str) -> list[ReversedQuantity]:
    """
    Delete every lot of an untouched purchase order.

    Returns the quantities to take back out of stock, one entry per
    (product, store, unit).

    Raises:
        PurchaseOrderNotFound: no lots tied to the order (never received or already reversed)
        LotAlreadyConsumed: at least one lot has been drawn on (nothing deleted)
    """
    lots = lock_for_update(
        StockLot.query.filter_by(purchase_order_id=purchase_order_id).order_by(StockLot.id.asc())
    ).all()
    if not lots:
        raise PurchaseOrderNotFound(purchase_order_id)

    consumed = [lot.id for lot in lots if lot.remaining_quantity != lot.quantity]
    if consumed:
        raise LotAlreadyConsumed(purchase_order_id, consumed)

    totals: dict[tuple[int, int, int], Decimal] = defaultdict(lambda: ZERO)
    for lot in lots:
        totals[(lot.product_id, lot.store_id, lot.unit_id)] += lot.quantity
        db.session.delete(lot)
    db.session.flush()

    return [
        ReversedQuantity(product_id=p, store_id=s, unit_id=u, quantity=q)
        for (p, s, u), q in sorted(totals.items())
    ]


def average_cost(product_id: int, store_id: int) -> dict[int, LotCostSummary]:
    """
    Weighted average unit cost of live lots, per unit.

    weight = remaining_quantity. Empty dict (not an error) when nothing is live.
    Computed in Decimal rather than SQL SUM so no float drift leaks in.
    """
    cost_by_unit: dict[int, Decimal] = defaultdict(lambda: ZERO)
    qty_by_unit: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for lot in _live_lots_query(product_id, store_id).all():
        cost_by_unit[lot.unit_id] += lot.remaining_quantity * lot.unit_cost
        qty_by_unit[lot.unit_id] += lot.remaining_quantity

    return {
        unit_id: LotCostSummary(
            unit_id=unit_id,
            average_cost=to_cost(cost_by_unit[unit_id] / qty),
            remaining_quantity=qty,
        )
        for unit_id, qty in qty_by_unit.items()
    }

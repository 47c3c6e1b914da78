# Overview: Average cost, purchase-line base-unit pricing, and margin estimates.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import InvalidQuantity
from ..decimal_utils import ZERO, round_half_up, to_cost, to_decimal, to_quantity
from . import lot_service
from .unit_service import get_unit, to_base_terms
"""
Costing Semantics (authoritative)

- Average cost is weighted by remaining quantity over live lots, per unit; see
  lot_service.average_cost.
- Purchase entry: base_unit_price = unit_price / factor,
  base_quantity = quantity * factor. Both are persisted on the lot.
- Money and quantities are Decimal end to end. Display rounding is half-up to
  CURRENCY_DECIMALS (the smallest currency unit).
"""


def round_currency(value) -> Decimal:
    """Round half-up to the smallest currency unit."""
    places = current_app.config.get("CURRENCY_DECIMALS", 2)
    return round_half_up(value, places)


def average_cost(product_id: int, store_id: int) -> dict[int, lot_service.LotCostSummary]:
    return lot_service.average_cost(product_id, store_id)


def convert_purchase_line(unit_id: int, quantity, unit_price) -> dict:
    """
    Base-unit equivalents for one purchase-order line, entered in unit_id.

    Returns the entered values alongside base_quantity, base_unit_price and
    the line total (quantity * unit_price).
    """
    quantity = to_decimal(quantity)
    unit_price = to_decimal(unit_price)
    if quantity <= 0:
        raise InvalidQuantity("quantity must be positive")
    if unit_price < 0:
        raise InvalidQuantity("unit price cannot be negative")

    unit = get_unit(unit_id)
    base_quantity, base_unit_price = to_base_terms(unit, quantity, unit_price)
    return {
        "unit_id": unit.id,
        "quantity": to_quantity(quantity),
        "unit_price": to_cost(unit_price),
        "base_quantity": to_quantity(base_quantity),
        "base_unit_price": to_cost(base_unit_price),
        "total_amount": round_currency(quantity * unit_price),
    }


def inventory_value(product_id: int, store_id: int) -> Decimal:
    """Cost value of live lots: sum of remaining * unit_cost."""
    total = ZERO
    for lot in lot_service.list_lots(product_id, store_id, live_only=True):
        total += lot.remaining_quantity * lot.unit_cost
    return round_currency(total)


def estimate_margin(product_id: int, store_id: int, unit_id: int, selling_price) -> dict:
    """
    Margin of selling one unit_id at selling_price against its live average cost.

    average_cost/margin are None when the unit has no live lots.
    """
    selling_price = to_decimal(selling_price)
    summary = lot_service.average_cost(product_id, store_id).get(unit_id)
    if summary is None:
        return {
            "unit_id": unit_id,
            "selling_price": round_currency(selling_price),
            "average_cost": None,
            "margin": None,
            "margin_percent": None,
        }

    margin = selling_price - summary.average_cost
    margin_percent = None
    if selling_price > 0:
        margin_percent = round_half_up(margin * 100 / selling_price, 2)
    return {
        "unit_id": unit_id,
        "selling_price": round_currency(selling_price),
        "average_cost": round_currency(summary.average_cost),
        "margin": round_currency(margin),
        "margin_percent": margin_percent,
    }

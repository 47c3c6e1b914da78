# Overview: Error taxonomy for the inventory ledger and unit-conversion costing engine.

from __future__ import annotations

"""
Stock Ledger Error Taxonomy

Every business rejection and caller defect is a StockLedgerError (a ValueError,
like the rest of the service layer's input errors).

- user_message: text safe to show an end user. Only InsufficientStock and
  LotAlreadyConsumed carry a specific, actionable message; defect kinds share
  GENERIC_FAILURE_MESSAGE.
- status_code: HTTP-style hint for whatever outer layer surfaces the error
  (400 input, 404 lookup, 409 conflict).

Infrastructure failures (OperationalError, StaleDataError) are NOT in this
taxonomy; they are retried by services.concurrency.run_with_retry.
"""

GENERIC_FAILURE_MESSAGE = "The stock operation failed. Please contact support."


class StockLedgerError(ValueError):
    """Base class for stock ledger errors."""

    status_code = 400

    @property
    def user_message(self) -> str:
        return GENERIC_FAILURE_MESSAGE


class IncompatibleUnits(StockLedgerError):
    """Conversion requested between units that do not share a base unit."""

    def __init__(self, from_unit_id: int, to_unit_id: int):
        self.from_unit_id = from_unit_id
        self.to_unit_id = to_unit_id
        super().__init__(
            f"unit {from_unit_id} and unit {to_unit_id} do not share a base unit"
        )


class InvalidUnitGraph(StockLedgerError):
    """Unit definition would break the depth-1 unit graph or has a bad factor."""


class InvalidQuantity(StockLedgerError):
    """Quantity or cost outside the accepted range."""


class UnitNotFound(StockLedgerError):
    status_code = 404

    def __init__(self, unit_id: int):
        self.unit_id = unit_id
        super().__init__(f"unit {unit_id} not found")


class ProductNotFound(StockLedgerError):
    status_code = 404

    def __init__(self, product_id: int, store_id: int | None = None):
        self.product_id = product_id
        self.store_id = store_id
        if store_id is None:
            super().__init__(f"product {product_id} not found")
        else:
            super().__init__(f"product {product_id} not found in store {store_id}")


class InsufficientStock(StockLedgerError):
    """Sale deduction exceeds resolvable availability."""

    status_code = 409

    def __init__(self, *, product_id: int, store_id: int, unit_id: int, requested, available, unit_name: str | None = None):
        self.product_id = product_id
        self.store_id = store_id
        self.unit_id = unit_id
        self.requested = requested
        self.available = available
        self.unit_name = unit_name or f"unit {unit_id}"
        super().__init__(
            f"insufficient stock for product {product_id} in store {store_id}: "
            f"requested {requested} {self.unit_name}, available {available}"
        )

    @property
    def user_message(self) -> str:
        return (
            f"Cannot sell {self.requested.normalize():f} {self.unit_name}: "
            f"only {self.available.normalize():f} on hand."
        )


class InsufficientLotStock(StockLedgerError):
    """Live lots in the requested unit do not cover the requested quantity."""

    def __init__(self, *, requested, available):
        self.requested = requested
        self.available = available
        super().__init__(f"lots hold {available}, requested {requested}")


class NoLotsAvailable(StockLedgerError):
    """No live lot exists in the exact unit requested."""

    def __init__(self, *, product_id: int, store_id: int, unit_id: int):
        self.product_id = product_id
        self.store_id = store_id
        self.unit_id = unit_id
        super().__init__(
            f"no live lots for product {product_id} in store {store_id}, unit {unit_id}"
        )


class LotAlreadyConsumed(StockLedgerError):
    """Purchase order reversal requested after some of its stock was sold."""

    status_code = 409

    def __init__(self, purchase_order_id: str, lot_ids: list[int]):
        self.purchase_order_id = purchase_order_id
        self.lot_ids = lot_ids
        super().__init__(
            f"purchase order {purchase_order_id} has consumed lots: {lot_ids}"
        )

    @property
    def user_message(self) -> str:
        return (
            f"Purchase order {self.purchase_order_id} cannot be deleted because "
            f"stock from it has already been sold."
        )


class PurchaseOrderNotFound(StockLedgerError):
    """No lots are tied to the purchase order (never received, or already reversed)."""

    status_code = 404

    def __init__(self, purchase_order_id: str):
        self.purchase_order_id = purchase_order_id
        super().__init__(f"no lots found for purchase order {purchase_order_id}")


def describe_error(exc: Exception) -> tuple[str, int]:
    """Map any exception to (user-facing message, status code)."""
    if isinstance(exc, StockLedgerError):
        return exc.user_message, exc.status_code
    return GENERIC_FAILURE_MESSAGE, 500

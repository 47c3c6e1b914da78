from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

# Persisted scales; see decimal_utils.QUANTITY_PLACES / COST_PLACES
Quantity = db.Numeric(18, 6)
Cost = db.Numeric(18, 4)


def _num(value) -> str | None:
    return None if value is None else str(value)


class Unit(db.Model):
    """
    Packaging unit of measure (Bottle, Case, Kg...).

    UNIT GRAPH (depth 1):
    - A base unit has is_base_unit=True, base_unit_id=NULL, conversion_factor=1.
    - A conversion unit references a base unit directly; chains are rejected.
    - conversion_factor means "1 of this unit = conversion_factor base units".

    Units are never hard-deleted while products or lots reference them.
    """
    __tablename__ = "units"
    __table_args__ = (
        db.UniqueConstraint("store_id", "name", name="uq_units_store_name"),
        db.CheckConstraint("conversion_factor > 0", name="ck_units_factor_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    name = db.Column(db.String(64), nullable=False)
    is_base_unit = db.Column(db.Boolean, nullable=False, default=True)
    base_unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=True, index=True)
    conversion_factor = db.Column(Quantity, nullable=False, default=1)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    base_unit = db.relationship("Unit", remote_side=[id], backref=db.backref("conversion_units", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Unit id={self.id} name={self.name!r} factor={self.conversion_factor} base={self.base_unit_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "is_base_unit": self.is_base_unit,
            "base_unit_id": self.base_unit_id,
            "conversion_factor": _num(self.conversion_factor),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Product master data.

    SUMMARY COUNTER:
    stock_quantity is the legacy denormalized on-hand quantity, denominated in
    the base unit of default_unit's family (default_unit itself when it is a
    base unit, the usual setup). Base units make every delta an exact
    multiplication by a conversion factor, so the counter does not drift from
    the per-unit records. It is a cache written only by stock_service alongside
    the per-unit StockRecord rows and read only as the fallback/seed for a unit
    that has no StockRecord yet.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("store_id", "sku", name="uq_products_store_sku"),
        db.Index("ix_products_store_name", "store_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    default_unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)

    # Legacy summary counter (see class docstring)
    stock_quantity = db.Column(Quantity, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store", backref=db.backref("products", lazy=True))
    default_unit = db.relationship("Unit")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} store_id={self.store_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "sku": self.sku,
            "name": self.name,
            "default_unit_id": self.default_unit_id,
            "stock_quantity": _num(self.stock_quantity),
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockLot(db.Model):
    """
    A batch of stock received on one purchase-order line.

    INVARIANT: 0 <= remaining_quantity <= quantity; remaining only decreases.

    quantity/unit_cost are as entered (in unit_id); base_quantity/base_unit_cost
    are the base-unit equivalents captured at receive time so cross-unit cost
    comparisons never recompute them.
    """
    __tablename__ = "stock_lots"
    __table_args__ = (
        db.CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= quantity",
            name="ck_stock_lots_remaining_range",
        ),
        db.Index("ix_stock_lots_product_store_unit", "product_id", "store_id", "unit_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)

    quantity = db.Column(Quantity, nullable=False)
    remaining_quantity = db.Column(Quantity, nullable=False)
    unit_cost = db.Column(Cost, nullable=False)

    base_quantity = db.Column(Quantity, nullable=False)
    base_unit_cost = db.Column(Cost, nullable=False)

    # Originating purchase order (nullable for non-PO receipts); used for reversal
    purchase_order_id = db.Column(db.String(64), nullable=True, index=True)

    received_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    unit = db.relationship("Unit")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<StockLot id={self.id} product_id={self.product_id} unit_id={self.unit_id} "
            f"remaining={self.remaining_quantity}/{self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "unit_id": self.unit_id,
            "quantity": _num(self.quantity),
            "remaining_quantity": _num(self.remaining_quantity),
            "unit_cost": _num(self.unit_cost),
            "base_quantity": _num(self.base_quantity),
            "base_unit_cost": _num(self.base_unit_cost),
            "purchase_order_id": self.purchase_order_id,
            "received_at": to_utc_z(self.received_at),
            "created_at": to_utc_z(self.created_at),
        }


class StockRecord(db.Model):
    """
    Per-unit stock record: authoritative available quantity for one
    (product, store, unit) triple.

    INVARIANT (target state): quantity == SUM(StockLot.remaining_quantity) for the
    same triple. A record seeded from the legacy summary counter carries an
    untracked remainder (quantity - lot total) until that stock is sold.

    Serialization point for concurrent mutations: rows are read with
    SELECT ... FOR UPDATE and written under version_id optimistic locking.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", "store_id", "unit_id", name="uq_stock_records_product_store_unit"),
        db.Index("ix_stock_records_store_quantity", "store_id", "quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)

    quantity = db.Column(Quantity, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("stock_records", lazy=True))
    unit = db.relationship("Unit")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<StockRecord product_id={self.product_id} store_id={self.store_id} "
            f"unit_id={self.unit_id} quantity={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "unit_id": self.unit_id,
            "quantity": _num(self.quantity),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only audit row written in the same DB transaction as every change
    to a StockRecord. Never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_store_occurred", "product_id", "store_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False)

    # PURCHASE_RECEIVED, SALE_DEDUCTED, PURCHASE_REVERSED, RECORD_SEEDED, ADJUSTED, SALE_RESTORED
    movement_type = db.Column(db.String(32), nullable=False, index=True)

    quantity_delta = db.Column(Quantity, nullable=False)
    record_before = db.Column(Quantity, nullable=False)
    record_after = db.Column(Quantity, nullable=False)
    summary_before = db.Column(Quantity, nullable=False)
    summary_after = db.Column(Quantity, nullable=False)

    # Lot cost moved: value of lots created, or cost of goods drawn from lots
    cost_amount = db.Column(Cost, nullable=True)

    purchase_order_id = db.Column(db.String(64), nullable=True, index=True)
    lot_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "unit_id": self.unit_id,
            "movement_type": self.movement_type,
            "quantity_delta": _num(self.quantity_delta),
            "record_before": _num(self.record_before),
            "record_after": _num(self.record_after),
            "summary_before": _num(self.summary_before),
            "summary_after": _num(self.summary_after),
            "cost_amount": _num(self.cost_amount),
            "purchase_order_id": self.purchase_order_id,
            "lot_id": self.lot_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }

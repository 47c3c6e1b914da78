"""Inventory ledger: units, products, lots, per-unit stock records, movements

Revision ID: 20261019_inventory_ledger
Revises:
Create Date: 2026-10-19 12:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_inventory_ledger"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_organizations_code", "organizations", ["code"], unique=True)
    op.create_index("ix_organizations_is_active", "organizations", ["is_active"], unique=False)

    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], name="fk_stores_org_id_organizations"),
        sa.UniqueConstraint("org_id", "name", name="uq_stores_org_name"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stores_org_id", "stores", ["org_id"], unique=False)
    op.create_index("ix_stores_code", "stores", ["code"], unique=False)

    op.create_table(
        "units",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("is_base_unit", sa.Boolean(), nullable=False),
        sa.Column("base_unit_id", sa.Integer(), nullable=True),
        sa.Column("conversion_factor", sa.Numeric(18, 6), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], name="fk_units_store_id_stores"),
        sa.ForeignKeyConstraint(["base_unit_id"], ["units.id"], name="fk_units_base_unit_id_units"),
        sa.UniqueConstraint("store_id", "name", name="uq_units_store_name"),
        sa.CheckConstraint("conversion_factor > 0", name="ck_units_factor_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_units_store_id", "units", ["store_id"], unique=False)
    op.create_index("ix_units_base_unit_id", "units", ["base_unit_id"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("default_unit_id", sa.Integer(), nullable=False),
        sa.Column("stock_quantity", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], name="fk_products_store_id_stores"),
        sa.ForeignKeyConstraint(["default_unit_id"], ["units.id"], name="fk_products_default_unit_id_units"),
        sa.UniqueConstraint("store_id", "sku", name="uq_products_store_sku"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_store_id", "products", ["store_id"], unique=False)
    op.create_index("ix_products_default_unit_id", "products", ["default_unit_id"], unique=False)
    op.create_index("ix_products_store_name", "products", ["store_id", "name"], unique=False)

    op.create_table(
        "stock_lots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Numeric(18, 6), nullable=False),
        sa.Column("remaining_quantity", sa.Numeric(18, 6), nullable=False),
        sa.Column("unit_cost", sa.Numeric(18, 4), nullable=False),
        sa.Column("base_quantity", sa.Numeric(18, 6), nullable=False),
        sa.Column("base_unit_cost", sa.Numeric(18, 4), nullable=False),
        sa.Column("purchase_order_id", sa.String(length=64), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_stock_lots_product_id_products"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], name="fk_stock_lots_store_id_stores"),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"], name="fk_stock_lots_unit_id_units"),
        sa.CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= quantity",
            name="ck_stock_lots_remaining_range",
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stock_lots_product_id", "stock_lots", ["product_id"], unique=False)
    op.create_index("ix_stock_lots_store_id", "stock_lots", ["store_id"], unique=False)
    op.create_index("ix_stock_lots_unit_id", "stock_lots", ["unit_id"], unique=False)
    op.create_index("ix_stock_lots_purchase_order_id", "stock_lots", ["purchase_order_id"], unique=False)
    op.create_index("ix_stock_lots_received_at", "stock_lots", ["received_at"], unique=False)
    op.create_index("ix_stock_lots_product_store_unit", "stock_lots", ["product_id", "store_id", "unit_id"], unique=False)

    op.create_table(
        "stock_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Numeric(18, 6), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_stock_records_product_id_products"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], name="fk_stock_records_store_id_stores"),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"], name="fk_stock_records_unit_id_units"),
        sa.UniqueConstraint("product_id", "store_id", "unit_id", name="uq_stock_records_product_store_unit"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stock_records_product_id", "stock_records", ["product_id"], unique=False)
    op.create_index("ix_stock_records_store_id", "stock_records", ["store_id"], unique=False)
    op.create_index("ix_stock_records_unit_id", "stock_records", ["unit_id"], unique=False)
    op.create_index("ix_stock_records_store_quantity", "stock_records", ["store_id", "quantity"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column("movement_type", sa.String(length=32), nullable=False),
        sa.Column("quantity_delta", sa.Numeric(18, 6), nullable=False),
        sa.Column("record_before", sa.Numeric(18, 6), nullable=False),
        sa.Column("record_after", sa.Numeric(18, 6), nullable=False),
        sa.Column("summary_before", sa.Numeric(18, 6), nullable=False),
        sa.Column("summary_after", sa.Numeric(18, 6), nullable=False),
        sa.Column("cost_amount", sa.Numeric(18, 4), nullable=True),
        sa.Column("purchase_order_id", sa.String(length=64), nullable=True),
        sa.Column("lot_id", sa.Integer(), nullable=True),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_stock_movements_product_id_products"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], name="fk_stock_movements_store_id_stores"),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"], name="fk_stock_movements_unit_id_units"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"], unique=False)
    op.create_index("ix_stock_movements_store_id", "stock_movements", ["store_id"], unique=False)
    op.create_index("ix_stock_movements_movement_type", "stock_movements", ["movement_type"], unique=False)
    op.create_index("ix_stock_movements_purchase_order_id", "stock_movements", ["purchase_order_id"], unique=False)
    op.create_index(
        "ix_stock_movements_product_store_occurred",
        "stock_movements",
        ["product_id", "store_id", "occurred_at"],
        unique=False,
    )


def downgrade():
    op.drop_table("stock_movements")
    op.drop_table("stock_records")
    op.drop_table("stock_lots")
    op.drop_table("products")
    op.drop_table("units")
    op.drop_table("stores")
    op.drop_table("organizations")

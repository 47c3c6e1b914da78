# Overview: Flask CLI command groups for bootstrap, unit setup, and stock operations.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (PowerShell: $env:FLASK_APP="stockledger"; bash: export FLASK_APP=stockledger).
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--org "Org Name"] [--store "Main Store"]
#   Create tables plus a default organization and store (idempotent).
#
# Units and products:
# - python -m flask units create --store-id 1 --name Bottle
# - python -m flask units create --store-id 1 --name Case --base-unit-id 1 --factor 24
# - python -m flask units list --store-id 1
# - python -m flask products create --store-id 1 --sku BEER-01 --name "Lager" --unit-id 1 [--stock-quantity 0]
#
# Stock mutations (exit status 1 on business rejection):
# - python -m flask stock receive --store-id 1 --product-id 1 --unit-id 2 --quantity 10 --unit-cost 480000 --po PO1
# - python -m flask stock sell --store-id 1 --product-id 1 --unit-id 2 --quantity 3
# - python -m flask stock reverse --po PO1
# - python -m flask stock adjust --store-id 1 --product-id 1 --unit-id 1 --counted 40 --reason "stock take" [--unit-cost 20000]
# - python -m flask stock restore --store-id 1 --product-id 1 --unit-id 1 --quantity 2 [--unit-cost 20000]
#
# Read-only:
# - python -m flask stock show --store-id 1 --product-id 1
# - python -m flask stock cost --store-id 1 --product-id 1
# - python -m flask stock low --store-id 1 [--threshold 10]
# - python -m flask stock movements --store-id 1 --product-id 1 [--limit 20]
# - python -m flask stock reconcile --store-id 1 [--product-id 1]

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .errors import StockLedgerError, describe_error
from .models import Organization, Store, Product
from .time_utils import parse_iso_datetime


def _fail(exc: Exception):
    message, status = describe_error(exc)
    if isinstance(exc, StockLedgerError):
        click.echo(f"FAIL {message}")
        if status != 409:
            click.echo(f"   Detail: {exc}")
    else:
        current_app.logger.exception("Stock command failed")
        click.echo(f"FAIL {message}")
    raise SystemExit(1)


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@click.option('--store', 'store_name', default='Main Store', help='Store name')
@with_appcontext
def init_system(org_name, org_code, store_name):
    """Create all tables and a default organization and store."""
    click.echo("START Initializing stock ledger...")
    db.create_all()

    org = db.session.query(Organization).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created default organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    store = db.session.query(Store).filter_by(org_id=org.id).first()
    if not store:
        store = Store(org_id=org.id, name=store_name)
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created default store: {store.name} (ID: {store.id}, Org: {org.name})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")


@click.group('units')
def units_group():
    """Unit of measure setup."""


@units_group.command('create')
@click.option('--store-id', type=int, required=True)
@click.option('--name', required=True)
@click.option('--base-unit-id', type=int, default=None, help='Omit to create a base unit')
@click.option('--factor', default=None, help='Base units per one of this unit')
@with_appcontext
def create_unit_cli(store_id, name, base_unit_id, factor):
    """
    Create a base unit or a conversion unit.

    Example:
        flask units create --store-id 1 --name Case --base-unit-id 1 --factor 24
    """
    from .services import unit_service

    try:
        unit = unit_service.create_unit(
            store_id=store_id,
            name=name,
            base_unit_id=base_unit_id,
            conversion_factor=factor,
        )
    except StockLedgerError as e:
        _fail(e)

    if unit.is_base_unit:
        click.echo(f"PASS Created base unit: {unit.name} (ID: {unit.id})")
    else:
        click.echo(
            f"PASS Created unit: {unit.name} (ID: {unit.id}) = "
            f"{unit.conversion_factor.normalize():f} x unit {unit.base_unit_id}"
        )


@units_group.command('list')
@click.option('--store-id', type=int, required=True)
@with_appcontext
def list_units_cli(store_id):
    """List the units of a store."""
    from .services import unit_service

    units = unit_service.list_units(store_id)
    if not units:
        click.echo("No units found.")
        return

    click.echo(f"{'ID':<6} {'Name':<20} {'Base':<8} {'Factor':<14}")
    click.echo("-" * 50)
    for unit in units:
        base = "-" if unit.is_base_unit else str(unit.base_unit_id)
        click.echo(f"{unit.id:<6} {unit.name:<20} {base:<8} {unit.conversion_factor.normalize():f}")


@click.group('products')
def products_group():
    """Product bootstrap (catalog management lives elsewhere)."""


@products_group.command('create')
@click.option('--store-id', type=int, required=True)
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--unit-id', type=int, required=True, help='Default unit of the summary counter')
@click.option('--stock-quantity', default='0', help="Legacy summary counter, in the default unit's base unit")
@with_appcontext
def create_product_cli(store_id, sku, name, unit_id, stock_quantity):
    """Create a product with its default unit and legacy summary counter."""
    from .services import unit_service
    from .decimal_utils import to_quantity

    try:
        unit = unit_service.get_unit(unit_id, store_id=store_id)
        product = Product(
            store_id=store_id,
            sku=sku.strip(),
            name=name.strip(),
            default_unit_id=unit.id,
            stock_quantity=to_quantity(stock_quantity),
        )
        db.session.add(product)
        db.session.commit()
    except (StockLedgerError, ValueError) as e:
        db.session.rollback()
        _fail(e)

    click.echo(f"PASS Created product: {product.sku} - {product.name} (ID: {product.id})")


@click.group('stock')
def stock_group():
    """Stock mutations and inspection."""


@stock_group.command('receive')
@click.option('--store-id', type=int, required=True)
@click.option('--product-id', type=int, required=True)
@click.option('--unit-id', type=int, required=True)
@click.option('--quantity', required=True)
@click.option('--unit-cost', required=True)
@click.option('--po', 'purchase_order_id', default=None, help='Originating purchase order id')
@click.option('--received-at', default=None, help='ISO-8601 receive time (default now)')
@with_appcontext
def receive_cli(store_id, product_id, unit_id, quantity, unit_cost, purchase_order_id, received_at):
    """Receive one purchase-order line into stock."""
    from .services import stock_service

    try:
        lot = stock_service.receive_purchase(
            store_id=store_id,
            product_id=product_id,
            unit_id=unit_id,
            quantity=quantity,
            unit_cost=unit_cost,
            purchase_order_id=purchase_order_id,
            received_at=parse_iso_datetime(received_at),
        )
    except Exception as e:
        _fail(e)

    click.echo(f"PASS Received lot {lot.id}: {lot.quantity.normalize():f} x unit {lot.unit_id} @ {lot.unit_cost.normalize():f}")
    click.echo(f"   Base equivalent: {lot.base_quantity.normalize():f} @ {lot.base_unit_cost.normalize():f}")


@stock_group.command('sell')
@click.option('--store-id', type=int, required=True)
@click.option('--product-id', type=int, required=True)
@click.option('--unit-id', type=int, required=True)
@click.option('--quantity', required=True)
@with_appcontext
def sell_cli(store_id, product_id, unit_id, quantity):
    """Deduct one sold line from stock."""
    from .services import stock_service

    try:
        result = stock_service.deduct_for_sale(
            store_id=store_id,
            product_id=product_id,
            unit_id=unit_id,
            quantity=quantity,
        )
    except Exception as e:
        _fail(e)

    click.echo(f"PASS Deducted {result.quantity.normalize():f} x unit {result.unit_id}; remaining {result.remaining.normalize():f}")
    for draw in result.draws:
        click.echo(f"   Lot {draw.lot_id}: {draw.quantity.normalize():f} @ {draw.unit_cost.normalize():f}")
    if result.untracked_quantity:
        click.echo(f"   Untracked legacy stock: {result.untracked_quantity.normalize():f}")


@stock_group.command('reverse')
@click.option('--po', 'purchase_order_id', required=True)
@with_appcontext
def reverse_cli(purchase_order_id):
    """Take a deleted purchase order's stock back out."""
    from .services import stock_service

    try:
        lines = stock_service.reverse_purchase(purchase_order_id)
    except Exception as e:
        _fail(e)

    click.echo(f"PASS Reversed purchase order {purchase_order_id}")
    for line in lines:
        click.echo(f"   Product {line.product_id}, unit {line.unit_id}: -{line.quantity.normalize():f}")


@stock_group.command('adjust')
@click.option('--store-id', type=int, required=True)
@click.option('--product-id', type=int, required=True)
@click.option('--unit-id', type=int, required=True)
@click.option('--counted', 'counted_quantity', required=True, help='Counted quantity on hand, in --unit-id')
@click.option('--reason', required=True)
@click.option('--unit-cost', default=None, help='Cost of a surplus (default: live average cost)')
@with_appcontext
def adjust_cli(store_id, product_id, unit_id, counted_quantity, reason, unit_cost):
    """Set one unit's stock to a counted quantity."""
    from .services import stock_service

    try:
        result = stock_service.adjust_stock(
            store_id=store_id,
            product_id=product_id,
            unit_id=unit_id,
            counted_quantity=counted_quantity,
            reason=reason,
            unit_cost=unit_cost,
        )
    except Exception as e:
        _fail(e)

    if not result.delta:
        click.echo(f"PASS No change: unit {result.unit_id} already at {result.counted_quantity.normalize():f}")
        return
    click.echo(
        f"PASS Adjusted unit {result.unit_id}: {result.previous_quantity.normalize():f} -> "
        f"{result.counted_quantity.normalize():f} ({result.delta.normalize():+f})"
    )
    if result.lot_id is not None:
        click.echo(f"   Surplus lot {result.lot_id}")
    for draw in result.draws:
        click.echo(f"   Lot {draw.lot_id}: -{draw.quantity.normalize():f} @ {draw.unit_cost.normalize():f}")


@stock_group.command('restore')
@click.option('--store-id', type=int, required=True)
@click.option('--product-id', type=int, required=True)
@click.option('--unit-id', type=int, required=True)
@click.option('--quantity', required=True)
@click.option('--unit-cost', default=None, help='Cost of the returned goods (default: live average cost)')
@with_appcontext
def restore_cli(store_id, product_id, unit_id, quantity, unit_cost):
    """Return a cancelled sale line to stock."""
    from .services import stock_service

    try:
        lot = stock_service.restore_sale(
            store_id=store_id,
            product_id=product_id,
            unit_id=unit_id,
            quantity=quantity,
            unit_cost=unit_cost,
        )
    except Exception as e:
        _fail(e)

    click.echo(f"PASS Restored lot {lot.id}: {lot.quantity.normalize():f} x unit {lot.unit_id} @ {lot.unit_cost.normalize():f}")


@stock_group.command('show')
@click.option('--store-id', type=int, required=True)
@click.option('--product-id', type=int, required=True)
@with_appcontext
def show_cli(store_id, product_id):
    """Per-unit stock of a product."""
    from .services import availability_service

    try:
        display = availability_service.get_inventory_display(store_id=store_id, product_id=product_id)
    except StockLedgerError as e:
        _fail(e)

    click.echo(f"Product {product_id} in store {store_id} (base unit: {display['base_unit_name']})")
    if not display["units"]:
        click.echo("   No per-unit stock records yet.")
    for line in display["units"]:
        click.echo(f"   {line['unit_name']:<16} {line['quantity']:>16}  (= {line['quantity_in_base_unit']} base)")
    click.echo(f"   Total in base unit: {display['total_in_base_unit']}")
    click.echo(f"   Legacy summary counter: {display['summary_counter']}")


@stock_group.command('cost')
@click.option('--store-id', type=int, required=True)
@click.option('--product-id', type=int, required=True)
@with_appcontext
def cost_cli(store_id, product_id):
    """Weighted average cost of live lots, per unit."""
    from .services import costing_service

    summaries = costing_service.average_cost(product_id, store_id)
    if not summaries:
        click.echo("No live stock.")
        return
    for unit_id, summary in sorted(summaries.items()):
        click.echo(
            f"   unit {unit_id}: avg {costing_service.round_currency(summary.average_cost)} "
            f"over {summary.remaining_quantity.normalize():f}"
        )
    click.echo(f"   Inventory value: {costing_service.inventory_value(product_id, store_id)}")


@stock_group.command('low')
@click.option('--store-id', type=int, required=True)
@click.option('--threshold', default=None, help='Defaults to LOW_STOCK_THRESHOLD')
@with_appcontext
def low_cli(store_id, threshold):
    """Per-unit stock records at or below a threshold."""
    from .services import availability_service

    try:
        rows = availability_service.list_low_stock(store_id, threshold)
    except StockLedgerError as e:
        _fail(e)

    if not rows:
        click.echo("No low stock.")
        return
    for row in rows:
        click.echo(f"   {row['sku']:<16} {row['unit_name']:<12} {row['quantity']}")


@stock_group.command('movements')
@click.option('--store-id', type=int, required=True)
@click.option('--product-id', type=int, required=True)
@click.option('--limit', type=int, default=20)
@with_appcontext
def movements_cli(store_id, product_id, limit):
    """Most recent stock movements of a product."""
    from .services import movement_service

    movements = movement_service.list_movements(store_id=store_id, product_id=product_id, limit=limit)
    if not movements:
        click.echo("No movements.")
        return
    for m in movements:
        click.echo(
            f"   {m.id:<6} {m.movement_type:<18} unit {m.unit_id:<4} "
            f"{m.quantity_delta.normalize():f} ({m.record_before.normalize():f} -> {m.record_after.normalize():f})"
        )


@stock_group.command('reconcile')
@click.option('--store-id', type=int, required=True)
@click.option('--product-id', type=int, default=None)
@with_appcontext
def reconcile_cli(store_id, product_id):
    """
    Compare per-unit stock records against live lots.

    Exits with status 1 when any record is DIVERGENT or MISSING_RECORD.
    """
    from .services import stock_service

    rows = stock_service.reconcile(store_id, product_id)
    if not rows:
        click.echo("No stock records.")
        return

    problems = 0
    for row in rows:
        if row["status"] in ("DIVERGENT", "MISSING_RECORD"):
            problems += 1
        click.echo(
            f"   product {row['product_id']:<6} unit {row['unit_id']:<4} "
            f"record={row['record_quantity']} lots={row['lot_quantity']} {row['status']}"
        )

    if problems:
        click.echo(f"FAIL {problems} stock record(s) out of line with their lots")
        raise SystemExit(1)
    click.echo("PASS Stock records reconcile with lots")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(units_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)

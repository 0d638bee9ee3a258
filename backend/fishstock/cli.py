# Overview: Flask CLI command groups for bootstrap, catalog and stock inspection.

# backend/fishstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask products list
#   List products with current stock.
# - python -m flask products create --sku TIL-10 --name Tilapia --ratio 10 --box-price 120 --kg-price 13 --boxes 5
#   Create a product (opening stock is booked to the ledger).
#
# Stock:
# - python -m flask stock reconcile [--product-id 1]
#   Compare stock with ledger sums; exits 1 when any product drifts.
#
# Audits:
# - python -m flask audits pending
#   List audit records waiting for a decision.

import click
from flask.cli import with_appcontext

from .errors import StockError
from .extensions import db
from .services import audit_service, ledger_service, products_service


CLI_PRINCIPAL = "cli"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('products')
def products_group():
    """Product catalog commands."""


@products_group.command('list')
@click.option('--active-only', is_flag=True, help='Hide inactive products')
@with_appcontext
def list_products_cli(active_only):
    """List products with current stock."""
    products = products_service.list_products(active_only=active_only)

    if not products:
        click.echo("No products found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'SKU':<15} {'Name':<25} {'Boxes':<8} {'Loose kg':<12} {'Ratio':<8} {'Active'}")
    click.echo("="*80)

    for p in products:
        active_str = "Yes" if p.is_active else "No"
        click.echo(
            f"{p.id:<5} {p.sku:<15} {p.name[:25]:<25} {p.boxes:<8} {str(p.loose_kg):<12} "
            f"{str(p.box_to_kg_ratio):<8} {active_str}"
        )

    click.echo("="*80 + "\n")


@products_group.command('create')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--ratio', required=True, help='Kilograms per box')
@click.option('--box-price', default="0", show_default=True)
@click.option('--kg-price', default="0", show_default=True)
@click.option('--boxes', default=0, type=int, show_default=True, help='Opening boxes')
@click.option('--loose-kg', default="0", show_default=True, help='Opening loose kilograms')
@click.option('--supplier', default=None)
@with_appcontext
def create_product_cli(sku, name, ratio, box_price, kg_price, boxes, loose_kg, supplier):
    """Create a product."""
    payload = {
        "sku": sku,
        "name": name,
        "box_to_kg_ratio": ratio,
        "unit_price_per_box": box_price,
        "unit_price_per_kg": kg_price,
        "boxes": boxes,
        "loose_kg": loose_kg,
    }
    if supplier:
        payload["supplier"] = supplier

    try:
        product = products_service.create_product(payload=payload, performed_by=CLI_PRINCIPAL)
    except StockError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created product {product.id} ({product.sku}): {product.boxes} boxes, {product.loose_kg} kg loose")


@click.group('stock')
def stock_group():
    """Stock ledger commands."""


@stock_group.command('reconcile')
@click.option('--product-id', type=int, default=None, help='Only this product')
@with_appcontext
def reconcile_cli(product_id):
    """Compare each product's stock with the sum of its ledger entries."""
    try:
        if product_id is not None:
            results = [ledger_service.reconcile_product(product_id)]
        else:
            results = ledger_service.reconcile_all()
    except StockError as e:
        raise click.ClickException(e.message)

    if not results:
        click.echo("No products found.")
        return

    drifted = 0
    for r in results:
        if r["balanced"]:
            click.echo(f"PASS product {r['product_id']}: {r['actual_boxes']} boxes, {r['actual_kg']} kg")
        else:
            drifted += 1
            click.echo(
                f"FAIL product {r['product_id']}: stock {r['actual_boxes']} boxes / {r['actual_kg']} kg, "
                f"ledger {r['expected_boxes']} boxes / {r['expected_kg']} kg "
                f"(drift {r['box_drift']} boxes, {r['kg_drift']} kg)"
            )

    if drifted:
        raise click.exceptions.Exit(1)


@click.group('audits')
def audits_group():
    """Sale audit commands."""


@audits_group.command('pending')
@click.option('--limit', default=50, type=int, show_default=True)
@with_appcontext
def pending_audits_cli(limit):
    """List audit records waiting for a decision."""
    audits = audit_service.list_audits(approval_status="pending", limit=limit)

    if not audits:
        click.echo("No pending audit records.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<6} {'Sale':<6} {'Type':<16} {'Boxes':<7} {'Kg':<10} {'By':<12} {'Reason'}")
    click.echo("="*80)

    for a in audits:
        click.echo(
            f"{a.id:<6} {a.sale_id:<6} {a.change_type:<16} {a.boxes_delta:<7} {str(a.kg_delta):<10} "
            f"{a.requested_by[:12]:<12} {a.reason[:40]}"
        )

    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(audits_group)

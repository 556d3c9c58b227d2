# Overview: Flask CLI command groups for bootstrap, inspection, and ledger maintenance.

# backend/dairy_pos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed
#   Create a sample dairy catalog; opening stock is booked through the ledger.
#
# Product inspection:
# - python -m flask products list [--all]
#   List products (use --all to include inactive).
# - python -m flask products low-stock
#   List active products at or below their minimum stock level.
#
# Ledger inspection/repair:
# - python -m flask ledger history --product-id 1 [--limit 20]
#   Show a product's ledger entries, newest first.
# - python -m flask ledger verify
#   Reconcile every product's stock against its ledger; exits 1 on discrepancies.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import LedgerError
from .services.catalog_service import build_catalog
from .services.stock_ledger_service import build_stock_ledger
from .services.reconcile_service import reconcile_ledger


SEED_PRODUCTS = [
    {"name": "Whole Milk 1L", "category": "Milk", "price_cents": 149, "cost_cents": 95,
     "unit": "Liter", "stock_quantity": 120, "min_stock_level": 30, "supplier": "Valley Farms"},
    {"name": "Cheddar Block", "category": "Cheese", "price_cents": 650, "cost_cents": 410,
     "unit": "Kilogram", "stock_quantity": 25, "supplier": "Valley Farms"},
    {"name": "Greek Yogurt", "category": "Yogurt", "price_cents": 299, "cost_cents": 180,
     "unit": "Pack", "stock_quantity": 60, "min_stock_level": 15},
    {"name": "Salted Butter", "category": "Butter", "price_cents": 425, "cost_cents": 300,
     "unit": "Piece", "stock_quantity": 8},
    {"name": "Heavy Cream", "category": "Cream", "price_cents": 375, "cost_cents": 240,
     "unit": "Liter", "stock_quantity": 18},
    {"name": "Vanilla Ice Cream", "category": "Ice Cream", "price_cents": 599, "cost_cents": 350,
     "unit": "Pack", "stock_quantity": 0},
]


# ============================================================================
# System
# ============================================================================

@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm dropping all data')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@system_group.command('seed')
@click.option('--performed-by', default='System', help='Actor recorded on opening stock entries')
@with_appcontext
def seed(performed_by):
    """Create a sample dairy catalog."""
    catalog = build_catalog()
    for data in SEED_PRODUCTS:
        try:
            product = catalog.create_product(dict(data), performed_by=performed_by)
        except LedgerError as e:
            click.echo(f"FAIL {data['name']}: {e.message}")
            continue
        click.echo(f"PASS Created product: {product.name} (ID: {product.id}, stock: {product.stock_quantity})")


# ============================================================================
# Products
# ============================================================================

@click.group('products')
def products_group():
    """Product inspection commands."""


def _print_products(products):
    if not products:
        click.echo("No products found.")
        return
    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Category':<12} {'Stock':>7} {'Min':>5} {'Price':>10} {'Active':<6}")
    click.echo("=" * 80)
    for p in products:
        active_str = "yes" if p.is_active else "no"
        click.echo(
            f"{p.id:<5} {p.name[:30]:<30} {p.category:<12} {p.stock_quantity:>7} "
            f"{p.min_stock_level:>5} {p.price_cents / 100:>10.2f} {active_str:<6}"
        )


@products_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive products')
@with_appcontext
def list_products(include_inactive):
    """List products."""
    _print_products(build_catalog().list_products(include_inactive=include_inactive))


@products_group.command('low-stock')
@with_appcontext
def low_stock():
    """List active products at or below their minimum stock level."""
    _print_products(build_catalog().low_stock_products())


# ============================================================================
# Ledger
# ============================================================================

@click.group('ledger')
def ledger_group():
    """Stock ledger inspection and reconciliation."""


@ledger_group.command('history')
@click.option('--product-id', type=int, required=True)
@click.option('--limit', type=int, default=20)
@with_appcontext
def history(product_id, limit):
    """Show a product's ledger entries, newest first."""
    try:
        entries = build_stock_ledger().list_entries(product_id=product_id, limit=limit)
    except LedgerError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    if not entries:
        click.echo("No ledger entries.")
        return
    for e in entries:
        click.echo(
            f"{e.id:<6} {e.type:<10} {e.quantity:>6} {e.previous_stock:>6} -> {e.new_stock:<6} "
            f"{e.performed_by:<16} {e.reason}"
        )


@ledger_group.command('verify')
@with_appcontext
def verify():
    """Reconcile stock levels against the ledger."""
    problems = reconcile_ledger(db.session)
    if not problems:
        click.echo("PASS Stock levels match the ledger")
        return

    for p in problems:
        detail = ", ".join(f"{k}={v}" for k, v in p.items() if k not in ("product_id", "problem"))
        click.echo(f"FAIL product {p['product_id']}: {p['problem']} ({detail})")
    click.echo(f"\n{len(problems)} discrepancies found")
    raise SystemExit(1)


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(ledger_group)

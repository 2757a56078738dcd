# Overview: Flask CLI command groups for bootstrap, tenant setup, and ledger maintenance.

# posledger/cli.py
# Commands Legend:
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP=posledger (PowerShell: $env:FLASK_APP="posledger").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (prefer `flask db upgrade` once migrations are in use).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-categories [--tenant-id 1]
#   Create the default system expense categories (global without --tenant-id).
#
# Tenants:
# - python -m flask tenants list
# - python -m flask tenants create --name "Toko Maju" --code "MAJU"
#
# Sales:
# - python -m flask sales lock-completed [--before 2024-05-01]
#   Lock every COMPLETED sale finished before midnight of the given day (default today).
#   Run from the daily scheduler.
#
# Stock:
# - python -m flask stock low-stock --tenant-id 1
# - python -m flask stock valuation --tenant-id 1
# - python -m flask stock verify-ledger --tenant-id 1
#   Replay movements per product and report products whose quantity drifted.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, Tenant
from .services import category_service, sales_service, stock_service
from .services.errors import LedgerError, NotFoundError
from .services.tenant_service import create_tenant, get_tenant
from .time_utils import parse_iso_date


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


@system_group.command('seed-categories')
@click.option('--tenant-id', type=int, default=None, help='Tenant to seed (global categories if omitted)')
@with_appcontext
def seed_categories(tenant_id):
    """Create default expense categories. Safe to run repeatedly."""
    if tenant_id is not None:
        _require_tenant(tenant_id)

    result = category_service.seed_default_categories(tenant_id)
    scope = f"tenant {tenant_id}" if tenant_id is not None else "global"
    click.echo(f"PASS Seeded {scope} categories: {result['created']} created, {result['existing']} already present")


@click.group('tenants')
def tenants_group():
    """Tenant management."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id.asc()).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Products'}")
    click.echo("="*70)

    for tenant in tenants:
        product_count = db.session.query(Product).filter_by(tenant_id=tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.code or '-':<15} {active_str:<8} {product_count}")

    click.echo("="*70 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', default=None, help='Unique tenant code')
@click.option('--seed/--no-seed', default=True, help='Also seed default expense categories')
@with_appcontext
def create_tenant_cmd(name, code, seed):
    """Create a tenant."""
    try:
        tenant = create_tenant(name, code=code)
    except LedgerError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code or '-'})")
    if seed:
        result = category_service.seed_default_categories(tenant.id)
        click.echo(f"PASS Seeded {result['created']} expense categories")


@click.group('sales')
def sales_group():
    """Sale lifecycle maintenance."""


@sales_group.command('lock-completed')
@click.option('--before', default=None, help='Lock sales completed before this day (YYYY-MM-DD, default today)')
@with_appcontext
def lock_completed(before):
    """COMPLETED -> LOCKED for sales from earlier days."""
    try:
        cutoff = parse_iso_date(before) if before else None
    except ValueError:
        raise click.BadParameter("must be YYYY-MM-DD", param_hint="--before")

    locked = sales_service.lock_completed_sales(cutoff)
    click.echo(f"PASS Locked {locked} sale(s)")


@click.group('stock')
def stock_group():
    """Stock inspection commands."""


def _require_tenant(tenant_id: int) -> Tenant:
    try:
        return get_tenant(tenant_id)
    except NotFoundError:
        raise click.ClickException(f"Tenant {tenant_id} not found")


@stock_group.command('low-stock')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def low_stock(tenant_id):
    """List tracked products at or below their minimum stock."""
    _require_tenant(tenant_id)
    rows = stock_service.get_low_stock_products(tenant_id)

    if not rows:
        click.echo("No low-stock products.")
        return

    click.echo(f"{'ID':<6} {'SKU':<15} {'Name':<30} {'Qty':>6} {'Min':>6}")
    for row in rows:
        click.echo(
            f"{row['product_id']:<6} {row['sku'] or '-':<15} {row['product_name']:<30} "
            f"{row['quantity']:>6} {row['min_stock']:>6}"
        )


@stock_group.command('valuation')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def valuation(tenant_id):
    """Print inventory value at cost and at selling price."""
    _require_tenant(tenant_id)
    summary = stock_service.get_inventory_valuation(tenant_id)["summary"]
    click.echo(f"Products:          {summary['total_products']}")
    click.echo(f"Cost value:        {summary['total_cost_value']}")
    click.echo(f"Selling value:     {summary['total_selling_value']}")
    click.echo(f"Potential profit:  {summary['total_potential_profit']}")
    click.echo(f"Low stock:         {summary['low_stock_count']}")
    click.echo(f"Out of stock:      {summary['out_of_stock_count']}")


@stock_group.command('verify-ledger')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def verify_ledger(tenant_id):
    """Compare each product's quantity with a replay of its movements."""
    _require_tenant(tenant_id)
    products = db.session.query(Product).filter_by(tenant_id=tenant_id).order_by(Product.id.asc()).all()

    drifted = 0
    for product in products:
        replayed = stock_service.replay_quantity(product.id)
        if replayed != product.quantity:
            drifted += 1
            click.echo(f"FAIL Product {product.id} ({product.name}): quantity={product.quantity} replayed={replayed}")

    if drifted:
        raise click.ClickException(f"{drifted} product(s) out of sync with the movement ledger")
    click.echo(f"PASS {len(products)} product(s) match the movement ledger")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(sales_group)
    app.cli.add_command(stock_group)

# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/mypackaging/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
#   List operators with role and active status.
# - python -m flask users create --email admin@shop.local --password "Password123!" --role admin
#   Create an operator (prompts if options are omitted).
#
# Products:
# - python -m flask products list
# - python -m flask products create --name "Box 10x10" --unit-price 1.20 --big-bulk-qty 50 --opening-stock 200
#
# Stock / credit:
# - python -m flask stock low
#   Products at or below their reorder point.
# - python -m flask credit summary
#   Outstanding hutang totals.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Role, User
from .money import format_amount, to_cents
from .services import credit_service, products_service, stock_service
from .services.auth_service import PasswordValidationError, create_user


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create any missing tables."""
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

    click.echo("PASS Database reset complete. Create an admin with 'python -m flask users create'.")


@click.group('users')
def users_group():
    """Operator account commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address (login)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([r.value for r in Role]), prompt=True, help='Role')
@click.option('--display-name', default=None, help='Name shown on receipts and logs')
@with_appcontext
def create_user_cli(email, password, role, display_name):
    """
    Create a new operator.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(email=email, password=password, role=role, display_name=display_name)
        click.echo(f"PASS Created user: {user.email} with role '{user.role}'")
        click.echo("SECURITY Password securely hashed with bcrypt")

    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all operators with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<35} {'Role':<10} {'Active':<8} {'Last login'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        last_login = user.last_login_at.strftime("%Y-%m-%d %H:%M") if user.last_login_at else "-"
        click.echo(f"{user.id:<5} {user.email:<35} {user.role:<10} {active_str:<8} {last_login}")

    click.echo("="*80 + "\n")


@click.group('products')
def products_group():
    """Product catalogue commands."""


@products_group.command('create')
@click.option('--name', prompt=True, help='Product name (unique)')
@click.option('--sku', default=None, help='SKU / barcode')
@click.option('--unit-price', default="0", help='Price per unit, e.g. 1.20')
@click.option('--box-price', default=None, help='Price per box (defaults to unit price x box size)')
@click.option('--pack-price', default=None, help='Price per pack (defaults to unit price x pack size)')
@click.option('--big-bulk-qty', type=int, default=1, help='Units per box')
@click.option('--small-bulk-qty', type=int, default=1, help='Units per pack')
@click.option('--reorder-point', type=int, default=0, help='Low stock threshold')
@click.option('--opening-stock', type=int, default=0, help='Units on hand now')
@with_appcontext
def create_product_cli(name, sku, unit_price, box_price, pack_price, big_bulk_qty, small_bulk_qty,
                       reorder_point, opening_stock):
    """Create a product with an optional opening stock."""
    try:
        patch = {
            "name": name,
            "sku": sku,
            "unit_price_cents": to_cents(unit_price),
            "box_price_cents": to_cents(box_price) if box_price else None,
            "pack_price_cents": to_cents(pack_price) if pack_price else None,
            "big_bulk_qty": big_bulk_qty,
            "small_bulk_qty": small_bulk_qty,
            "reorder_point": reorder_point,
        }
        product = products_service.create_product(patch=patch, actor="cli", opening_stock=opening_stock)
        click.echo(f"PASS Created product #{product.id}: {product.name} ({product.stock_balance} units)")

    except ValueError as e:
        click.echo(f"FAIL Invalid amount: {str(e)}")
    except LedgerError as e:
        click.echo(f"FAIL {e.message}")


@products_group.command('list')
@with_appcontext
def list_products_cli():
    """List products with stock and unit price."""
    items = products_service.list_products()["items"]
    if not items:
        click.echo("No products found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<35} {'Stock':>8} {'Reorder':>8} {'Unit price':>14}")
    click.echo("="*80)
    for p in items:
        click.echo(
            f"{p['id']:<5} {p['name'][:35]:<35} {p['stock_balance']:>8} {p['reorder_point']:>8} "
            f"{format_amount(p['unit_price_cents']):>14}"
        )
    click.echo("="*80 + "\n")


@click.group('stock')
def stock_group():
    """Stock inspection commands."""


@stock_group.command('low')
@with_appcontext
def low_stock_cli():
    """Products at or below their reorder point."""
    products = stock_service.low_stock_products()
    if not products:
        click.echo("PASS No products at or below their reorder point.")
        return
    for product in products:
        click.echo(f"WARN {product.name}: {product.stock_balance} units (reorder at {product.reorder_point})")


@click.group('credit')
def credit_group():
    """Hutang (credit) inspection commands."""


@credit_group.command('summary')
@with_appcontext
def credit_summary_cli():
    summary = credit_service.outstanding_summary()
    click.echo(f"Outstanding: {format_amount(summary['total_outstanding_cents'])}")
    click.echo(f"Customers:   {summary['total_customers']}")
    click.echo(f"Open sales:  {summary['open_sales']}")
    click.echo(f"Overdue:     {summary['overdue_count']} (older than {summary['overdue_days']} days)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(credit_group)

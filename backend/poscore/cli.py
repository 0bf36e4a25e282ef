# Overview: Flask CLI commands for bootstrapping and seeding the store database.

# backend/poscore/cli.py
# Commands Legend:
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "poscore:create_app".
# - Use: python -m flask <group> <command> [options]
#
# - python -m flask pos init-db
#   Apply migrations up to head (idempotent; same as `flask db upgrade`).
# - python -m flask pos reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask pos add-product --code 750100 --name "Notebook" --price 10.00 --stock 5
#   Add a catalog product.
# - python -m flask pos seed-demo
#   Add a handful of demo products if the catalog is empty.

from decimal import Decimal, InvalidOperation

import click
from flask.cli import with_appcontext
from flask_migrate import upgrade
from sqlalchemy.exc import IntegrityError

from .extensions import db
from .models import Product


DEMO_PRODUCTS = [
    ("7501000000011", "Notebook A5", "10.00", 25, 5, "0"),
    ("7501000000028", "Ballpoint pen, blue", "8.50", 100, 20, "0"),
    ("7501000000035", "Backpack", "450.00", 6, 2, "10"),
    ("7501000000042", "Water bottle 1L", "129.90", 12, 3, "5"),
]


def _parse_price(value: str) -> Decimal:
    try:
        return Decimal(value).quantize(Decimal("0.01"))
    except InvalidOperation:
        raise click.BadParameter(f"Invalid amount: {value}")


@click.group('pos')
def pos_group():
    """Point-of-sale database commands."""


@pos_group.command('init-db')
@with_appcontext
def init_db():
    """Apply all migrations (idempotent)."""
    upgrade()
    click.echo("PASS Database schema ready.")


@pos_group.command('reset-db')
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


@pos_group.command('add-product')
@click.option('--code', required=True, help='Scannable product code (unique)')
@click.option('--name', required=True, help='Product name')
@click.option('--price', required=True, help='Unit price, e.g. 10.00')
@click.option('--stock', type=int, default=0, show_default=True, help='Units on hand')
@click.option('--stock-minimum', type=int, default=0, show_default=True, help='Low-stock threshold')
@click.option('--discount', default='0', show_default=True, help='Discount percent (0-100)')
@with_appcontext
def add_product(code, name, price, stock, stock_minimum, discount):
    """Add a product to the catalog."""
    discount_percent = _parse_price(discount)
    if stock < 0:
        raise click.BadParameter("stock cannot be negative")
    if discount_percent < 0 or discount_percent > 100:
        raise click.BadParameter("discount must be between 0 and 100")

    product = Product(
        code=code.strip(),
        name=name.strip(),
        price=_parse_price(price),
        stock=stock,
        stock_minimum=stock_minimum,
        discount_percent=discount_percent,
    )
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f"Product code {code} already exists")

    click.echo(f"PASS Product {product.id} created: {product.code} {product.name}")


@pos_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Insert demo products when the catalog is empty."""
    if db.session.query(Product).count():
        click.echo("SKIP  Catalog already has products.")
        return

    for code, name, price, stock, minimum, discount in DEMO_PRODUCTS:
        db.session.add(Product(
            code=code,
            name=name,
            price=Decimal(price),
            stock=stock,
            stock_minimum=minimum,
            discount_percent=Decimal(discount),
        ))
    db.session.commit()
    click.echo(f"PASS Seeded {len(DEMO_PRODUCTS)} demo products.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(pos_group)

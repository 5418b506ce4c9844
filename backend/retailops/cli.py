# Overview: Flask CLI command groups for bootstrap and local setup.

# backend/retailops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Parties:
# - python -m flask parties create-shop --name "City Optics" --code CITY
# - python -m flask parties create-retailer --name "North Distributors" --code NORTH
# - python -m flask parties link-shop --retailer-id 1 --shop-id 1
#
# Catalog:
# - python -m flask products create --name "Aviator Frame" --sku AV-001 --price-cents 4999
#
# Users and sessions:
# - python -m flask users create --username clerk --email clerk@shop.local --role SHOP_STAFF --shop-id 1
# - python -m flask tokens issue --username clerk
#   Print a bearer token (stand-in for the external auth service).
# - python -m flask tokens revoke --token <token>

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError

from .extensions import db
from .models import Product, Retailer, RetailerShop, Shop, User
from .models.enums import PartyRole
from .services import session_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


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


def _commit_or_fail(label: str):
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise click.ClickException(f"Could not create {label}: {e.orig}")


@click.group('parties')
def parties_group():
    """Shops, retailers and retailer networks."""


@parties_group.command('create-shop')
@click.option('--name', required=True, help='Shop name')
@click.option('--code', help='Short code (unique)')
@click.option('--address', help='Street address')
@with_appcontext
def create_shop_cli(name, code, address):
    shop = Shop(name=name, code=code, address=address, is_active=True)
    db.session.add(shop)
    _commit_or_fail("shop")
    click.echo(f"PASS Created shop: {shop.name} (ID: {shop.id})")


@parties_group.command('create-retailer')
@click.option('--name', required=True, help='Retailer name')
@click.option('--code', help='Short code (unique)')
@with_appcontext
def create_retailer_cli(name, code):
    retailer = Retailer(name=name, code=code, is_active=True)
    db.session.add(retailer)
    _commit_or_fail("retailer")
    click.echo(f"PASS Created retailer: {retailer.name} (ID: {retailer.id})")


@parties_group.command('link-shop')
@click.option('--retailer-id', type=int, required=True, help='Retailer ID')
@click.option('--shop-id', type=int, required=True, help='Shop ID')
@click.option('--payment-terms', help='e.g. NET30')
@with_appcontext
def link_shop_cli(retailer_id, shop_id, payment_terms):
    """Add a shop to a retailer's distribution network."""
    if not db.session.get(Retailer, retailer_id):
        raise click.ClickException(f"Retailer {retailer_id} not found")
    if not db.session.get(Shop, shop_id):
        raise click.ClickException(f"Shop {shop_id} not found")

    link = RetailerShop(retailer_id=retailer_id, shop_id=shop_id, payment_terms=payment_terms, is_active=True)
    db.session.add(link)
    _commit_or_fail("network link")
    click.echo(f"PASS Linked shop {shop_id} to retailer {retailer_id} (retailerShopId: {link.id})")


@click.group('products')
def products_group():
    """Catalog products."""


@products_group.command('create')
@click.option('--name', required=True, help='Product name')
@click.option('--sku', required=True, help='SKU (unique)')
@click.option('--barcode', help='Barcode (unique)')
@click.option('--price-cents', type=int, help='List price in cents')
@with_appcontext
def create_product_cli(name, sku, barcode, price_cents):
    product = Product(name=name, sku=sku, barcode=barcode, price_cents=price_cents, is_active=True)
    db.session.add(product)
    _commit_or_fail("product")
    click.echo(f"PASS Created product: {product.name} (ID: {product.id}, SKU: {product.sku})")


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', help='Display name')
@click.option('--role', type=click.Choice([r.value for r in PartyRole]), prompt=True, help='Role')
@click.option('--shop-id', type=int, help='Shop ID (shop roles)')
@click.option('--retailer-id', type=int, help='Retailer ID (RETAILER role)')
@with_appcontext
def create_user_cli(username, email, name, role, shop_id, retailer_id):
    role = PartyRole(role)
    try:
        session_service.tenant_key_for(role, shop_id, retailer_id)
    except ValueError as e:
        raise click.ClickException(str(e))

    user = User(
        username=username,
        email=email,
        name=name,
        role=role.value,
        shop_id=shop_id,
        retailer_id=retailer_id,
        is_active=True,
    )
    db.session.add(user)
    _commit_or_fail("user")
    click.echo(f"PASS Created user: {username} ({role.value}, ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        party = f"shop {user.shop_id}" if user.shop_id else f"retailer {user.retailer_id}"
        status = "active" if user.is_active else "inactive"
        click.echo(f"  {user.id:>4}  {user.username:<20} {user.role:<11} {party:<14} {status}")


@click.group('tokens')
def tokens_group():
    """Bearer sessions for local use."""


@tokens_group.command('issue')
@click.option('--username', required=True, help='Username')
@with_appcontext
def issue_token_cli(username):
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        raise click.ClickException(f"User '{username}' not found")
    try:
        session, token = session_service.create_session(user.id)
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(token)


@tokens_group.command('revoke')
@click.option('--token', required=True, help='Bearer token')
@with_appcontext
def revoke_token_cli(token):
    if session_service.revoke_session(token):
        click.echo("PASS Session revoked.")
    else:
        click.echo("WARN No active session for that token.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(parties_group)
    app.cli.add_command(products_group)
    app.cli.add_command(users_group)
    app.cli.add_command(tokens_group)

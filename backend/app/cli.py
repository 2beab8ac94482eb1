# Overview: Flask CLI command groups for bootstrap, master data and maintenance.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: upgrades the schema to head and creates the HQ location.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Master data:
# - python -m flask locations list
# - python -m flask locations create --code OUT-01 --name "MG Road" --kind OUTLET
# - python -m flask items list [--search "tee"]
# - python -m flask items create --item-code SKU-1 --name "Tee" --size M --dealer-price-cents 45000
#
# Users / tokens:
# - python -m flask users create --username asha --display-name "Asha" --location-id 2
# - python -m flask users issue-token --username asha [--hours 24]
#   Prints a bearer token for attribution (shown once, stored hashed).
#
# Legacy mirror:
# - python -m flask mirror rebuild [--transfer-id 12]
#   Re-sync transfer_master rows from the primary transfer tables.

import click
from datetime import timedelta
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError

from .engine import InventoryEngine
from .extensions import db
from .models import Item, Location, User
from .models.locations import LOCATION_KINDS
from .services import session_service


def _engine() -> InventoryEngine:
    return InventoryEngine(db.session, current_app.config, current_app.logger)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--hq-code', default='HQ', help='Head office location code')
@click.option('--hq-name', default='Head Office', help='Head office location name')
@with_appcontext
def init_system(hq_code, hq_name):
    """
    Bring the database to the latest schema and ensure a head office exists.

    Safe to run repeatedly.
    """
    from flask_migrate import upgrade

    click.echo("START Upgrading schema...")
    upgrade(directory=current_app.extensions["migrate"].directory)
    click.echo("PASS Schema at head")

    hq = db.session.query(Location).filter_by(code=hq_code).first()
    if hq:
        click.echo(f"PASS Using existing head office: {hq.name} (ID: {hq.id})")
        return

    hq = Location(code=hq_code, name=hq_name, kind="HQ", is_active=True)
    db.session.add(hq)
    db.session.commit()
    click.echo(f"PASS Created head office: {hq.name} (ID: {hq.id})")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('locations')
def locations_group():
    """Location master data."""


@locations_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Include inactive locations')
@with_appcontext
def list_locations(show_all):
    query = db.session.query(Location)
    if not show_all:
        query = query.filter_by(is_active=True)
    locations = query.order_by(Location.id).all()

    if not locations:
        click.echo("No locations found.")
        return

    click.echo(f"{'ID':<5} {'Code':<12} {'Kind':<12} {'Active':<8} {'Name'}")
    click.echo("=" * 70)
    for loc in locations:
        click.echo(f"{loc.id:<5} {loc.code:<12} {loc.kind:<12} {'Yes' if loc.is_active else 'No':<8} {loc.name}")


@locations_group.command('create')
@click.option('--code', required=True)
@click.option('--name', required=True)
@click.option('--kind', type=click.Choice(LOCATION_KINDS), default='OUTLET', show_default=True)
@with_appcontext
def create_location(code, name, kind):
    location = Location(code=code.strip(), name=name.strip(), kind=kind, is_active=True)
    db.session.add(location)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f"Location code {code!r} already exists")
    click.echo(f"PASS Created location {location.code} (ID: {location.id})")


@click.group('items')
def items_group():
    """Item master data."""


@items_group.command('list')
@click.option('--search', default=None, help='Filter by code, stock number or name')
@click.option('--limit', default=50, show_default=True)
@with_appcontext
def list_items(search, limit):
    query = db.session.query(Item)
    if search:
        like = f"%{search}%"
        query = query.filter(
            db.or_(Item.item_code.ilike(like), Item.stock_no.ilike(like), Item.name.ilike(like))
        )
    items = query.order_by(Item.item_code).limit(limit).all()

    if not items:
        click.echo("No items found.")
        return

    click.echo(f"{'ID':<6} {'Code':<16} {'Stock No':<12} {'Size':<6} {'Dealer':>10} {'Name'}")
    click.echo("=" * 80)
    for item in items:
        click.echo(
            f"{item.id:<6} {item.item_code:<16} {item.stock_no or '':<12} {item.size or '':<6} "
            f"{item.dealer_price_cents / 100:>10.2f} {item.name}"
        )


@items_group.command('create')
@click.option('--item-code', required=True)
@click.option('--name', required=True)
@click.option('--stock-no', default=None)
@click.option('--size', default=None)
@click.option('--brand', default=None)
@click.option('--colour', default=None)
@click.option('--retail-price-cents', type=int, default=0)
@click.option('--dealer-price-cents', type=int, default=0)
@with_appcontext
def create_item(item_code, name, stock_no, size, brand, colour, retail_price_cents, dealer_price_cents):
    if retail_price_cents < 0 or dealer_price_cents < 0:
        raise click.ClickException("Prices cannot be negative")
    item = Item(
        item_code=item_code.strip(),
        name=name.strip(),
        stock_no=stock_no,
        size=size,
        brand=brand,
        colour=colour,
        retail_price_cents=retail_price_cents,
        dealer_price_cents=dealer_price_cents,
    )
    db.session.add(item)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f"Item code {item_code!r} already exists")
    click.echo(f"PASS Created item {item.item_code} (ID: {item.id})")


@click.group('users')
def users_group():
    """User attribution commands."""


@users_group.command('create')
@click.option('--username', required=True)
@click.option('--email', default=None)
@click.option('--display-name', default=None)
@click.option('--location-id', type=int, default=None, help='Home location used as the actor location')
@with_appcontext
def create_user(username, email, display_name, location_id):
    if location_id is not None and db.session.get(Location, location_id) is None:
        raise click.ClickException(f"Location {location_id} not found")
    user = User(
        username=username.strip(),
        email=email,
        display_name=display_name,
        location_id=location_id,
        is_active=True,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f"Username {username!r} already exists")
    click.echo(f"PASS Created user {user.username} (ID: {user.id})")


@users_group.command('issue-token')
@click.option('--username', required=True)
@click.option('--hours', type=int, default=24, show_default=True)
@with_appcontext
def issue_token(username, hours):
    """Print a new bearer token. It is shown once and stored hashed."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        raise click.ClickException(f"User {username!r} not found")
    try:
        record, token = session_service.create_session(db.session, user.id, lifetime=timedelta(hours=hours))
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Token for {user.username} (expires {record.expires_at:%Y-%m-%d %H:%M} UTC):")
    click.echo(token)


@click.group('mirror')
def mirror_group():
    """Legacy transfer_master mirror maintenance."""


@mirror_group.command('rebuild')
@click.option('--transfer-id', type=int, default=None, help='Only this transfer')
@with_appcontext
def rebuild_mirror(transfer_id):
    result = _engine().mirror.rebuild(transfer_id)
    click.echo(f"PASS Mirrored {result['written']} transfer(s), {result['failed']} failed")
    if result["failed"]:
        raise click.ClickException("Some transfers could not be mirrored; see log for details")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(items_group)
    app.cli.add_command(users_group)
    app.cli.add_command(mirror_group)

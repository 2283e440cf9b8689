# Overview: Flask CLI command groups for bootstrap, seeding, and maintenance.

# backend/pantry/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema:
# - python -m flask db upgrade
#   Apply migrations (Flask-Migrate).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenants and spaces:
# - python -m flask orgs create --name "Acme" --slug acme [--require-payment --provider razorpay]
# - python -m flask orgs list
# - python -m flask spaces create --org-id 1 --name "Room 4B" [--qr-code ROOM-4B]
# - python -m flask spaces list --org-id 1
#
# Catalog seeding:
# - python -m flask items add-category --org-id 1 --name Beverages
# - python -m flask items add --org-id 1 --category-id 1 --name Coffee --price-cents 80 [--stock 5] [--free]
# - python -m flask items restock --item-id 1 --quantity 10
#
# Users and tokens:
# - python -m flask users create --org-id 1 --email pantry@acme.test --role PANTRY
# - python -m flask users list [--org-id 1]
# - python -m flask tokens issue --user-id 1 [--days 7]
#   Prints the bearer token once; only its hash is stored.
#
# Maintenance:
# - python -m flask sessions expire
#   Close ACTIVE sessions past their expiry.

import secrets
from datetime import timedelta

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import PantryError
from .models import Category, Item, Organization, Space, User
from .models.auth import VALID_ROLES
from .services import auth_service, catalog_service, session_service


@click.group('system')
def system_group():
    """Schema repair commands."""


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


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()
    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo(f"{'ID':<5} {'Name':<30} {'Slug':<15} {'Active':<8} {'Payment'}")
    for org in orgs:
        payment = org.payment_provider if org.require_payment else "free"
        click.echo(f"{org.id:<5} {org.name:<30} {org.slug:<15} {'Yes' if org.is_active else 'No':<8} {payment}")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--slug', required=True, help='Short unique slug')
@click.option('--require-payment', is_flag=True, help='Orders must be paid before acceptance')
@click.option('--provider', type=click.Choice(['razorpay']), help='Hosted checkout provider')
@click.option('--currency', default='INR', show_default=True)
@with_appcontext
def create_org_cli(name, slug, require_payment, provider, currency):
    """Create a new organization (tenant)."""
    if db.session.query(Organization).filter_by(slug=slug).first():
        click.echo(f"FAIL Organization with slug '{slug}' already exists")
        return
    if require_payment and not provider:
        click.echo("FAIL --require-payment needs --provider")
        return

    org = Organization(
        name=name,
        slug=slug,
        require_payment=require_payment,
        payment_provider=provider,
        currency=currency.upper(),
    )
    db.session.add(org)
    db.session.commit()
    click.echo(f"PASS Created organization: {org.name} (ID: {org.id})")


@click.group('spaces')
def spaces_group():
    """QR-coded spaces within an organization."""


@spaces_group.command('create')
@click.option('--org-id', type=int, required=True)
@click.option('--name', required=True)
@click.option('--qr-code', help='Value printed in the QR code (random if omitted)')
@with_appcontext
def create_space_cli(org_id, name, qr_code):
    if not db.session.get(Organization, org_id):
        click.echo(f"FAIL Organization {org_id} not found")
        return

    space = Space(org_id=org_id, name=name, qr_code=qr_code or secrets.token_urlsafe(12))
    db.session.add(space)
    db.session.commit()
    click.echo(f"PASS Created space {space.name} (ID: {space.id}, QR: {space.qr_code})")


@spaces_group.command('list')
@click.option('--org-id', type=int, required=True)
@with_appcontext
def list_spaces_cli(org_id):
    spaces = db.session.query(Space).filter_by(org_id=org_id).order_by(Space.name).all()
    for space in spaces:
        click.echo(f"{space.id:<5} {space.name:<30} {space.qr_code:<20} {'active' if space.is_active else 'inactive'}")


@click.group('items')
def items_group():
    """Catalog seeding commands."""


@items_group.command('add-category')
@click.option('--org-id', type=int, required=True)
@click.option('--name', required=True)
@click.option('--sort-order', type=int, default=0)
@with_appcontext
def add_category_cli(org_id, name, sort_order):
    category = Category(org_id=org_id, name=name, sort_order=sort_order)
    db.session.add(category)
    db.session.commit()
    click.echo(f"PASS Created category {category.name} (ID: {category.id})")


@items_group.command('add')
@click.option('--org-id', type=int, required=True)
@click.option('--category-id', type=int, required=True)
@click.option('--name', required=True)
@click.option('--price-cents', type=click.IntRange(min=0), default=0)
@click.option('--stock', type=click.IntRange(min=0), help='Omit for unlimited stock')
@click.option('--free', 'is_free', is_flag=True)
@with_appcontext
def add_item_cli(org_id, category_id, name, price_cents, stock, is_free):
    category = db.session.get(Category, category_id)
    if not category or category.org_id != org_id:
        click.echo(f"FAIL Category {category_id} not found in organization {org_id}")
        return

    item = Item(
        org_id=org_id,
        category_id=category_id,
        name=name,
        price_cents=price_cents,
        stock=stock,
        is_free=is_free,
    )
    db.session.add(item)
    db.session.commit()
    click.echo(f"PASS Created item {item.name} (ID: {item.id})")


@items_group.command('restock')
@click.option('--item-id', type=int, required=True)
@click.option('--quantity', type=click.IntRange(min=1), required=True)
@with_appcontext
def restock_cli(item_id, quantity):
    """Add units to a finite-stock item."""
    item = db.session.get(Item, item_id)
    if not item:
        click.echo(f"FAIL Item {item_id} not found")
        return
    if item.stock is None:
        click.echo(f"SKIP {item.name} has unlimited stock")
        return

    catalog_service.restore_stock(item_id, quantity)
    db.session.commit()
    db.session.refresh(item)
    click.echo(f"PASS {item.name} stock is now {item.stock}")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--org-id', type=int, required=True)
@click.option('--email', required=True)
@click.option('--name')
@click.option('--role', type=click.Choice(VALID_ROLES), default='USER', show_default=True)
@with_appcontext
def create_user_cli(org_id, email, name, role):
    if not db.session.get(Organization, org_id):
        click.echo(f"FAIL Organization {org_id} not found")
        return
    if db.session.query(User).filter_by(org_id=org_id, email=email).first():
        click.echo(f"FAIL User {email} already exists in organization {org_id}")
        return

    user = User(org_id=org_id, email=email, name=name, role=role)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('list')
@click.option('--org-id', type=int, help='Filter by organization ID')
@with_appcontext
def list_users(org_id):
    q = db.session.query(User)
    if org_id:
        q = q.filter_by(org_id=org_id)
    for user in q.order_by(User.id).all():
        click.echo(f"{user.id:<5} {user.email:<35} {user.role:<8} org={user.org_id} {'active' if user.is_active else 'inactive'}")


@click.group('tokens')
def tokens_group():
    """Bearer token commands."""


@tokens_group.command('issue')
@click.option('--user-id', type=int, required=True)
@click.option('--days', type=click.IntRange(min=1, max=365), default=7, show_default=True)
@with_appcontext
def issue_token_cli(user_id, days):
    try:
        record, token = auth_service.issue_token(user_id, lifetime=timedelta(days=days))
    except PantryError as exc:
        click.echo(f"FAIL {exc.message}")
        return
    click.echo(f"PASS Token for user {user_id} (expires {record.expires_at}):")
    click.echo(token)


@tokens_group.command('revoke')
@click.argument('token')
@with_appcontext
def revoke_token_cli(token):
    if auth_service.revoke_token(token):
        click.echo("PASS Token revoked")
    else:
        click.echo("FAIL Unknown token")


@click.group('sessions')
def sessions_group():
    """Ordering session maintenance."""


@sessions_group.command('expire')
@with_appcontext
def expire_sessions_cli():
    """Close ACTIVE sessions whose expiry has passed."""
    closed = session_service.expire_stale_sessions()
    click.echo(f"PASS Closed {closed} expired session(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(spaces_group)
    app.cli.add_command(items_group)
    app.cli.add_command(users_group)
    app.cli.add_command(tokens_group)
    app.cli.add_command(sessions_group)

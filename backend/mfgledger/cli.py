# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/mfgledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
#   List all organizations.
# - python -m flask orgs create --name "Acme Corp" --slug acme --admin-user alice
#   Create a new organization with alice as its admin.
# - python -m flask members add --org-id 1 --user-id bob --role manager
#   Add a joined member directly (no invitation step).
#
# Stock maintenance:
# - python -m flask stock recompute --item-id 7
# - python -m flask stock recompute --org-id 1
#   Rebuild cached stock from the ledger.
# - python -m flask stock drift [--org-id 1]
#   Report items whose cached stock disagrees with the ledger (read-only).
#
# Permission inspection:
# - python -m flask perms list [--role manager] [--category LEDGER]
#   List permissions granted by the role table.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import LedgerError
from .models import Organization, Membership, Item, MEMBER_ROLES
from .permissions import (
    get_all_permission_codes,
    get_permission_definition,
    get_permissions_by_category,
    role_has_permission,
)
from .services import stock_service, tenant_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask orgs create' to add a tenant.")


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

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Slug':<20} {'Status':<10} {'Items':<7} {'Members'}")
    click.echo("="*80)

    for org in orgs:
        item_count = db.session.query(Item).filter_by(org_id=org.id).count()
        member_count = db.session.query(Membership).filter_by(org_id=org.id, is_active=True).count()

        click.echo(f"{org.id:<5} {org.name:<30} {org.slug:<20} {org.status:<10} {item_count:<7} {member_count}")

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--slug', default=None, help='URL-safe identifier (derived from name if omitted)')
@click.option('--admin-user', required=True, help='User id of the initial admin')
@with_appcontext
def create_org_cli(name, slug, admin_user):
    """Create a new organization (tenant)."""
    try:
        org, _membership = tenant_service.create_organization(
            name=name,
            slug=slug or tenant_service.slugify(name),
            creator_user_id=admin_user,
        )
    except LedgerError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Slug: {org.slug}, Admin: {admin_user})")


@click.group('members')
def members_group():
    """Membership bootstrap commands."""


@members_group.command('add')
@click.option('--org-id', type=int, required=True)
@click.option('--user-id', required=True)
@click.option('--role', type=click.Choice(MEMBER_ROLES), default='operator', show_default=True)
@with_appcontext
def add_member_cli(org_id, user_id, role):
    """Add a joined member to an organization."""
    try:
        membership = tenant_service.add_member(org_id, user_id, role)
    except LedgerError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Added {membership.user_id} to organization {org_id} as {membership.role}")


@click.group('stock')
def stock_group():
    """Stock cache maintenance commands."""


@stock_group.command('recompute')
@click.option('--item-id', type=int, default=None)
@click.option('--org-id', type=int, default=None)
@with_appcontext
def recompute_cli(item_id, org_id):
    """Rebuild cached stock from the ledger for one item or a whole organization."""
    if (item_id is None) == (org_id is None):
        raise click.UsageError("Pass exactly one of --item-id or --org-id")

    try:
        if item_id is not None:
            items = [stock_service.recompute_stock(item_id)]
        else:
            items = stock_service.recompute_all(org_id)
    except LedgerError as e:
        raise click.ClickException(e.message)

    for item in items:
        click.echo(f"{item.id:<6} {item.sku:<20} {item.current_stock}")
    click.echo(f"PASS Recomputed {len(items)} item(s)")


@stock_group.command('drift')
@click.option('--org-id', type=int, default=None)
@with_appcontext
def drift_cli(org_id):
    """Report items whose cached stock disagrees with the ledger."""
    drift = stock_service.find_drift(org_id)

    if not drift:
        click.echo("PASS No drift detected.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Item':<6} {'Org':<5} {'SKU':<20} {'Cached':<18} {'Ledger':<18} {'Diff'}")
    click.echo("="*80)
    for row in drift:
        click.echo(
            f"{row.item_id:<6} {row.org_id:<5} {row.sku:<20} "
            f"{str(row.cached):<18} {str(row.ledger_sum):<18} {row.difference}"
        )
    click.echo("="*80 + "\n")
    click.echo(f"WARN {len(drift)} item(s) drifted. Run 'python -m flask stock recompute' to repair.")


@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('list')
@click.option('--role', type=click.Choice(MEMBER_ROLES), help='Filter by role name')
@click.option('--category', help='Filter by category')
def list_permissions_cli(role, category):
    """List permissions, optionally filtered by role or category."""
    if category:
        perms = [perm[0] for perm in get_permissions_by_category(category.upper())]
    else:
        perms = get_all_permission_codes()
    if role:
        perms = [code for code in perms if role_has_permission(role, code)]

    click.echo(f"\n{'='*80}")
    click.echo(f"{'Code':<25} {'Name':<30} {'Category'}")
    click.echo("-"*80)

    for code in perms:
        perm = get_permission_definition(code)
        click.echo(f"{perm['code']:<25} {perm['name']:<30} {perm['category']}")

    click.echo(f"\n Total: {len(perms)} permissions\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(members_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(perms_group)

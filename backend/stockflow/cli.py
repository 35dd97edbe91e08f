# Overview: Flask CLI command groups for bootstrap and stock inspection.

# backend/stockflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to stockflow (PowerShell: $env:FLASK_APP="stockflow").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--org "Org Name"] [--branch "Main Branch"]
#   Idempotent bootstrap: creates the default organization and branch.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management:
# - python -m flask orgs list
#   List all organizations with branch counts.
# - python -m flask orgs create --name "Acme Corp" --code "ACME"
#   Create a new organization (tenant).
# - python -m flask orgs add-branch --org-id 1 --name "Downtown" --code "DT"
#   Add a branch to an organization.
#
# Stock inspection:
# - python -m flask stock show --org-id 1 --branch-id 1 [--product-id 3]
#   Physical / allocated / available per product at a branch.
# - python -m flask stock low --org-id 1 --branch-id 1
#   Products at or below their reorder threshold.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import StockflowError
from .models import Organization, Branch
from .services import allocation_service
from .services.tenant_service import resolve_scope


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@click.option('--branch', 'branch_name', default='Main Branch', help='Branch name')
@with_appcontext
def init_system(org_name, org_code, branch_name):
    """
    Initialize the system: a default organization with one branch.

    Safe to run repeatedly; existing rows are reused.
    """
    click.echo("START Initializing system...")

    org = db.session.query(Organization).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created default organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    branch = db.session.query(Branch).filter_by(org_id=org.id).first()
    if not branch:
        branch = Branch(org_id=org.id, name=branch_name)
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created default branch: {branch.name} (ID: {branch.id}, Org: {org.name})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    click.echo("\nDONE Send X-Org-Id and X-Branch-Id headers with API requests:")
    click.echo(f"   X-Org-Id: {org.id}")
    click.echo(f"   X-Branch-Id: {branch.id}")


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


# =============================================================================
# ORGANIZATION MANAGEMENT COMMANDS
# =============================================================================

@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*60)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Branches'}")
    click.echo("="*60)

    for org in orgs:
        branch_count = db.session.query(Branch).filter_by(org_id=org.id).count()
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {branch_count}")

    click.echo("="*60 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant)."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@orgs_group.command('add-branch')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--name', required=True, help='Branch name')
@click.option('--code', help='Branch code (unique within org)')
@with_appcontext
def add_branch_cli(org_id, name, code):
    """Add a branch to an organization."""
    org = db.session.get(Organization, org_id)
    if not org:
        click.echo(f"FAIL Organization ID {org_id} not found")
        return

    existing = db.session.query(Branch).filter_by(org_id=org_id, name=name).first()
    if existing:
        click.echo(f"FAIL Branch '{name}' already exists in this organization")
        return

    branch = Branch(org_id=org_id, name=name, code=code)
    db.session.add(branch)
    db.session.commit()

    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}) in org '{org.name}'")


# =============================================================================
# STOCK INSPECTION COMMANDS
# =============================================================================

@click.group('stock')
def stock_group():
    """Stock inspection commands."""


def _echo_positions(positions):
    click.echo("\n" + "="*72)
    click.echo(f"{'Product':<9} {'Physical':>9} {'Allocated':>10} {'Available':>10} {'Min':>5}  {'Bin':<10} Flags")
    click.echo("="*72)
    for p in positions:
        flags = []
        if p["low_stock"]:
            flags.append("LOW")
        if p["oversold"]:
            flags.append("OVERSOLD")
        click.echo(
            f"{p['product_id']:<9} {p['physical']:>9} {p['allocated']:>10} {p['available']:>10} "
            f"{p['min_stock']:>5}  {p['bin_location'] or '-':<10} {' '.join(flags)}"
        )
    click.echo("="*72 + "\n")


@stock_group.command('show')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--branch-id', type=int, required=True, help='Branch ID')
@click.option('--product-id', type=int, help='Only this product')
@with_appcontext
def show_stock_cli(org_id, branch_id, product_id):
    """Show physical, allocated and available stock at a branch."""
    try:
        scope = resolve_scope(org_id, branch_id)
    except StockflowError as e:
        click.echo(f"FAIL {e.message}")
        return

    positions = allocation_service.branch_positions(scope, [product_id] if product_id else None)
    if not positions:
        click.echo("No products found.")
        return
    _echo_positions(positions)


@stock_group.command('low')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--branch-id', type=int, required=True, help='Branch ID')
@with_appcontext
def low_stock_cli(org_id, branch_id):
    """List products at or below their reorder threshold."""
    try:
        scope = resolve_scope(org_id, branch_id)
    except StockflowError as e:
        click.echo(f"FAIL {e.message}")
        return

    positions = allocation_service.low_stock_positions(scope)
    if not positions:
        click.echo("PASS No low-stock products.")
        return
    _echo_positions(positions)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(stock_group)

# Overview: Flask CLI command groups for bootstrap, inspection, and bulk code checks.

# backend/pharmstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--org "Hospital Name"] [--org-code HOSP]
#   Idempotent bootstrap: creates the default organization and an admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
# - python -m flask orgs create --name "General Hospital" --code "GH"
#
# Users:
# - python -m flask users create --org-id 1 --username pharm1 --email pharm1@hospital.local --password "Password123"
#
# Drug codes:
# - python -m flask drugs check-codes codes.txt --org-id 1
#   Resolve every code in the file (one per line) and print new/existing counts.
# - python -m flask drugs list --org-id 1 [--search para]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, User
from .money import format_price
from .services import code_resolver, drug_service
from .services.auth_service import create_user, PasswordValidationError
from .validation import ValidationError


DEFAULT_ADMIN_PASSWORD = "Password123"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Hospital', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@with_appcontext
def init_system(org_name, org_code):
    """
    Initialize the tracker: default organization and an admin user.

    Default credentials: admin / Password123. Change them in production.
    """
    click.echo("START Initializing pharmacy stock tracker...")

    db.create_all()

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    admin = db.session.query(User).filter_by(org_id=org.id, username="admin").first()
    if not admin:
        admin = create_user("admin", "admin@pharmstock.local", DEFAULT_ADMIN_PASSWORD, org.id)
        click.echo(f"PASS Created user: admin (ID: {admin.id})")
    else:
        click.echo("PASS User admin already exists")

    click.echo("\nDONE Login: admin / " + DEFAULT_ADMIN_PASSWORD)


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


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id.asc()).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Users'}")
    click.echo("="*70)

    for org in orgs:
        user_count = db.session.query(User).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {user_count}")

    click.echo("="*70 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant)."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        raise click.ClickException(f"Organization with code '{code}' already exists")

    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_user_cli(org_id, username, email, password):
    """Create a user inside an organization."""
    try:
        user = create_user(username, email, password, org_id)
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")
    except ValueError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created user: {user.username} (ID: {user.id}, Org: {org_id})")


@click.group('drugs')
def drugs_group():
    """Drug code inspection commands."""


@drugs_group.command('check-codes')
@click.argument('codes_file', type=click.File('r'))
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def check_codes_cli(codes_file, org_id):
    """Resolve every code in CODES_FILE (one per line, blank lines ignored)."""
    codes = [line.strip() for line in codes_file if line.strip()]

    try:
        bulk = code_resolver.resolve_bulk(org_id, codes)
    except ValidationError as e:
        raise click.ClickException(f"Invalid codes: {e}")

    for result in bulk.results:
        if result.exists:
            price_range = result.summary.price_range
            click.echo(
                f"EXISTS {result.code:<20} {result.variant_count} variant(s) "
                f"{format_price(price_range.min_cents)}-{format_price(price_range.max_cents)}"
            )
        else:
            click.echo(f"NEW    {result.code}")

    click.echo(
        f"\nTotal: {bulk.total}  New: {bulk.new_codes}  "
        f"Existing: {bulk.existing_codes}  Variants: {bulk.total_variants}"
    )


@drugs_group.command('list')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--search', default=None, help='Filter by name, generic name or code')
@with_appcontext
def list_drugs_cli(org_id, search):
    """List active drug variants ordered by code and price."""
    items = drug_service.list_drugs(org_id=org_id, search=search)
    if not items:
        click.echo("No drugs found.")
        return

    click.echo(f"{'ID':<6} {'Code':<20} {'Price':>12}  {'Name'}")
    for d in items:
        click.echo(
            f"{d['id']:<6} {d['hospital_drug_code']:<20} "
            f"{format_price(d['price_per_box_cents']):>12}  {d['name']}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(users_group)
    app.cli.add_command(drugs_group)

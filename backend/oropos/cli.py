# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/oropos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--tenant "Business Name"]
#   Idempotent bootstrap: default tenant, location and owner/manager/cashier logins.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Employees:
# - python -m flask employees list [--tenant-id 1]
# - python -m flask employees create --tenant-id 1 --username jo --password "Password123" --role CASHIER [--can-refund]
#
# Shifts:
# - python -m flask shifts list [--open] [--limit 20]
#   List recent cash-drawer sessions.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import CashDrawerSession, Employee, Location, Tenant
from .models.auth import ROLES, ROLE_CASHIER, ROLE_MANAGER, ROLE_OWNER
from .services.auth_service import create_employee, PasswordValidationError
from .services.register_service import compute_expected_cash

DEFAULT_PASSWORD = "Password123"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--tenant', 'tenant_name', default='Default Business', help='Business name')
@click.option('--tenant-code', default='DEFAULT', help='Business code')
@click.option('--tax-rate-bps', default=0, type=int, help='Location tax rate in basis points')
@with_appcontext
def init_system(tenant_name, tenant_code, tax_rate_bps):
    """
    Create the default tenant, a location, and one login per role.

    All passwords default to "Password123". Change them before real use.
    """
    click.echo("START Initializing Oro POS...")

    tenant = db.session.query(Tenant).filter_by(code=tenant_code).first()
    if not tenant:
        tenant = Tenant(name=tenant_name, code=tenant_code, is_active=True)
        db.session.add(tenant)
        db.session.commit()
        click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")
    else:
        click.echo(f"PASS Using existing tenant: {tenant.name} (ID: {tenant.id})")

    location = db.session.query(Location).filter_by(tenant_id=tenant.id).first()
    if not location:
        location = Location(tenant_id=tenant.id, name="Main Location", code="MAIN", tax_rate_bps=tax_rate_bps)
        db.session.add(location)
        db.session.commit()
        click.echo(f"PASS Created location: {location.name} (ID: {location.id})")

    for username, role, can_refund in (
        ("owner", ROLE_OWNER, True),
        ("manager", ROLE_MANAGER, True),
        ("cashier", ROLE_CASHIER, False),
    ):
        existing = db.session.query(Employee).filter_by(tenant_id=tenant.id, username=username).first()
        if existing:
            click.echo(f"SKIP Employee '{username}' already exists")
            continue
        create_employee(
            tenant.id,
            username,
            DEFAULT_PASSWORD,
            name=username.title(),
            role=role,
            location_id=location.id,
            can_refund=can_refund,
        )
        click.echo(f"PASS Created {role} login: {username}")

    click.echo("DONE Oro POS initialized")


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
    click.echo("BUILD Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset complete")


@click.group('employees')
def employees_group():
    """Employee inspection and bootstrap."""


@employees_group.command('list')
@click.option('--tenant-id', type=int, help='Filter by tenant')
@with_appcontext
def list_employees_cli(tenant_id):
    query = db.session.query(Employee)
    if tenant_id:
        query = query.filter_by(tenant_id=tenant_id)
    employees = query.order_by(Employee.tenant_id, Employee.username).all()

    if not employees:
        click.echo("No employees found.")
        return

    click.echo(f"{'ID':<5} {'Tenant':<7} {'Username':<20} {'Role':<9} {'Refund':<7} {'Active'}")
    for e in employees:
        click.echo(
            f"{e.id:<5} {e.tenant_id:<7} {e.username:<20} {e.role:<9} "
            f"{'yes' if e.has_refund_permission else 'no':<7} {'yes' if e.is_active else 'no'}"
        )


@employees_group.command('create')
@click.option('--tenant-id', type=int, required=True)
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--name', default=None)
@click.option('--role', type=click.Choice(ROLES, case_sensitive=False), default=ROLE_CASHIER)
@click.option('--location-id', type=int, default=None)
@click.option('--can-refund', is_flag=True, help='Grant refund permission')
@with_appcontext
def create_employee_cli(tenant_id, username, password, name, role, location_id, can_refund):
    try:
        employee = create_employee(
            tenant_id,
            username,
            password,
            name=name,
            role=role,
            location_id=location_id,
            can_refund=can_refund,
        )
    except (ValueError, PasswordValidationError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created employee {employee.username} (ID: {employee.id}, role {employee.role})")


@click.group('shifts')
def shifts_group():
    """Cash-drawer session inspection."""


@shifts_group.command('list')
@click.option('--open', 'only_open', is_flag=True, help='Only open shifts')
@click.option('--limit', type=int, default=20, help='Max sessions to show')
@with_appcontext
def list_shifts_cli(only_open, limit):
    """
    Example:
        flask shifts list
        flask shifts list --open
    """
    query = db.session.query(CashDrawerSession)
    if only_open:
        query = query.filter(CashDrawerSession.end_time.is_(None))
    sessions = query.order_by(CashDrawerSession.start_time.desc()).limit(limit).all()

    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<5} {'Location':<9} {'Drawer':<10} {'Employee':<15} {'Started':<20} {'Expected':<12} {'Closing'}")
    click.echo("=" * 100)

    for session in sessions:
        employee = db.session.get(Employee, session.employee_id)
        expected = compute_expected_cash(session)["expected_cash_cents"]
        closing = "-" if session.closing_cash_cents is None else f"${session.closing_cash_cents / 100:.2f}"
        click.echo(
            f"{session.id:<5} {session.location_id:<9} {session.drawer_id:<10} "
            f"{(employee.username if employee else 'Unknown'):<15} "
            f"{session.start_time.strftime('%Y-%m-%d %H:%M'):<20} ${expected / 100:<11.2f} {closing}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(employees_group)
    app.cli.add_command(shifts_group)

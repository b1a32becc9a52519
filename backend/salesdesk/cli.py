# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/salesdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to the factory (PowerShell: $env:FLASK_APP="salesdesk:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for managed schemas).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Accounts and users:
# - python -m flask accounts create --name "Fresh Fish Ltd"
# - python -m flask accounts list
# - python -m flask users create --account-id 1 --username admin --password "Password123" --role admin
# - python -m flask users list [--account-id 1]
#
# Review queue:
# - python -m flask audits pending [--account-id 1]
#   List change requests waiting for an admin decision.

import click
from flask.cli import with_appcontext

from .errors import SalesDeskError
from .extensions import db
from .models import Account, User
from .permissions import ROLES
from .services import audit_service, auth_service
from .validation import grams_to_kg


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
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

    click.echo("PASS Database reset complete. Create an account with 'python -m flask accounts create'.")


@click.group('accounts')
def accounts_group():
    """Account management."""


@accounts_group.command('create')
@click.option('--name', prompt=True, help='Business name')
@with_appcontext
def create_account_cli(name):
    try:
        account = auth_service.create_account(name)
    except SalesDeskError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created account: {account.name} (ID: {account.id})")


@accounts_group.command('list')
@with_appcontext
def list_accounts():
    accounts = db.session.query(Account).order_by(Account.id).all()
    if not accounts:
        click.echo("No accounts found.")
        return
    for account in accounts:
        status = "active" if account.is_active else "inactive"
        click.echo(f"{account.id:<5} {account.name:<40} {status}")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--account-id', type=int, required=True, help='Owning account ID')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), default='worker', show_default=True, help='Role')
@with_appcontext
def create_user_cli(account_id, username, password, role):
    """Create a user. Passwords are hashed with bcrypt."""
    try:
        user = auth_service.create_user(account_id, username, password, role)
    except SalesDeskError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user: {user.username} with role '{user.role}' in account {account_id}")


@users_group.command('list')
@click.option('--account-id', type=int, help='Filter by account ID')
@with_appcontext
def list_users(account_id):
    """List users with their roles."""
    query = db.session.query(User)
    if account_id:
        query = query.filter_by(account_id=account_id)
    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*60)
    click.echo(f"{'ID':<5} {'Acct':<5} {'Username':<24} {'Role':<8} {'Active'}")
    click.echo("="*60)
    for user in users:
        click.echo(f"{user.id:<5} {user.account_id:<5} {user.username:<24} {user.role:<8} {user.is_active}")


@click.group('audits')
def audits_group():
    """Sale change request review queue."""


@audits_group.command('pending')
@click.option('--account-id', type=int, help='Filter by account ID')
@with_appcontext
def list_pending(account_id):
    """List pending change requests, oldest first."""
    audits = audit_service.list_pending(account_id)
    if not audits:
        click.echo("No pending change requests.")
        return

    click.echo(f"{'ID':<6} {'Sale':<6} {'Type':<16} {'Boxes':>6} {'Kg':>10}  Reason")
    for audit in audits:
        click.echo(
            f"{audit.id:<6} {audit.sale_id:<6} {audit.audit_type:<16} "
            f"{audit.boxes_change:>6} {grams_to_kg(audit.grams_change):>10}  {audit.reason}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(users_group)
    app.cli.add_command(audits_group)

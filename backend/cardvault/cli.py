# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/cardvault/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use "flask db upgrade" in production).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and auth provider.
# - python -m flask users create --email admin@example.com --password "Password123!" --admin
#   Create a local user (prompts if options are omitted).
#
# Maintenance:
# - python -m flask balances recalculate [--gift-card-id 7]
#   Recompute cached gift card balances from their active transactions.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import ServiceError
from .models import User
from .models.users import ROLE_ADMIN, ROLE_USER
from .services import balance_service
from .services.auth_service import create_user, PasswordValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables (idempotent)."""
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

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--first-name', default='', help='First name')
@click.option('--last-name', default='', help='Last name')
@click.option('--admin', 'is_admin', is_flag=True, help='Create the user as admin')
@with_appcontext
def create_user_cli(email, password, first_name, last_name, is_admin):
    """
    Create a new local user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=ROLE_ADMIN if is_admin else ROLE_USER,
        )
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        raise SystemExit(1)
    except ServiceError as e:
        click.echo(f"FAIL Failed to create user: {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{user.role}'")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Email':<40} {'Role':<8} {'Provider':<10} {'Name'}")
    click.echo("="*90)

    for user in users:
        name = f"{user.first_name} {user.last_name}".strip() or "-"
        click.echo(f"{user.id:<5} {user.email:<40} {user.role:<8} {user.auth_provider:<10} {name}")

    click.echo("="*90 + "\n")


@click.group('balances')
def balances_group():
    """Gift card balance maintenance."""


@balances_group.command('recalculate')
@click.option('--gift-card-id', type=int, default=None, help='Only this gift card')
@with_appcontext
def recalculate_balances(gift_card_id):
    """
    Recompute cached gift card balances from active transactions.

    Safe to run at any time; only drifted balances change.
    """
    try:
        drifted = balance_service.recalculate_all(gift_card_id)
    except ServiceError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    if not drifted:
        click.echo("PASS All balances consistent.")
        return

    for card_id, old, new in drifted:
        click.echo(f"FIXED gift card {card_id}: {old / 100:.2f} -> {new / 100:.2f}")
    click.echo(f"PASS Recalculated {len(drifted)} balance(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(balances_group)

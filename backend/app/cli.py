# Overview: Flask CLI command groups for bootstrap and user provisioning.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@kanban.local]
#   Idempotent bootstrap: creates tables and a default global admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User provisioning:
# - python -m flask users create --email dev@kanban.local --name "Dev" --role MEMBER
#   Create a user (prompts if options are omitted).
# - python -m flask users list
#   List all users with global role and active status.
# - python -m flask users token dev@kanban.local
#   Issue an API token for the user (shown once).
# - python -m flask users revoke-tokens dev@kanban.local
#   Revoke every live API token for the user.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import ROLE_ADMIN, ROLE_MEMBER
from .services.access_service import issue_token, revoke_tokens


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@kanban.local', help='Email of the default global admin')
@click.option('--admin-name', default='Admin', help='Display name of the default global admin')
@with_appcontext
def init_system(admin_email, admin_name):
    """
    Initialize the kanban backend: schema and a default global admin.

    Safe to re-run; an existing admin is left untouched.
    """
    click.echo("START Initializing kanban backend...")

    db.create_all()
    click.echo("PASS Tables created")

    admin_email = admin_email.strip().lower()
    admin = db.session.query(User).filter_by(email=admin_email).first()
    if admin:
        click.echo(f"PASS Using existing admin: {admin.email} (ID: {admin.id})")
    else:
        admin = User(email=admin_email, name=admin_name, role=ROLE_ADMIN, is_active=True)
        db.session.add(admin)
        db.session.commit()
        click.echo(f"PASS Created admin: {admin.email} (ID: {admin.id})")

    click.echo("")
    click.echo("Get a bearer token with:")
    click.echo(f"   python -m flask users token {admin.email}")


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


@click.group('users')
def users_group():
    """User provisioning commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', prompt=True, help='Display name')
@click.option('--role', type=click.Choice([ROLE_ADMIN, ROLE_MEMBER]), default=ROLE_MEMBER, help='Global role')
@with_appcontext
def create_user_cli(email, name, role):
    """Create a user account."""
    email = email.strip().lower()
    if not email:
        click.echo("FAIL Email is required")
        return

    if db.session.query(User).filter_by(email=email).first():
        click.echo(f"FAIL User '{email}' already exists")
        return

    user = User(email=email, name=name.strip() or None, role=role, is_active=True)
    db.session.add(user)
    db.session.commit()

    click.echo(f"PASS Created user: {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their global roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<32} {'Name':<20} {'Role':<8} {'Active'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<32} {(user.name or ''):<20} {user.role:<8} {active_str}")

    click.echo("="*80 + "\n")


@users_group.command('token')
@click.argument('email')
@with_appcontext
def user_token(email):
    """Issue an API token for EMAIL and print it (shown once)."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"User '{email}' not found")
    if not user.is_active:
        raise click.ClickException(f"User '{email}' is deactivated")

    click.echo(issue_token(user.id))


@users_group.command('revoke-tokens')
@click.argument('email')
@with_appcontext
def revoke_user_tokens(email):
    """Revoke every live API token for EMAIL."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"User '{email}' not found")

    count = revoke_tokens(user.id)
    click.echo(f"PASS Revoked {count} token(s) for {user.email}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)

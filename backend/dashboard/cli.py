# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/dashboard/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP=dashboard and JWT_SECRET.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (use "flask db upgrade" for migrated databases).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system check-config
#   Verify signing secret and database settings.
#
# User inspection/bootstrap:
# - python -m flask users create-superadmin --name "Owner" --email owner@example.com --password "Password123!"
#   Create the single superadmin with the Super Admin system role
#   (defaults from SUPERADMIN_NAME / SUPERADMIN_EMAIL / SUPERADMIN_PASSWORD).
# - python -m flask users list
#   List all users with role, legacy tag and active status.
# - python -m flask users unmigrated
#   Count and list users still relying on a legacy role tag.
# - python -m flask users migrate-legacy --dry-run | --apply
#   Assign every legacy-only user the seeded Role for their tag.
# - python -m flask users revoke-sessions owner@example.com
#   Invalidate every outstanding credential for a user.
#
# Role inspection/bootstrap:
# - python -m flask roles list
#   List roles with flags and holder counts.
# - python -m flask roles seed
#   Create one Role per legacy tier (idempotent).
# - python -m flask roles check owner@example.com Clients Delete
#   Check whether a user has a module/action permission.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import ApiError
from .extensions import db
from .models import User
from .services import auth_service, session_service, permission_service, role_service


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

    click.echo("PASS Database reset complete. Run 'python -m flask users create-superadmin' next.")


@system_group.command('check-config')
@with_appcontext
def check_config():
    """Report configuration problems without printing secrets."""
    secret = current_app.config.get("JWT_SECRET") or ""
    min_length = current_app.config.get("JWT_SECRET_MIN_LENGTH", 32)

    if len(secret) >= min_length:
        click.echo(f"PASS JWT_SECRET set ({len(secret)} chars)")
    else:
        click.echo(f"WARN JWT_SECRET shorter than {min_length} chars")

    click.echo(f"INFO JWT algorithm: {current_app.config.get('JWT_ALGORITHM')}")
    click.echo(f"INFO Credential lifetime: {current_app.config.get('JWT_EXPIRES_IN')}")
    click.echo(f"INFO Database: {db.engine.url.render_as_string(hide_password=True)}")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-superadmin')
@click.option('--name', envvar='SUPERADMIN_NAME', default='Super Admin', show_default=True)
@click.option('--email', envvar='SUPERADMIN_EMAIL', prompt=True)
@click.option('--password', envvar='SUPERADMIN_PASSWORD', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_superadmin(name, email, password):
    """Create the single superadmin account."""
    try:
        user = auth_service.bootstrap_superadmin(name=name, email=email, password=password)
    except ApiError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    click.echo(f"PASS Superadmin created: id={user.id} email={user.email}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Name':<20} {'Email':<30} {'Active':<8} {'Legacy':<12} {'Role'}")
    click.echo("="*100)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        role_str = user.role.name if user.role else "none"
        if user.role and not user.role.is_active:
            role_str += " (inactive)"
        click.echo(f"{user.id:<5} {user.name[:20]:<20} {user.email[:30]:<30} {active_str:<8} {user.legacy_role:<12} {role_str}")

    click.echo("="*100 + "\n")


@users_group.command('unmigrated')
@with_appcontext
def list_unmigrated():
    """Users still relying on a legacy role tag."""
    count = permission_service.count_unmigrated_users()
    if count == 0:
        click.echo("PASS Every user has a Role assigned. Legacy fallbacks can be retired.")
        return

    click.echo(f"WARN {count} user(s) have no Role assigned:")
    for legacy_role, n in sorted(permission_service.unmigrated_breakdown().items()):
        click.echo(f"  {legacy_role:<12} {n}")


@users_group.command('migrate-legacy')
@click.option('--dry-run/--apply', default=True, help='Preview (default) or apply the assignment')
@with_appcontext
def migrate_legacy(dry_run):
    """Assign each legacy-only user the seeded Role for their tag."""
    planned = role_service.migrate_legacy_users(dry_run=dry_run)
    if not planned:
        click.echo("PASS Nothing to migrate (run 'flask roles seed' if roles are missing).")
        return

    verb = "Would assign" if dry_run else "Assigned"
    for user, role_name in planned:
        click.echo(f"{verb} '{role_name}' to {user.email} (legacy: {user.legacy_role})")
    click.echo(f"{'INFO' if dry_run else 'PASS'} {len(planned)} user(s)")


@users_group.command('revoke-sessions')
@click.argument('email')
@with_appcontext
def revoke_sessions(email):
    """Invalidate every outstanding credential for a user."""
    user = db.session.query(User).filter_by(email=auth_service.normalize_email(email)).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        raise SystemExit(1)

    token_version = session_service.revoke_all_user_sessions(user.id)
    permission_service.log_security_event(
        user_id=user.id,
        event_type="SESSIONS_REVOKED",
        success=True,
        action="CLI",
        reason=f"Revoked from CLI, token_version={token_version}",
    )
    click.echo(f"PASS Sessions revoked for {user.email} (token_version={token_version})")


@click.group('roles')
def roles_group():
    """Role inspection and bootstrap commands."""


@roles_group.command('list')
@with_appcontext
def list_roles():
    """List roles with flags and holder counts."""
    rows = role_service.list_roles()
    if not rows:
        click.echo("No roles found.")
        return

    click.echo(f"{'ID':<5} {'Name':<24} {'Full':<6} {'Team':<6} {'System':<8} {'Active':<8} {'Users'}")
    for role, count in rows:
        flags = [
            "Yes" if role.full_access else "No",
            "Yes" if role.is_team_manager else "No",
            "Yes" if role.is_system else "No",
            "Yes" if role.is_active else "No",
        ]
        click.echo(f"{role.id:<5} {role.name[:24]:<24} {flags[0]:<6} {flags[1]:<6} {flags[2]:<8} {flags[3]:<8} {count}")


@roles_group.command('seed')
@with_appcontext
def seed_roles():
    """Create one Role per legacy tier."""
    created = role_service.seed_default_roles()
    if not created:
        click.echo("PASS All default roles already exist.")
        return
    for role in created:
        click.echo(f"PASS Created role '{role.name}'")


@roles_group.command('check')
@click.argument('email')
@click.argument('module')
@click.argument('action')
@with_appcontext
def check_permission(email, module, action):
    """Check whether a user has a module/action permission."""
    user = db.session.query(User).filter_by(email=auth_service.normalize_email(email)).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        raise SystemExit(1)

    if permission_service.has_permission(user, module, action):
        click.echo(f"PASS {user.email} has {module}:{action}")
    else:
        click.echo(f"FAIL {user.email} lacks {module}:{action}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(roles_group)

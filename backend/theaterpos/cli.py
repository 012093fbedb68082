# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/theaterpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv and set DATABASE_URL.
# - Either set FLASK_APP=theaterpos and use: python -m flask <group> <command>
#   or use the installed script: theaterpos-admin <group> <command>
#
# System bootstrap:
# - theaterpos-admin system init-db
#   Create all tables (development; production uses flask db upgrade).
# - theaterpos-admin system seed-super-admin --username root --email root@example.com
#   Create the platform super admin (prompts for the password).
#
# Theater management:
# - theaterpos-admin theaters create --name "PVR Downtown" --code PVRDT
#   Provision a theater: page catalog, default roles, default settings.
# - theaterpos-admin theaters list
# - theaterpos-admin theaters ensure-defaults --theater-id 1
#   Re-create any missing catalog document, default role or default setting.
#
# Users:
# - theaterpos-admin users list [--theater-id 1]
# - theaterpos-admin users unlock <username>
#   Clear the failed-login counter and lock.
#
# Page access repair:
# - theaterpos-admin pages purge-null
#   Remove null/empty page entries from every catalog and role.
# - theaterpos-admin pages drop-legacy-index
#   Drop the obsolete page-name index if an old deployment still has it.
#
# Stock ledger:
# - theaterpos-admin stock migrate-legacy
#   Rewrite every monthly row whose lots still use legacy field names.
# - theaterpos-admin stock import-legacy export.json [--product-id 7]
#   Import monthly-stock documents (legacy or current names).
# - theaterpos-admin stock export --product-id 7 [--year 2024]
#   Print monthly documents using current field names only.
#
# Maintenance:
# - theaterpos-admin maintenance purge-otps
# - theaterpos-admin maintenance purge-tokens
# - theaterpos-admin maintenance cleanup-security-events --retention-days 90
#
# Exit codes: 0 success, 1 configuration missing, 2 datastore error.

import json
import sys
from functools import wraps

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import SQLAlchemyError

from .config import ConfigurationError
from .errors import ServiceError
from .extensions import db
from .models import MonthlyStock, User
from .services import (
    auth_service,
    login_throttle_service,
    maintenance_service,
    page_access_service,
    stock_ledger_service,
    stock_legacy,
    theater_service,
)


EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_DATASTORE = 2


def datastore_command(f):
    """Map datastore failures to exit code 2 and service errors to exit code 1."""
    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except SQLAlchemyError as exc:
            db.session.rollback()
            click.echo(f"FAIL Datastore error: {exc.__class__.__name__}: {exc}", err=True)
            raise click.exceptions.Exit(EXIT_DATASTORE)
        except ServiceError as exc:
            db.session.rollback()
            click.echo(f"FAIL {exc.message}", err=True)
            raise click.exceptions.Exit(1)
    return decorated


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
@datastore_command
def init_db():
    """Create every table that does not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('seed-super-admin')
@click.option('--username', required=True)
@click.option('--email', required=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
@datastore_command
def seed_super_admin(username, email, password):
    """Create the platform super admin if it does not exist."""
    user, created = auth_service.ensure_super_admin(username, email, password)
    if created:
        click.echo(f"PASS Created super admin: {user.username} (ID: {user.id})")
    else:
        click.echo(f"WARN  Super admin '{user.username}' already exists, skipping...")


# =============================================================================
# THEATERS
# =============================================================================

@click.group('theaters')
def theaters_group():
    """Theater (tenant) management commands."""


@theaters_group.command('create')
@click.option('--name', required=True, help='Theater name')
@click.option('--code', default=None, help='Short code (unique)')
@with_appcontext
@datastore_command
def create_theater_cli(name, code):
    """Provision a theater with its catalog, default roles and settings."""
    theater = theater_service.provision_theater(name, code)
    click.echo(f"PASS Created theater: {theater.name} (ID: {theater.id}, Code: {theater.code or '-'})")


@theaters_group.command('list')
@with_appcontext
@datastore_command
def list_theaters_cli():
    """List all theaters."""
    theaters = theater_service.list_theaters()
    if not theaters:
        click.echo("No theaters found.")
        return

    click.echo("\n" + "=" * 70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<12} {'Active':<8} {'Users'}")
    click.echo("=" * 70)
    for theater in theaters:
        user_count = db.session.query(User).filter_by(theater_id=theater.id).count()
        active_str = "Yes" if theater.is_active else "No"
        click.echo(f"{theater.id:<5} {theater.name:<30} {theater.code or '-':<12} {active_str:<8} {user_count}")
    click.echo("=" * 70 + "\n")


@theaters_group.command('ensure-defaults')
@click.option('--theater-id', type=int, required=True)
@with_appcontext
@datastore_command
def ensure_defaults_cli(theater_id):
    """Re-create any missing default for a theater."""
    theater_service.get_theater(theater_id)
    created = theater_service.ensure_defaults(theater_id)
    db.session.commit()
    click.echo(
        f"PASS Theater {theater_id}: {created['page_access']} catalog, "
        f"{created['roles']} role(s), {created['settings']} setting(s) created"
    )


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection commands."""


@users_group.command('list')
@click.option('--theater-id', type=int, default=None)
@with_appcontext
@datastore_command
def list_users_cli(theater_id):
    users = auth_service.list_users(theater_id=theater_id)
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        locked = " LOCKED" if login_throttle_service.is_locked(user) else ""
        click.echo(
            f"{user.id:<5} {user.username:<24} {user.role:<14} "
            f"theater={user.theater_id or '-'} role_id={user.role_id or '-'} {user.status}{locked}"
        )


@users_group.command('unlock')
@click.argument('username')
@with_appcontext
@datastore_command
def unlock_user_cli(username):
    """Clear a user's failed-login counter and lock."""
    user = db.session.query(User).filter_by(username=auth_service.normalize_username(username)).first()
    if user is None:
        click.echo(f"FAIL User '{username}' not found", err=True)
        raise click.exceptions.Exit(1)
    login_throttle_service.reset_login_attempts(user)
    db.session.commit()
    click.echo(f"PASS Unlocked {user.username}")


# =============================================================================
# PAGE ACCESS
# =============================================================================

@click.group('pages')
def pages_group():
    """Page-access catalog repair commands."""


@pages_group.command('purge-null')
@with_appcontext
@datastore_command
def purge_null_pages_cli():
    """Remove null/empty page entries from every catalog and role."""
    docs, roles = page_access_service.purge_null_pages()
    click.echo(f"PASS Cleaned {docs} catalog document(s) and {roles} role(s)")


@pages_group.command('drop-legacy-index')
@with_appcontext
@datastore_command
def drop_legacy_index_cli():
    """Drop the obsolete page-name index if present."""
    dropped = maintenance_service.drop_legacy_page_name_index()
    if dropped:
        click.echo(f"PASS Dropped index(es): {', '.join(dropped)}")
    else:
        click.echo("PASS No legacy page-name index found")


# =============================================================================
# STOCK LEDGER
# =============================================================================

@click.group('stock')
def stock_group():
    """Monthly stock ledger commands."""


@stock_group.command('migrate-legacy')
@with_appcontext
@datastore_command
def migrate_legacy_cli():
    """Rewrite rows whose lots use legacy field names."""
    changed = stock_ledger_service.migrate_legacy_rows()
    click.echo(f"PASS Migrated {changed} monthly stock row(s)")


@stock_group.command('import-legacy')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--product-id', type=int, default=None, help='Import every document into this product')
@with_appcontext
@datastore_command
def import_legacy_cli(path, product_id):
    """Import a JSON array (or a single object) of monthly-stock documents."""
    with open(path, encoding="utf-8") as fh:
        try:
            payload = json.load(fh)
        except json.JSONDecodeError as exc:
            click.echo(f"FAIL {path} is not valid JSON: {exc}", err=True)
            raise click.exceptions.Exit(1)
    documents = payload if isinstance(payload, list) else [payload]
    written = stock_ledger_service.import_documents(documents, product_id=product_id)
    click.echo(f"PASS Imported {written} monthly stock document(s)")


@stock_group.command('export')
@click.option('--product-id', type=int, required=True)
@click.option('--year', type=int, default=None)
@with_appcontext
@datastore_command
def export_stock_cli(product_id, year):
    """Print monthly documents as JSON, current field names only."""
    theater_service.get_product(product_id)
    query = db.session.query(MonthlyStock).filter(MonthlyStock.product_id == product_id)
    if year is not None:
        query = query.filter(MonthlyStock.year == year)
    rows = query.order_by(MonthlyStock.year.asc(), MonthlyStock.month.asc()).all()
    click.echo(json.dumps([stock_legacy.to_document(row) for row in rows], indent=2))


# =============================================================================
# MAINTENANCE
# =============================================================================

@click.group('maintenance')
def maintenance_group():
    """Maintenance and cleanup commands."""


@maintenance_group.command('purge-otps')
@with_appcontext
@datastore_command
def purge_otps_cli():
    """Delete expired OTP records (the reaper does this continuously)."""
    deleted = maintenance_service.purge_expired_otps()
    click.echo(f"PASS Deleted {deleted} expired OTP record(s)")


@maintenance_group.command('purge-tokens')
@with_appcontext
@datastore_command
def purge_tokens_cli():
    deleted = maintenance_service.purge_expired_tokens()
    click.echo(f"PASS Deleted {deleted} expired session token(s)")


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
@datastore_command
def cleanup_security_events_cli(retention_days):
    """Delete security events older than the retention window."""
    deleted = maintenance_service.cleanup_security_events(retention_days=retention_days)
    click.echo(f"PASS Deleted {deleted} security event(s) older than {retention_days} days")


COMMAND_GROUPS = (
    system_group,
    theaters_group,
    users_group,
    pages_group,
    stock_group,
    maintenance_group,
)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    for group in COMMAND_GROUPS:
        app.cli.add_command(group)


@click.group('theaterpos-admin')
def admin_cli():
    """Theater POS administration."""


for _group in COMMAND_GROUPS:
    admin_cli.add_command(_group)


def run(argv=None, app_factory=None):
    """
    Entry point of the theaterpos-admin script.

    Exits 1 when configuration is missing and 2 when the datastore fails.
    """
    if app_factory is None:
        from . import create_app as app_factory

    try:
        app = app_factory()
    except ConfigurationError as exc:
        click.echo(f"FAIL Configuration error: {exc}", err=True)
        sys.exit(EXIT_CONFIG)

    with app.app_context():
        try:
            # Non-standalone mode returns the exit code of ctx.exit() and Exit
            result = admin_cli.main(args=argv, prog_name="theaterpos-admin", standalone_mode=False)
        except click.ClickException as exc:
            exc.show()
            sys.exit(exc.exit_code)
        except click.exceptions.Abort:
            click.echo("Aborted!", err=True)
            sys.exit(1)
        except SQLAlchemyError as exc:
            click.echo(f"FAIL Datastore error: {exc}", err=True)
            sys.exit(EXIT_DATASTORE)
    sys.exit(result if isinstance(result, int) else EXIT_OK)

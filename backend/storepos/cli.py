# Overview: Flask CLI command groups for bootstrap and invoice counter maintenance.

# backend/storepos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent: create tables, the settings row and the invoice counter.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Invoice counter:
# - python -m flask invoices init-counter
#   Seed the counter from existing invoice numbers (no-op if it exists).
# - python -m flask invoices status
#   Show the next invoice number and the number of recorded sales.

import click
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .services import sequence_service, settings_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create tables, default store settings and the invoice counter."""
    click.echo("START Initializing store database...")

    db.create_all()
    click.echo("PASS Tables created")

    settings = settings_service.get_store_settings()
    click.echo(f"PASS Store settings: {settings.store_name} ({settings.currency})")

    try:
        current = sequence_service.initialize_counter()
    except PosError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Invoice counter at {current}")


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


@click.group('invoices')
def invoices_group():
    """Invoice number counter maintenance."""


@invoices_group.command('init-counter')
@with_appcontext
def init_counter():
    """
    Seed the invoice counter from existing sales.

    Uses the highest numeric suffix among existing invoice numbers, or the
    sale count when none parse. Safe to run repeatedly.
    """
    try:
        current = sequence_service.initialize_counter()
    except PosError as e:
        raise click.ClickException(e.message)

    status = sequence_service.get_counter_status()
    click.echo(f"PASS Invoice counter at {current}")
    click.echo(f"     Next invoice number: {status['next_invoice_number']}")


@invoices_group.command('status')
@with_appcontext
def counter_status():
    """Show the next invoice number without reserving it."""
    try:
        status = sequence_service.get_counter_status()
    except PosError as e:
        raise click.ClickException(e.message)

    click.echo(f"Next invoice number: {status['next_invoice_number']}")
    click.echo(f"Total sales:         {status['total_sales_count']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(invoices_group)

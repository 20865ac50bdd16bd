# Overview: Flask CLI command groups for bootstrap, backup and ledger maintenance.

# backend/consignbook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Backup:
# - python -m flask backup export --out backup.json
#   Write the full backup document (stdout when --out is omitted).
# - python -m flask backup import backup.json
#   Upsert every record of a backup document.
#
# Ledger:
# - python -m flask ledger migrate-legacy [--keep-tables]
#   Move consignment_logs / stock_adjustments rows into inventory_logs.
# - python -m flask ledger logs --partner-id <id> --limit 20
#   Print recent inventory log entries.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .services import backup_service, ledger_service, legacy_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_db():
    """Create missing tables. Existing data is untouched."""
    db.create_all()
    click.echo("PASS Schema ready.")


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


@click.group('backup')
def backup_group():
    """Backup export and restore."""


@backup_group.command('export')
@click.option('--out', 'out_path', type=click.Path(dir_okay=False, writable=True), default=None)
@with_appcontext
def export_backup(out_path):
    body = backup_service.export_json()
    if out_path is None:
        click.echo(body)
        return
    with open(out_path, "w", encoding="utf-8") as fh:
        fh.write(body)
    click.echo(f"PASS Backup written to {out_path}")


@backup_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def import_backup(path):
    with open(path, "r", encoding="utf-8") as fh:
        body = fh.read()
    try:
        counts = backup_service.import_data(body)
    except LedgerError as e:
        raise click.ClickException(e.message)
    for key, value in counts.items():
        click.echo(f"  {key}: {value}")
    click.echo("PASS Backup imported.")


@click.group('ledger')
def ledger_group():
    """Inventory log maintenance."""


@ledger_group.command('migrate-legacy')
@click.option('--keep-tables', is_flag=True, help='Copy rows but leave the legacy tables in place')
@with_appcontext
def migrate_legacy(keep_tables):
    present = legacy_service.legacy_tables_present()
    if not present:
        click.echo("PASS No legacy log tables found.")
        return
    counts = legacy_service.migrate_legacy_tables(drop=not keep_tables)
    click.echo(
        f"PASS Migrated {counts['consignment_logs']} consignment logs and "
        f"{counts['stock_adjustments']} stock adjustments."
    )


@ledger_group.command('logs')
@click.option('--partner-id', default=None)
@click.option('--product-id', default=None)
@click.option('--type', 'log_type', default=None)
@click.option('--limit', default=20, type=int)
@with_appcontext
def list_logs(partner_id, product_id, log_type, limit):
    try:
        entries = ledger_service.list_inventory_logs(
            partner_id=partner_id,
            product_id=product_id,
            log_type=log_type,
            limit=limit,
        )
    except LedgerError as e:
        raise click.ClickException(e.message)
    if not entries:
        click.echo("No log entries.")
        return
    for entry in entries:
        items = ", ".join(f"{i['product_id']}x{i['quantity']}" for i in entry.items or [])
        click.echo(f"{entry.id:>6}  {entry.date:%Y-%m-%d %H:%M}  {entry.type:<14} {items}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(backup_group)
    app.cli.add_command(ledger_group)

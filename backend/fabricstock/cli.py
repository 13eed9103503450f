# Overview: Flask CLI command groups for maintenance, order sweeps, and ledger audits.

# backend/fabricstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Orders:
# - python -m flask orders sweep
#   Complete every Delivered order whose release is 12+ hours old (one pass).
# - python -m flask orders sweep --watch --interval 60
#   Keep sweeping until interrupted (use when the in-process sweeper is off).
# - python -m flask orders import orders.json --user user-1
#   Import pre-parsed order records (JSON list) for one user.
#
# Ledger:
# - python -m flask ledger verify [--user user-1]
#   Compare stored product quantities with initial quantity + ledger sum.

import json
import time

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .services import import_service, ledger_service, order_service


@click.group('system')
def system_group():
    """System maintenance commands."""


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

    click.echo("OK Database reset complete")


@click.group('orders')
def orders_group():
    """Order maintenance commands."""


@orders_group.command('sweep')
@click.option('--user', 'user_id', default=None, help='Only sweep this user\'s orders')
@click.option('--watch', is_flag=True, help='Keep sweeping until interrupted')
@click.option('--interval', type=int, default=None, help='Seconds between passes with --watch')
@with_appcontext
def sweep(user_id, watch, interval):
    """Complete Delivered orders that are past the auto-completion window."""
    interval = interval or current_app.config["SWEEP_INTERVAL_SECONDS"]

    while True:
        completed = order_service.complete_due_orders(user_id=user_id)
        if completed:
            click.echo(f"OK Completed {len(completed)} order(s): {', '.join(completed)}")
        else:
            click.echo("OK No orders due")

        if not watch:
            break
        db.session.remove()
        try:
            time.sleep(interval)
        except KeyboardInterrupt:
            click.echo("Stopped")
            break


@orders_group.command('import')
@click.argument('file', type=click.File('r', encoding='utf-8'))
@click.option('--user', 'user_id', required=True, help='Owner of the imported orders')
@with_appcontext
def import_orders(file, user_id):
    """Import a JSON list of order records (grouped orders or flat line rows)."""
    try:
        records = json.load(file)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON: {e}")
    if not isinstance(records, list):
        raise click.ClickException("Expected a JSON list of records")

    result = import_service.import_orders(user_id, records)

    click.echo(f"Inserted: {len(result['inserted'])}")
    click.echo(f"Skipped (already exist): {len(result['skipped'])}")
    click.echo(f"Errors: {len(result['errors'])}")
    for err in result["errors"]:
        click.echo(f"  - {err['order_number']}: {err['error']}")


@click.group('ledger')
def ledger_group():
    """Inventory ledger audits."""


@ledger_group.command('verify')
@click.option('--user', 'user_id', default=None, help='Only verify this user\'s products')
@with_appcontext
def verify(user_id):
    """Check that every product quantity equals its initial quantity plus the ledger sum."""
    discrepancies = ledger_service.verify_quantities(user_id)
    if not discrepancies:
        click.echo("OK All product quantities match the ledger")
        return

    click.echo(f"WARN {len(discrepancies)} product(s) out of balance:")
    for d in discrepancies:
        click.echo(
            f"  - [{d['user_id']}] #{d['product_id']} {d['name']}: "
            f"quantity={d['quantity']} expected={d['expected_quantity']}"
        )
    raise click.exceptions.Exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(ledger_group)

# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/retailcore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock inspection/correction:
# - python -m flask stock show --tenant-id 1 --variant-id 10 --branch-id 1
#   Show on-hand quantity and the latest adjustments.
# - python -m flask stock adjust --tenant-id 1 --variant-id 10 --branch-id 1 --delta -2 --reason DAMAGED
#   Record a manual correction through the ledger.
# - python -m flask stock verify --tenant-id 1 --variant-id 10 --branch-id 1
#   Replay the adjustment log and compare it to the stored quantity.

import click
from flask.cli import with_appcontext

from .core import current_core
from .errors import CoreError
from .extensions import db
from .services.stock_ledger import MANUAL_REASONS


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Existing tables and data are left alone."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("PASS Database schema is up to date")


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

    click.echo("PASS Database reset complete")


@click.group('stock')
def stock_group():
    """Stock ledger inspection and correction."""


def _stock_key_options(f):
    f = click.option('--branch-id', type=int, required=True, help='Branch ID')(f)
    f = click.option('--variant-id', type=int, required=True, help='Variant ID')(f)
    f = click.option('--tenant-id', type=int, required=True, help='Tenant ID')(f)
    return f


@stock_group.command('show')
@_stock_key_options
@click.option('--limit', type=int, default=10, help='Number of adjustments to show')
@with_appcontext
def show_stock(tenant_id, variant_id, branch_id, limit):
    """Show on-hand quantity and recent adjustments."""
    ledger = current_core().ledger
    stock = ledger.get_stock(tenant_id, variant_id, branch_id)
    if stock is None:
        click.echo(f"No stock row for variant {variant_id} at branch {branch_id} (on-hand 0)")
        return

    click.echo(
        f"Variant {variant_id} @ branch {branch_id}: on-hand {stock.quantity} "
        f"(min {stock.min_stock}{', LOW' if stock.is_low else ''})"
    )
    for adj in ledger.history(tenant_id, variant_id, branch_id, limit=limit):
        click.echo(
            f"  #{adj.id} {adj.reason:<15} {adj.delta:+d} "
            f"{adj.previous_quantity} -> {adj.new_quantity}"
        )


@stock_group.command('adjust')
@_stock_key_options
@click.option('--delta', type=int, required=True, help='Signed quantity change')
@click.option('--reason', type=click.Choice(MANUAL_REASONS, case_sensitive=False), required=True)
@click.option('--note', default=None, help='Optional note')
@click.option('--actor-id', type=int, default=None, help='Actor recorded on the adjustment')
@with_appcontext
def adjust_stock(tenant_id, variant_id, branch_id, delta, reason, note, actor_id):
    """Record a manual stock correction."""
    try:
        adj = current_core().ledger.adjust(
            tenant_id, variant_id, branch_id, delta, reason,
            actor_id=actor_id,
            note=note,
        )
    except CoreError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS {adj.previous_quantity} -> {adj.new_quantity} ({adj.reason})")


@stock_group.command('verify')
@_stock_key_options
@with_appcontext
def verify_stock(tenant_id, variant_id, branch_id):
    """Check initial_quantity + sum(deltas) == quantity."""
    result = current_core().ledger.verify(tenant_id, variant_id, branch_id)
    if result["consistent"]:
        click.echo(
            f"PASS quantity {result['quantity']} matches "
            f"{result['adjustment_count']} adjustments"
        )
        return
    click.echo(
        f"FAIL stored {result['quantity']} but log replays to {result['replayed_quantity']}"
    )
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)

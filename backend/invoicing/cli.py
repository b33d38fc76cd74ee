# Overview: Flask CLI command groups for bootstrap, reconciliation, and inspection.

# backend/invoicing/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to invoicing (PowerShell: $env:FLASK_APP="invoicing").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (no-op for tables that already exist).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Invoices:
# - python -m flask invoices recompute [--invoice-id 4]
#   Re-run paid-status reconciliation over one invoice or every live one.
# - python -m flask invoices show 4
#   Print an invoice's payment summary.
#
# Audit:
# - python -m flask audit list --limit 20 [--entity-type invoice]
#   Print recent audit entries, newest first.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services.audit_service import list_audit_log
from .services.ledger_service import get_ledger_service
from .validation import NotFoundError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all ledger tables."""
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


@click.group('invoices')
def invoices_group():
    """Invoice reconciliation and inspection."""


@invoices_group.command('recompute')
@click.option('--invoice-id', type=int, help='Only this invoice')
@with_appcontext
def recompute_invoices(invoice_id):
    """
    Recompute is_paid / paid_at from live payments.

    Example:
        flask invoices recompute
        flask invoices recompute --invoice-id 4
    """
    try:
        changed = get_ledger_service().recompute_invoices(invoice_id)
    except NotFoundError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS {changed} invoice(s) updated.")


@invoices_group.command('show')
@click.argument('invoice_id', type=int)
@with_appcontext
def show_invoice(invoice_id):
    """Print an invoice's payment summary."""
    service = get_ledger_service()
    try:
        invoice = service.get_invoice(invoice_id, include_deleted=True)
        summary = service.get_invoice_payment_summary(invoice_id)
    except NotFoundError as e:
        raise click.ClickException(str(e))

    click.echo("\n" + "="*60)
    click.echo(f"Invoice {invoice.invoice_number} (id {invoice.id})")
    click.echo("="*60)
    click.echo(f"  Client:     {invoice.client_id}")
    click.echo(f"  Date:       {invoice.date}")
    click.echo(f"  Deleted:    {'yes' if invoice.is_deleted else 'no'}")
    click.echo(f"  Total TTC:  {summary['total_due_cents'] / 100:.2f}")
    click.echo(f"  Paid:       {summary['total_paid_cents'] / 100:.2f} ({summary['payment_count']} payment(s))")
    click.echo(f"  Remaining:  {summary['remaining_cents'] / 100:.2f}")
    click.echo(f"  Status:     {summary['payment_status']} (is_paid={invoice.is_paid})")


@click.group('audit')
def audit_group():
    """Audit log inspection."""


@audit_group.command('list')
@click.option('--limit', type=int, default=20, show_default=True)
@click.option('--entity-type', help='sale, invoice or payment')
@with_appcontext
def list_audit(limit, entity_type):
    """Print recent audit entries, newest first."""
    entries = list_audit_log(db.session, limit=limit, entity_type=entity_type)

    if not entries:
        click.echo("No audit entries found.")
        return

    click.echo(f"{'ID':<6} {'Timestamp':<22} {'Action':<20} {'Entity'}")
    click.echo("-"*70)
    for entry in entries:
        timestamp = entry.timestamp.strftime("%Y-%m-%d %H:%M:%S") if entry.timestamp else ""
        click.echo(f"{entry.id:<6} {timestamp:<22} {entry.action:<20} {entry.entity_type} {entry.entity_id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(invoices_group)
    app.cli.add_command(audit_group)

# Overview: Flask CLI command group for bootstrap, inspection, and ledger maintenance.

# backend/partsledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask ledger <command> [options]
#
# - python -m flask ledger init-db
#   Create all tables (use "flask db upgrade" for migrated databases).
# - python -m flask ledger next-number --type SALE [--date 2025-11-14]
#   Preview the next invoice number for a (type, month) bucket.
# - python -m flask ledger stock [--part-number 550/42835C] [--only-purchased]
#   Print derived stock per part.
# - python -m flask ledger verify-ledger
#   Cross-check ledger entries against invoice lines; exits 1 on problems.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Part
from .services import numbering_service, stock_ledger
from .time_utils import parse_iso_date, today
from .validation import LedgerError


@click.group('ledger')
def ledger_group():
    """Invoice and stock ledger commands."""


@ledger_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@ledger_group.command('next-number')
@click.option('--type', 'invoice_type', type=click.Choice(['PURCHASE', 'SALE'], case_sensitive=False), required=True)
@click.option('--date', 'date_str', default=None, help='Invoice date, YYYY-MM-DD (default: today)')
@with_appcontext
def next_number(invoice_type, date_str):
    """Preview the next invoice number (nothing is reserved)."""
    try:
        invoice_date = parse_iso_date(date_str) or today()
    except ValueError:
        raise click.BadParameter("date must be YYYY-MM-DD", param_hint='--date')
    try:
        number = numbering_service.get_next_invoice_number(invoice_type.upper(), invoice_date)
    except LedgerError as exc:
        raise click.ClickException(str(exc))
    click.echo(number)


@ledger_group.command('stock')
@click.option('--part-number', default=None, help='Show a single part')
@click.option('--only-purchased', is_flag=True, help='Only parts with at least one IN entry')
@with_appcontext
def show_stock(part_number, only_purchased):
    """Print derived stock (IN - OUT) per part."""
    if part_number:
        part = Part.live().filter(Part.part_number == part_number).first()
        if part is None:
            raise click.ClickException(f"Part {part_number} not found")
        level = stock_ledger.stock_levels(part.id)
        click.echo(f"{part.part_number:<20} {part.item_name:<30} in={level.incoming} out={level.outgoing} stock={level.stock}")
        return

    rows = stock_ledger.list_stock(only_purchased=only_purchased)
    if not rows:
        click.echo("No parts found.")
        return
    for row in rows:
        click.echo(f"{row['part_number']:<20} {row['item_name'][:30]:<30} {row['stock']:>8}")


@ledger_group.command('verify-ledger')
@with_appcontext
def verify_ledger():
    """Report negative stock and ledger/invoice-line mismatches."""
    report = stock_ledger.audit_ledger()
    problems = 0

    for row in report["negative_stock"]:
        problems += 1
        click.echo(f"FAIL part {row['part_id']} has negative stock {row['stock']}")
    for item_id in report["items_without_entries"]:
        problems += 1
        click.echo(f"FAIL invoice item {item_id} has no ledger entry")
    for tx_id in report["mismatched_entries"]:
        problems += 1
        click.echo(f"FAIL ledger entry {tx_id} disagrees with its invoice item")

    if problems:
        raise click.exceptions.Exit(1)
    click.echo("PASS Ledger consistent.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)

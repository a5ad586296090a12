# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/laundrypos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
#
# Branch management:
# - python -m flask branches list
# - python -m flask branches create --name "Mikocheni" --code "MIK" --phone "+255700000000"
# - python -m flask branches feature 1 cash_management --disable
#   Enable/disable a branch capability (cash_management, collection, loyalty).
#
# Money checks:
# - python -m flask ledger validate [--branch-id 1] [--date 2026-10-18]
#   Integrity audit: receipts whose paid total disagrees with the ledger.
# - python -m flask cash summary 1 [--date 2026-10-18]
#   Print a branch-day cash summary (saved row or computed figures).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, BranchFeature
from .services import branch_scope_service, cash_service, ledger_service
from .services.branch_scope_service import BranchScope, BranchScopeError
from .time_utils import business_today, parse_iso_date


def _scope_for(branch_id):
    return BranchScope(branch_id=branch_id) if branch_id is not None else BranchScope(all_branches=True)


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@click.group('branches')
def branches_group():
    """Branch management commands."""


@branches_group.command('list')
@with_appcontext
def list_branches():
    branches = db.session.query(Branch).order_by(Branch.id.asc()).all()
    if not branches:
        click.echo("No branches found")
        return
    for branch in branches:
        disabled = [
            f.feature_key for f in db.session.query(BranchFeature).filter_by(branch_id=branch.id, is_enabled=False)
        ]
        suffix = f" (disabled: {', '.join(disabled)})" if disabled else ""
        click.echo(f"{branch.id}: {branch.name} [{branch.code or '-'}]{suffix}")


@branches_group.command('create')
@click.option('--name', prompt=True, help='Branch name')
@click.option('--code', default=None, help='Short branch code')
@click.option('--phone', default=None, help='Branch phone number')
@with_appcontext
def create_branch(name, code, phone):
    try:
        branch = branch_scope_service.create_branch(name, code=code, phone=phone)
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")


@branches_group.command('feature')
@click.argument('branch_id', type=int)
@click.argument('feature_key', type=click.Choice(branch_scope_service.KNOWN_FEATURES))
@click.option('--enable/--disable', default=True, help='Enable or disable the feature')
@with_appcontext
def set_feature(branch_id, feature_key, enable):
    try:
        branch_scope_service.set_branch_feature(branch_id, feature_key, enable)
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {feature_key} {'enabled' if enable else 'disabled'} for branch {branch_id}")


@click.group('ledger')
def ledger_group():
    """Ledger inspection commands."""


@ledger_group.command('validate')
@click.option('--branch-id', type=int, default=None, help='Restrict to one branch')
@click.option('--date', 'day', default=None, help='Only orders taken on this date (YYYY-MM-DD)')
@with_appcontext
def validate_ledger(branch_id, day):
    """Compare receipt paid totals with ledger entries."""
    report = ledger_service.audit_ledger_integrity(
        _scope_for(branch_id), day=parse_iso_date(day) if day else None,
    )
    warnings = report["warnings"]
    click.echo(f"Checked {report['receipts_checked']} receipts ({report['orders_checked']} orders)")
    if not warnings:
        click.echo("PASS Ledger matches receipt totals")
        return
    for w in warnings:
        click.echo(
            f"WARN  branch {w.branch_id} receipt {w.receipt_number}: "
            f"paid {w.paid_amount}, ledger {w.ledger_total}, difference {w.difference}"
        )
    raise click.exceptions.Exit(1)


@click.group('cash')
def cash_group():
    """Daily cash commands."""


@cash_group.command('summary')
@click.argument('branch_id', type=int)
@click.option('--date', 'day', default=None, help='Business date (YYYY-MM-DD), default today')
@with_appcontext
def cash_summary(branch_id, day):
    target = parse_iso_date(day) if day else business_today()
    try:
        summary = cash_service.get_daily_summary(BranchScope(branch_id=branch_id), target)
    except BranchScopeError as e:
        raise click.ClickException(str(e))
    click.echo(f"Branch {branch_id} on {summary['date']} ({summary['state']})")
    for name in cash_service.COMPUTED_FIELDS:
        click.echo(f"  {name:<20} {summary[name]}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(branches_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(cash_group)

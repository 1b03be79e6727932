# Overview: Flask CLI command groups for bootstrap, scheduling, maintenance and catalog import.

# backend/smartshop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create tables and the default admin, seller and customer users (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Scheduler:
# - python -m flask scheduler run
#   Start the background scheduler and block until Ctrl+C.
# - python -m flask scheduler run-job inventory-alerts
#   Run one job once (inventory-alerts, demand-prediction, analytics-cleanup, health-scores).
# - python -m flask scheduler list
#   Show registered jobs and their next run.
#
# Maintenance:
# - python -m flask maintenance cleanup-analytics --retention-days 90
# - python -m flask maintenance check-alerts [--auto-resolve]
# - python -m flask maintenance refresh-health-scores
# - python -m flask maintenance predict-demand
#
# Catalog:
# - python -m flask catalog import-csv products.csv --seller-id 2

import time

import click
from flask import current_app
from flask.cli import with_appcontext

from .constants import HEALTH_SCORED_CATEGORIES
from .errors import ShopError
from .extensions import db
from .models import User
from .scheduler import build_default_scheduler
from .services import analytics_service, catalog_service, inventory_service, maintenance_service
from .services.import_service import import_csv


DEFAULT_USERS = (
    ("Admin", "admin@smartshop.local", "admin"),
    ("Demo Seller", "seller@smartshop.local", "seller"),
    ("Demo Customer", "customer@smartshop.local", "customer"),
)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create tables and default users.

    Safe to rerun: existing users are left untouched.
    """
    click.echo("START Initializing SmartShop...")
    db.create_all()

    for name, email, role in DEFAULT_USERS:
        user = db.session.query(User).filter_by(email=email).first()
        if user:
            click.echo(f"SKIP {role} user exists: {email} (id={user.id})")
            continue
        user = User(name=name, email=email, role=role, is_active=True)
        db.session.add(user)
        db.session.flush()
        click.echo(f"PASS Created {role} user: {email} (id={user.id})")

    db.session.commit()
    click.echo("PASS Initialization complete.")


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


@click.group('scheduler')
def scheduler_group():
    """Background job scheduler."""


@scheduler_group.command('run')
@click.option('--poll-interval', type=float, default=30.0, show_default=True, help='Seconds between due-job checks')
@with_appcontext
def run_scheduler(poll_interval):
    """Start the scheduler and block until interrupted."""
    if not current_app.config.get("SCHEDULER_ENABLED", True):
        click.echo("SKIP Scheduler disabled (SCHEDULER_ENABLED=false).")
        return

    scheduler = build_default_scheduler(current_app._get_current_object(), poll_interval=poll_interval)
    scheduler.start()
    click.echo("PASS Scheduler running. Press Ctrl+C to stop.")
    try:
        while scheduler.running:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("STOP Stopping scheduler...")
    finally:
        scheduler.stop()


@scheduler_group.command('run-job')
@click.argument('name')
@with_appcontext
def run_job(name):
    """Run a single scheduled job once."""
    scheduler = build_default_scheduler(current_app._get_current_object())
    if name not in scheduler.jobs:
        raise click.BadParameter(f"unknown job {name}; choose from: {', '.join(scheduler.jobs)}")
    if scheduler.run_job(name):
        click.echo(f"PASS Job {name} finished.")
    else:
        click.echo(f"FAIL Job {name} failed: {scheduler.jobs[name].last_error}")
        raise SystemExit(1)


@scheduler_group.command('list')
@with_appcontext
def list_jobs():
    """List scheduled jobs."""
    scheduler = build_default_scheduler(current_app._get_current_object())
    for job in scheduler.status():
        click.echo(f"{job['name']:<20} {job['cadence']:<28} next={job['next_run']:%Y-%m-%d %H:%M}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-analytics')
@click.option('--retention-days', type=int, default=None, help='Defaults to ANALYTICS_RETENTION_DAYS')
@with_appcontext
def cleanup_analytics_cli(retention_days):
    """
    Cleanup old analytics events.

    Default retention: 90 days.
    """
    if retention_days is None:
        retention_days = int(current_app.config.get("ANALYTICS_RETENTION_DAYS", 90))
    deleted = maintenance_service.cleanup_analytics(retention_days=retention_days)
    click.echo(f"Deleted {deleted} analytics events older than {retention_days} days.")


@maintenance_group.command('check-alerts')
@click.option('--auto-resolve/--no-auto-resolve', default=None, help='Override ALERT_AUTO_RESOLVE')
@with_appcontext
def check_alerts_cli(auto_resolve):
    """Run the inventory alert sweep now."""
    created = inventory_service.check_all_alerts(auto_resolve=auto_resolve)
    click.echo(f"Created {created} inventory alerts.")


@maintenance_group.command('refresh-health-scores')
@with_appcontext
def refresh_health_scores_cli():
    updated = catalog_service.refresh_health_scores(HEALTH_SCORED_CATEGORIES)
    click.echo(f"Updated {updated} health scores.")


@maintenance_group.command('predict-demand')
@with_appcontext
def predict_demand_cli():
    updated = analytics_service.refresh_demand_predictions()
    click.echo(f"Updated demand predictions for {updated} products.")


@click.group('catalog')
def catalog_group():
    """Catalog import commands."""


@catalog_group.command('import-csv')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--seller-id', type=int, required=True, help='Seller who owns the imported products')
@with_appcontext
def import_csv_cli(path, seller_id):
    """
    Import products and stock levels from a CSV file.

    Accepted headers: Product Name, Category, Price, Barcode, Stock, Min Stock,
    Max Stock (or their lowercase/camelCase equivalents).
    """
    try:
        results = import_csv(path, seller_id=seller_id)
    except ShopError as e:
        raise click.ClickException(e.message)
    click.echo(f"Import completed. Success: {results['success']}, Failed: {results['failed']}")
    for error in results["errors"]:
        click.echo(f"  FAIL {error['row']}: {error['error']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(scheduler_group)
    app.cli.add_command(maintenance_group)
    app.cli.add_command(catalog_group)

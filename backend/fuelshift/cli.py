# Overview: Flask CLI command groups for bootstrap, configuration and inspection.

# backend/fuelshift/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Set FLASK_APP to fuelshift (PowerShell: $env:FLASK_APP="fuelshift").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` once migrations are in place).
#
# Stations:
# - python -m flask stations create --name "Highway 7" --code HW7 --location "Km 42"
#
# Dispensers:
# - python -m flask dispensers create --station-id 1 --code D-01 --fuel-type PETROL --price 100.00
# - python -m flask dispensers list --station-id 1 [--all]
# - python -m flask dispensers set-price 1 102.50
#
# Shifts:
# - python -m flask shifts list --status FLAGGED --limit 20

import click
from flask.cli import with_appcontext

from .errors import FuelShiftError
from .extensions import db
from .models import FUEL_TYPES, SHIFT_STATUSES
from .services import dispenser_service, shift_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db_cli():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@click.group('stations')
def stations_group():
    """Station management commands."""


@stations_group.command('create')
@click.option('--name', required=True, help='Station name')
@click.option('--code', default=None, help='Unique station code')
@click.option('--location', default=None, help='Address or landmark')
@with_appcontext
def create_station_cli(name, code, location):
    try:
        station = dispenser_service.create_station(name, code=code, location=location)
    except FuelShiftError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created station: {station.name} (ID: {station.id})")


@click.group('dispensers')
def dispensers_group():
    """Dispenser configuration commands."""


@dispensers_group.command('create')
@click.option('--station-id', type=int, required=True, help='Owning station ID')
@click.option('--code', 'dispenser_code', required=True, help='Dispenser code, unique per station')
@click.option('--fuel-type', type=click.Choice(FUEL_TYPES, case_sensitive=False), required=True)
@click.option('--price', required=True, help='Unit price, e.g. 100.00')
@with_appcontext
def create_dispenser_cli(station_id, dispenser_code, fuel_type, price):
    """
    Create a dispenser.

    Example:
        flask dispensers create --station-id 1 --code D-01 --fuel-type PETROL --price 100.00
    """
    try:
        dispenser = dispenser_service.create_dispenser(station_id, dispenser_code, fuel_type, price, actor_id="cli")
    except FuelShiftError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created dispenser {dispenser.dispenser_code} (ID: {dispenser.id}) at {dispenser.unit_price}")


@dispensers_group.command('list')
@click.option('--station-id', type=int, help='Filter by station ID')
@click.option('--all', 'show_all', is_flag=True, help='Show inactive dispensers too')
@with_appcontext
def list_dispensers_cli(station_id, show_all):
    dispensers = dispenser_service.list_dispensers(station_id, include_inactive=show_all)

    if not dispensers:
        click.echo("No dispensers found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Station':<8} {'Code':<10} {'Fuel':<10} {'Price':<12} {'Active':<8} {'Shift'}")
    click.echo("="*80)

    for dispenser in dispensers:
        active = shift_service.get_active_shift(dispenser.id)
        shift = f"#{active.id}" if active else "-"
        click.echo(
            f"{dispenser.id:<5} {dispenser.station_id:<8} {dispenser.dispenser_code:<10} "
            f"{dispenser.fuel_type:<10} {str(dispenser.unit_price):<12} {str(dispenser.is_active):<8} {shift}"
        )


@dispensers_group.command('set-price')
@click.argument('dispenser_id', type=int)
@click.argument('price')
@with_appcontext
def set_price_cli(dispenser_id, price):
    """Change a dispenser's unit price. Active shifts keep their captured price."""
    try:
        dispenser = dispenser_service.set_dispenser_price(dispenser_id, price, actor_id="cli")
    except FuelShiftError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Dispenser {dispenser.dispenser_code} price is now {dispenser.unit_price}")


@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('list')
@click.option('--station-id', type=int, help='Filter by station ID')
@click.option('--status', type=click.Choice(SHIFT_STATUSES, case_sensitive=False), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max shifts to show')
@with_appcontext
def list_shifts_cli(station_id, status, limit):
    result = shift_service.list_shifts(station_id=station_id, status=status, limit=limit)
    shifts = result["shifts"]

    if not shifts:
        click.echo("No shifts found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<5} {'Disp':<6} {'Operator':<14} {'Slot':<8} {'Status':<10} {'Open':<12} {'Close':<12} {'Discrepancy'}")
    click.echo("="*110)

    for shift in shifts:
        discrepancy = shift.discrepancy
        detail = f"{discrepancy['amount']} {discrepancy['category']}" if discrepancy else "-"
        click.echo(
            f"{shift.id:<5} {shift.dispenser_id:<6} {shift.operator_id:<14} {shift.shift_slot:<8} "
            f"{shift.status:<10} {str(shift.opening_reading):<12} {str(shift.closing_reading or '-'):<12} {detail}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stations_group)
    app.cli.add_command(dispensers_group)
    app.cli.add_command(shifts_group)

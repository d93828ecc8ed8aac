# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# slabworks/cli.py
# Commands Legend:
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP=slabworks (or pass --app slabworks).
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: stand grid from config, default machines and trolleys.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stands:
# - python -m flask stands init [--rows 4] [--positions 14] [--capacity 200]
#   Create any missing stands of the grid.
# - python -m flask stands list
#   Occupancy per stand with band.
#
# Equipment:
# - python -m flask machines add --name "Cutter-02" --type cutting
# - python -m flask machines list [--type grinding]
# - python -m flask trolleys add --number T-07
#
# Inspection:
# - python -m flask blocks list [--status in_stock]
# - python -m flask production eligible polishing

import click
from flask import current_app
from flask.cli import with_appcontext

from .exceptions import SlabworksError
from .extensions import db
from .models import Machine, Trolley
from .services import block_service, inventory_service, production_service

DEFAULT_MACHINES = (
    ("Cutter-01", "cutting"),
    ("Grinder-01", "grinding"),
    ("Polisher-01", "polishing"),
)
DEFAULT_TROLLEYS = ("T-01", "T-02", "T-03", "T-04")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Provision the stand grid and default equipment. Safe to re-run."""
    click.echo("START Initializing slabworks...")

    created = inventory_service.provision_stands(
        rows=current_app.config["STAND_ROWS"],
        positions=current_app.config["STAND_POSITIONS"],
        capacity=current_app.config["STAND_MAX_CAPACITY"],
    )
    click.echo(f"PASS Stands created: {created}")

    for name, machine_type in DEFAULT_MACHINES:
        if db.session.query(Machine).filter_by(name=name).first():
            click.echo(f"WARN  Machine '{name}' already exists, skipping...")
            continue
        production_service.register_machine(name=name, machine_type=machine_type)
        click.echo(f"PASS Created machine: {name} ({machine_type})")

    for number in DEFAULT_TROLLEYS:
        if db.session.query(Trolley).filter_by(number=number).first():
            continue
        production_service.register_trolley(number=number)
        click.echo(f"PASS Created trolley: {number}")

    click.echo("DONE slabworks initialized")


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


@click.group('stands')
def stands_group():
    """Stand grid commands."""


@stands_group.command('init')
@click.option('--rows', type=int, default=None, help='Rows (defaults to STAND_ROWS)')
@click.option('--positions', type=int, default=None, help='Positions per row (defaults to STAND_POSITIONS)')
@click.option('--capacity', type=int, default=None, help='Slabs per stand (defaults to STAND_MAX_CAPACITY)')
@with_appcontext
def init_stands(rows, positions, capacity):
    try:
        created = inventory_service.provision_stands(
            rows=rows or current_app.config["STAND_ROWS"],
            positions=positions or current_app.config["STAND_POSITIONS"],
            capacity=capacity or current_app.config["STAND_MAX_CAPACITY"],
        )
    except SlabworksError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Stands created: {created}")


@stands_group.command('list')
@with_appcontext
def list_stands_cli():
    stands = inventory_service.list_stands()
    if not stands:
        click.echo("No stands found. Run 'python -m flask stands init'.")
        return

    click.echo(f"{'Stand':<10} {'Slabs':>6} {'Cap':>6} {'Cov':>6}  Band")
    click.echo("-" * 40)
    for occ in stands:
        click.echo(
            f"{occ.stand.label:<10} {occ.current_slabs:>6} {occ.stand.max_capacity:>6} "
            f"{occ.coverage:>6.2f}  {occ.band}"
        )


@click.group('machines')
def machines_group():
    """Machine registry commands."""


@machines_group.command('add')
@click.option('--name', required=True)
@click.option('--type', 'machine_type', required=True, help='cutting, grinding or polishing')
@with_appcontext
def add_machine(name, machine_type):
    try:
        machine = production_service.register_machine(name=name, machine_type=machine_type)
    except SlabworksError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created machine {machine.name} (ID: {machine.id})")


@machines_group.command('list')
@click.option('--type', 'machine_type', default=None)
@with_appcontext
def list_machines_cli(machine_type):
    for machine in production_service.list_machines(machine_type):
        click.echo(f"{machine.id:<5} {machine.name:<20} {machine.machine_type:<12} {machine.status}")


@click.group('trolleys')
def trolleys_group():
    """Trolley registry commands."""


@trolleys_group.command('add')
@click.option('--number', required=True)
@with_appcontext
def add_trolley(number):
    try:
        trolley = production_service.register_trolley(number=number)
    except SlabworksError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created trolley {trolley.number} (ID: {trolley.id})")


@click.group('blocks')
def blocks_group():
    """Block registry inspection."""


@blocks_group.command('list')
@click.option('--status', default=None)
@with_appcontext
def list_blocks_cli(status):
    try:
        blocks = block_service.list_blocks(status=status)
    except SlabworksError as e:
        raise click.ClickException(str(e))
    if not blocks:
        click.echo("No blocks found.")
        return
    for block in blocks:
        click.echo(f"{block.id:<5} {block.block_number:<16} {block.color:<16} {block.status}")


@click.group('production')
def production_group():
    """Stage pipeline inspection."""


@production_group.command('eligible')
@click.argument('stage')
@with_appcontext
def eligible_cli(stage):
    try:
        blocks = production_service.get_eligible_blocks(stage)
    except SlabworksError as e:
        raise click.ClickException(str(e))
    click.echo(f"{len(blocks)} block(s) eligible for {stage}")
    for block in blocks:
        click.echo(f"  {block.block_number}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stands_group)
    app.cli.add_command(machines_group)
    app.cli.add_command(trolleys_group)
    app.cli.add_command(blocks_group)
    app.cli.add_command(production_group)

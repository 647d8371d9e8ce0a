# Overview: Flask CLI command groups for bootstrap, scanning, and inspection.

# backend/filtertrack/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Client directory:
# - python -m flask clients list
# - python -m flask clients create "ACME"
# - python -m flask clients delete "ACME"
#   Refused while any unit record still names the client.
#
# Units:
# - python -m flask units scan "OG971390|202630010002" --identity ana@plant --role mechanic
#   Apply one scan (same rules as POST /api/scans).
# - python -m flask units scan "OG971390|202630010002" --identity leo --role dispatcher --client ACME
# - python -m flask units scan "OG971390|202630010002" --identity tom --role mechanic --plate ABC123 --odometer 1200 --installer "Tom Ruiz"
# - python -m flask units scan "OG971390|202630010002" --identity tom --role mechanic --uninstall-odometer 9800
# - python -m flask units show "OG971390|202630010002"
#
# Projections / records:
# - python -m flask projections show [--client ACME]
# - python -m flask records stats [--client ACME]

import click
from flask.cli import with_appcontext

from .actors import ActorContext, ROLE_SUPERADMIN, UnknownRoleError
from .extensions import db
from .models import UnitRecord, STATE_ORDER
from .services import client_service, ledger_service, lifecycle_service, projection_service, reporting_service
from .services.code_parser import InvalidCodeFormat, parse_code
from .services.ledger_service import StoreUnavailableError
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create any missing ledger tables. Safe to run repeatedly."""
    click.echo("START Initializing ledger schema...")
    db.create_all()
    units = db.session.query(UnitRecord).count()
    clients = len(client_service.list_clients())
    click.echo(f"PASS Schema ready ({units} unit records, {clients} clients)")


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


# =============================================================================
# CLIENT DIRECTORY
# =============================================================================

@click.group('clients')
def clients_group():
    """Client directory commands."""


@clients_group.command('list')
@with_appcontext
def list_clients_cli():
    """List all clients with their unit counts."""
    try:
        clients = client_service.list_clients()
    except StoreUnavailableError as e:
        click.echo(f"FAIL {e}")
        return
    if not clients:
        click.echo("No clients found.")
        return

    click.echo("\n" + "=" * 60)
    click.echo(f"{'ID':<5} {'Name':<30} {'Registered':<12} {'Units'}")
    click.echo("=" * 60)
    for c in clients:
        units = ledger_service.count_for_client(c.name)
        click.echo(f"{c.id:<5} {c.name:<30} {c.registered_on or '-':<12} {units}")
    click.echo("=" * 60 + "\n")


@clients_group.command('create')
@click.argument('name')
@with_appcontext
def create_client_cli(name):
    """Add a client to the directory."""
    try:
        client = client_service.create_client(name)
    except (ValidationError, ConflictError, StoreUnavailableError) as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created client: {client.name} (ID: {client.id})")


@clients_group.command('delete')
@click.argument('name')
@with_appcontext
def delete_client_cli(name):
    """Remove a client that no unit record refers to."""
    try:
        client_service.delete_client(name)
    except (
        ValidationError,
        client_service.ClientNotFoundError,
        client_service.ClientHasRecordsError,
        StoreUnavailableError,
    ) as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Deleted client: {name}")


# =============================================================================
# UNITS
# =============================================================================

@click.group('units')
def units_group():
    """Unit lifecycle commands."""


@units_group.command('scan')
@click.argument('code')
@click.option('--identity', required=True, help='Who is scanning')
@click.option('--role', required=True, help='mechanic, dispatcher, admin or superadmin')
@click.option('--client', default='', help='Client for a dispatch (or the actor\'s own client)')
@click.option('--plate', default=None, help='Vehicle plate (install)')
@click.option('--odometer', default=None, help='Odometer reading at install')
@click.option('--installer', default=None, help='Installer name (install)')
@click.option('--uninstall-odometer', default=None, help='Odometer reading at uninstall')
@with_appcontext
def scan_unit_cli(code, identity, role, client, plate, odometer, installer, uninstall_odometer):
    """Apply one scan to a unit and print the outcome."""
    try:
        actor = ActorContext.build(identity, role, client)
    except UnknownRoleError as e:
        click.echo(f"FAIL {e}")
        return

    payload = None
    if uninstall_odometer is not None:
        payload = lifecycle_service.payload_from_dict({"uninstall": {"odometer": uninstall_odometer}})
    elif any(v is not None for v in (plate, odometer, installer)):
        payload = lifecycle_service.payload_from_dict({
            "install": {"plate": plate, "odometer": odometer, "installer_name": installer},
        })

    try:
        result = lifecycle_service.advance(code, actor, payload)
    except InvalidCodeFormat as e:
        click.echo(f"FAIL {e}")
        return
    except lifecycle_service.MissingClientError as e:
        click.echo(f"FAIL {e} (warnings: {', '.join(e.warnings) or '-'})")
        return
    except lifecycle_service.LifecycleError as e:
        click.echo(f"FAIL {e}")
        return
    except StoreUnavailableError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"{result.outcome}: {result.message}")
    click.echo(f"  id={result.record['id']} state={result.state}")
    if result.missing_fields:
        click.echo(f"  missing: {', '.join(result.missing_fields)}")
    for warning in result.warnings:
        click.echo(f"WARN {warning}")


@units_group.command('show')
@click.argument('code')
@with_appcontext
def show_unit_cli(code):
    """Print the global ledger row for a unit and its per-client copies."""
    try:
        parsed = parse_code(code)
    except InvalidCodeFormat as e:
        click.echo(f"FAIL {e}")
        return

    record = ledger_service.find_by_key(parsed.reference, parsed.serial)
    if record is None:
        click.echo(f"No unit record for {parsed.key}")
        return

    click.echo(f"\nUnit {record.unit_key} (ID: {record.id})")
    for key, value in record.to_dict().items():
        if key == "id" or value in ("", None):
            continue
        click.echo(f"  {key:<20} {value}")

    entries = record.client_entries
    if entries:
        click.echo("  client ledgers: " + ", ".join(f"{e.ledger_key}#{e.entry_no}" for e in entries))
    click.echo("")


# =============================================================================
# PROJECTIONS / RECORDS
# =============================================================================

@click.group('projections')
def projections_group():
    """Replacement projection commands."""


@projections_group.command('show')
@click.option('--client', default=None, help='Limit to one client')
@with_appcontext
def show_projections_cli(client):
    """Print the replacement forecast."""
    try:
        result = projection_service.project(client)
    except StoreUnavailableError as e:
        click.echo(f"FAIL {e}")
        return

    if not result.forecast:
        click.echo("No installed units to forecast.")
    else:
        click.echo("\n" + "=" * 90)
        click.echo(f"{'ID':<5} {'Client':<16} {'Reference':<12} {'Serial':<16} {'Installed':<11} {'Days':<5} {'Replace by'}")
        click.echo("=" * 90)
        for f in result.forecast:
            row = f.to_dict()
            days = f"{f.mean_duration_days}" + ("" if f.has_history else "*")
            click.echo(
                f"{f.unit_id:<5} {f.client:<16} {f.reference:<12} {f.serial:<16} "
                f"{row['installed_on']:<11} {days:<5} {row['estimated_replacement_on']}"
            )
        click.echo("=" * 90)
        click.echo("* no history for this client/reference, default lifespan used")

    stats = result.stats()
    click.echo(
        f"\nSamples: {stats['total_samples']}  Mean: {stats['overall_mean_days']} days  "
        f"Forecast: {stats['forecast_count']}\n"
    )


@click.group('records')
def records_group():
    """Ledger inspection commands."""


@records_group.command('stats')
@click.option('--client', default=None, help='Limit to one client ledger')
@with_appcontext
def records_stats_cli(client):
    """Print per-state counts over the whole ledger (or one client)."""
    actor = ActorContext(identity="cli", role=ROLE_SUPERADMIN)
    try:
        stats = reporting_service.compute_stats(actor, client=client)
    except StoreUnavailableError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"\nTotal: {stats['total']}  Today: {stats['today']}")
    for state in STATE_ORDER:
        click.echo(f"  {state:<12} {stats['by_state'][state]}")
    click.echo("")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(clients_group)
    app.cli.add_command(units_group)
    app.cli.add_command(projections_group)
    app.cli.add_command(records_group)

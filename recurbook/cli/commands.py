"""Click CLI commands for recurbook."""

import json
import logging
import sys
import traceback
from decimal import Decimal
from pathlib import Path
from typing import Optional

import click

from recurbook import __version__, constants
from recurbook.loader import (
    find_data_directory,
    load_families_from_directory,
    write_default_config,
)
from recurbook.lifecycle import InstanceAction
from recurbook.recurrence import RecurrenceEngine, describe_rule
from recurbook.schema import parse_rule_json, rule_to_json
from recurbook.service import RecurringService
from recurbook.status import PENDING_STATUSES
from recurbook.store import YamlFamilyStore

from .formatters import (
    print_appointment_table,
    print_family_csv,
    print_family_json,
    print_family_table,
    print_revenue_table,
)

logger = logging.getLogger(__name__)

ISO_DATE = click.DateTime(formats=[constants.DATE_FORMAT])

data_dir_option = click.option(
    "--data-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory holding family files (default: $RECURBOOK_DIR or ./recurring)",
)


def _report_error(e: Exception) -> None:
    click.echo(f"Error: {e}", err=True)
    if logger.isEnabledFor(logging.DEBUG):
        traceback.print_exc()
    sys.exit(1)


def _resolve_data_dir(data_dir: Optional[str]) -> Path:
    if data_dir is not None:
        path = Path(data_dir)
    else:
        path = find_data_directory()
    if path is None or not path.is_dir():
        click.echo(
            "Error: No data directory found. Run 'recurbook init' or set RECURBOOK_DIR",
            err=True,
        )
        sys.exit(1)
    return path


def _open_service(data_dir: Optional[str]) -> RecurringService:
    return RecurringService(YamlFamilyStore(_resolve_data_dir(data_dir)))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(version=__version__)
def main(verbose: bool):
    """Recurbook - Recurring appointment scheduling for field-service work."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


@main.command()
@data_dir_option
def init(data_dir: Optional[str]):
    """Create a data directory with a default _config.yaml.

    Examples:
        recurbook init
        recurbook init --data-dir ~/cleaning/recurring
    """
    path = Path(data_dir) if data_dir is not None else Path.cwd() / constants.DEFAULT_DATA_DIR
    config_path = path / constants.CONFIG_FILENAME

    if config_path.exists():
        click.echo(f"Already initialized: {config_path}")
        return

    write_default_config(path)
    click.echo(f"✓ Initialized data directory: {path}")


@main.command()
@data_dir_option
def validate(data_dir: Optional[str]):
    """Validate family files for syntax and schema compliance.

    Examples:
        recurbook validate
        recurbook validate --data-dir recurring/
    """
    path = _resolve_data_dir(data_dir)
    click.echo(f"Validating families from: {path}")

    try:
        files = list(path.glob(constants.FAMILY_FILE_PATTERN))
        families = load_families_from_directory(path)

        num_active = sum(1 for f in families if f.is_active)
        multiple_pending = [f.id for f in families if f.count_by_status(*PENDING_STATUSES) > 1]

        if len(families) != len(files):
            click.echo(
                f"✗ Validation failed: {len(files) - len(families)} of {len(files)} "
                "family files could not be loaded",
                err=True,
            )
            sys.exit(1)
        if multiple_pending:
            click.echo(
                f"✗ Validation failed: families with more than one pending instance: "
                f"{multiple_pending}",
                err=True,
            )
            sys.exit(1)

        click.echo("✓ Validation successful!")
        click.echo(f"  Total families: {len(families)}")
        click.echo(f"  Active: {num_active}")
        click.echo(f"  Stopped: {len(families) - num_active}")

    except Exception as e:
        click.echo(f"✗ Validation failed: {e}", err=True)
        if logger.isEnabledFor(logging.DEBUG):
            traceback.print_exc()
        sys.exit(1)


@main.command(name="list")
@data_dir_option
@click.option(
    "--status",
    type=click.Choice(["active", "stopped", "all"]),
    default="active",
    help="Which families to list (default: active)",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json", "csv"]),
    default="table",
    help="Output format (default: table)",
)
def list_families(data_dir: Optional[str], status: str, output_format: str):
    """List recurrence families with instance counts.

    Listing active families first stops any family whose pending instance
    date has passed (see stop_missed_on_sync in _config.yaml).

    Examples:
        recurbook list
        recurbook list --status all --format csv
    """
    try:
        service = _open_service(data_dir)

        if status == "active":
            summaries = service.list_active_families()
        elif status == "stopped":
            summaries = service.list_stopped_families()
        else:
            summaries = service.list_families()

        if not summaries:
            click.echo("No families found")
            return

        if output_format == "table":
            print_family_table(summaries)
        elif output_format == "json":
            print_family_json(summaries)
        elif output_format == "csv":
            print_family_csv(summaries)

    except Exception as e:
        _report_error(e)


@main.command()
@data_dir_option
@click.argument("family_id", type=int)
def show(data_dir: Optional[str], family_id: int):
    """Show a family and its full instance history.

    Examples:
        recurbook show 3
    """
    try:
        service = _open_service(data_dir)
        family = service.get_family(family_id)
        template = family.template

        click.echo(f"Family: {family.id}")
        click.echo(f"Status: {family.status.value}")
        click.echo(f"Rule: {describe_rule(family.rule)} {rule_to_json(family.rule)}")
        click.echo(f"Time: {family.time}")
        if family.anchor_date:
            click.echo(f"Anchor date: {family.anchor_date}")
        if family.next_appointment_date:
            click.echo(f"Next appointment: {family.next_appointment_date}")
        if family.client_id is not None:
            click.echo(f"Client: {family.client_id}")

        click.echo("\nService:")
        click.echo(f"  Type: {template.service_type}")
        if template.size:
            click.echo(f"  Size: {template.size}")
        address = template.address
        if template.city_state_zip:
            address = f"{address}, {template.city_state_zip}"
        click.echo(f"  Address: {address}")
        click.echo(f"  Price: {template.price:,.2f}")

        click.echo(f"\nInstances ({len(family.appointments)}):")
        if family.appointments:
            print_appointment_table(family.appointments)

    except Exception as e:
        _report_error(e)


@main.command(name="next")
@click.argument("rule_json")
@click.argument("start_date", type=ISO_DATE)
@click.option(
    "--count",
    type=int,
    default=5,
    help="Number of occurrences to show (default: 5)",
)
@click.option(
    "--anchor-day",
    type=click.IntRange(1, 31),
    default=None,
    help="Anchor day of month for customMonths rules (default: day of START_DATE)",
)
def next_occurrences(rule_json: str, start_date, count: int, anchor_day: Optional[int]):
    """Show the occurrences of a rule following a date.

    RULE_JSON: Rule as JSON, e.g. '{"type": "biweekly"}'
    START_DATE: A known occurrence in YYYY-MM-DD format

    Examples:
        recurbook next '{"type": "biweekly"}' 2026-01-05
        recurbook next '{"type": "customMonths", "interval": 3}' 2026-01-31 --count 4
    """
    try:
        rule = parse_rule_json(rule_json)
        start = start_date.date()
        dates = RecurrenceEngine().upcoming(rule, start, count, anchor_day or start.day)

        click.echo(f"Rule: {describe_rule(rule)}")
        click.echo(f"From: {start}")
        click.echo(f"\nNext occurrences ({len(dates)}):")
        for occurrence in dates:
            click.echo(f"  {occurrence} ({occurrence.strftime('%A')})")

    except Exception as e:
        _report_error(e)


@main.command()
@data_dir_option
@click.argument("family_id", type=int)
@click.argument("year", type=int)
@click.argument("month", type=click.IntRange(1, 12))
@click.option(
    "--exclude-existing",
    is_flag=True,
    help="Leave out dates that already hold one of the family's instances",
)
def project(
    data_dir: Optional[str],
    family_id: int,
    year: int,
    month: int,
    exclude_existing: bool,
):
    """Project a family's occurrences onto a month.

    Examples:
        recurbook project 3 2026 11
        recurbook project 3 2026 11 --exclude-existing
    """
    try:
        service = _open_service(data_dir)
        projected = service.project_occurrences(family_id, year, month, exclude_existing)

        click.echo(f"Family: {family_id}")
        click.echo(f"Month: {year}-{month:02d}")
        click.echo(f"\nProjected occurrences ({projected.count}):")
        for occurrence in projected.dates:
            click.echo(f"  {occurrence}")

    except Exception as e:
        _report_error(e)


@main.command()
@data_dir_option
@click.argument("year", type=int)
@click.argument("month", type=click.IntRange(1, 12))
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format (default: table)",
)
def revenue(data_dir: Optional[str], year: int, month: int, output_format: str):
    """Estimate a month's revenue from active families.

    Examples:
        recurbook revenue 2026 11
        recurbook revenue 2026 11 --format json
    """
    try:
        service = _open_service(data_dir)
        projection = service.project_revenue(year, month)

        if output_format == "json":
            data = {
                "year": year,
                "month": month,
                "currency": service.config.currency,
                "total": str(projection.total),
                "details": [
                    {
                        "family_id": d.family_id,
                        "occurrences": d.occurrences,
                        "price": str(d.price),
                        "revenue": str(d.revenue),
                    }
                    for d in projection.details
                ],
            }
            click.echo(json.dumps(data, indent=2))
        else:
            click.echo(f"Projected revenue for {year}-{month:02d}\n")
            print_revenue_table(projection, service.config.currency)

    except Exception as e:
        _report_error(e)


@main.command()
@data_dir_option
@click.option(
    "--rule",
    "rule_json",
    required=True,
    help='Rule as JSON, e.g. \'{"type": "weekly"}\'',
)
@click.option("--date", "start_date", type=ISO_DATE, required=True, help="First appointment date")
@click.option("--time", "time_", default=None, help="Appointment time HH:MM (default from config)")
@click.option("--address", required=True, help="Service address")
@click.option("--city-state-zip", default=None, help="City, state and ZIP")
@click.option("--price", type=Decimal, default=constants.ZERO_PRICE, help="Price per occurrence")
@click.option("--service-type", default="standard", help="Service type (default: standard)")
@click.option("--size", default=None, help="Property size")
@click.option("--notes", default=None, help="Notes copied into every instance")
@click.option("--client-id", type=int, default=None, help="Client id")
@click.option("--admin-id", type=int, default=None, help="Admin id")
@click.option("--confirmed", is_flag=True, help="Book the first appointment straight away")
def create(
    data_dir: Optional[str],
    rule_json: str,
    start_date,
    time_: Optional[str],
    address: str,
    city_state_zip: Optional[str],
    price: Decimal,
    service_type: str,
    size: Optional[str],
    notes: Optional[str],
    client_id: Optional[int],
    admin_id: Optional[int],
    confirmed: bool,
):
    """Create a recurrence family.

    Examples:
        recurbook create --rule '{"type": "biweekly"}' --date 2026-11-02 \\
            --address "12 Elm St" --price 120
        recurbook create --rule '{"type": "monthlyPattern", "weekOfMonth": 1, "dayOfWeek": 1}' \\
            --date 2026-11-02 --time 10:30 --address "4 Oak Ave" --confirmed
    """
    try:
        service = _open_service(data_dir)
        template = {
            "service_type": service_type,
            "size": size,
            "address": address,
            "city_state_zip": city_state_zip,
            "price": price,
            "notes": notes,
        }
        family = service.create_family(
            client_id,
            template,
            start_date.date(),
            parse_rule_json(rule_json),
            time=time_,
            admin_id=admin_id,
            confirmed=confirmed,
        )

        click.echo(f"✓ Created family {family.id}: {describe_rule(family.rule)}")
        click.echo(f"  Next appointment: {family.next_appointment_date}")

    except Exception as e:
        _report_error(e)


@main.command()
@data_dir_option
@click.argument("instance_id", type=int)
@click.option("--date", "new_date", type=ISO_DATE, default=None, help="Confirm on a different date")
@click.option("--time", "new_time", default=None, help="Confirm at a different time (HH:MM)")
def confirm(data_dir: Optional[str], instance_id: int, new_date, new_time: Optional[str]):
    """Confirm a family's pending instance.

    With --date the instance is confirmed on that date and the family
    continues from it.

    Examples:
        recurbook confirm 42
        recurbook confirm 42 --date 2026-11-04 --time 13:00
    """
    try:
        service = _open_service(data_dir)
        if new_date is not None:
            result = service.confirm_and_reschedule_instance(
                instance_id, new_date.date(), new_time
            )
        else:
            result = service.confirm_instance(instance_id)

        click.echo(f"✓ Confirmed appointment {result.instance.id} on {result.instance.date}")
        _echo_next_instance(result)

    except Exception as e:
        _report_error(e)


@main.command()
@data_dir_option
@click.argument("instance_id", type=int)
def skip(data_dir: Optional[str], instance_id: int):
    """Skip a family's pending instance.

    Examples:
        recurbook skip 42
    """
    try:
        service = _open_service(data_dir)
        result = service.skip_instance(instance_id)

        click.echo(f"✓ Skipped appointment {result.instance.id} on {result.instance.date}")
        _echo_next_instance(result)

    except Exception as e:
        _report_error(e)


def _echo_next_instance(result: InstanceAction) -> None:
    if result.next_instance is not None:
        click.echo(
            f"  Next appointment: {result.next_instance.date} (id {result.next_instance.id})"
        )
    else:
        click.echo(f"  Family {result.family.id} is stopped; no next appointment generated")


@main.command()
@data_dir_option
@click.argument("instance_id", type=int)
@click.argument("new_date", type=ISO_DATE)
@click.option("--time", "new_time", default=None, help="New time (HH:MM)")
def move(data_dir: Optional[str], instance_id: int, new_date, new_time: Optional[str]):
    """Move a pending instance to another date without confirming it.

    Examples:
        recurbook move 42 2026-11-05 --time 14:00
    """
    try:
        service = _open_service(data_dir)
        appointment = service.move_instance(instance_id, new_date.date(), new_time)
        click.echo(
            f"✓ Moved appointment {appointment.id} to {appointment.date} {appointment.time}"
        )

    except Exception as e:
        _report_error(e)


@main.command()
@data_dir_option
@click.argument("family_id", type=int)
def stop(data_dir: Optional[str], family_id: int):
    """Stop a family from generating appointments.

    Examples:
        recurbook stop 3
    """
    try:
        service = _open_service(data_dir)
        service.stop_family(family_id)
        click.echo(f"✓ Stopped family {family_id}")

    except Exception as e:
        _report_error(e)


@main.command()
@data_dir_option
@click.argument("family_id", type=int)
@click.argument("start_date", type=ISO_DATE)
@click.option("--time", "time_", default=None, help="Appointment time (HH:MM)")
def restart(data_dir: Optional[str], family_id: int, start_date, time_: Optional[str]):
    """Restart a stopped family on a date (today or later).

    Examples:
        recurbook restart 3 2026-11-09
    """
    try:
        service = _open_service(data_dir)
        result = service.restart_family(family_id, start_date.date(), time_)
        click.echo(f"✓ Restarted family {family_id}")
        click.echo(f"  Next appointment: {result.instance.date} (id {result.instance.id})")

    except Exception as e:
        _report_error(e)


@main.command()
@data_dir_option
@click.argument("family_id", type=int)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def delete(data_dir: Optional[str], family_id: int, yes: bool):
    """Delete a stopped family, keeping its past instances in history/.

    Examples:
        recurbook delete 3 --yes
    """
    if not yes:
        click.confirm(f"Delete family {family_id}?", abort=True)

    try:
        service = _open_service(data_dir)
        history = service.delete_family(family_id)
        click.echo(f"✓ Deleted family {family_id}")
        click.echo(f"  Kept {len(history.appointments)} instances in history")

    except Exception as e:
        _report_error(e)


@main.command()
@data_dir_option
@click.option(
    "--today",
    type=ISO_DATE,
    default=None,
    help="Date to sync as of (default: today)",
)
def sync(data_dir: Optional[str], today):
    """Stop active families whose pending instance date has passed.

    Meant to run nightly from cron.

    Examples:
        recurbook sync
    """
    try:
        service = _open_service(data_dir)
        stopped = service.sync(today.date() if today is not None else None)

        if not stopped:
            click.echo("No missed instances")
            return
        click.echo(f"Stopped {len(stopped)} families with missed instances:")
        for family_id in stopped:
            click.echo(f"  {family_id}")

    except Exception as e:
        _report_error(e)


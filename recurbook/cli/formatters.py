"""Output formatting functions for CLI commands."""

import csv
import json
import sys

import click

from recurbook import constants


def print_family_table(summaries: list) -> None:
    """
    Print families as a formatted ASCII table.

    Displays family ID, status, rule summary, next pending date and the
    client address. Column widths are auto-calculated based on content.

    Args:
        summaries: List of FamilySummary objects to display.
    """
    id_width = max(len(str(s.family.id)) for s in summaries)
    id_width = max(id_width, len("ID"))

    rule_width = max(len(s.rule_summary) for s in summaries)
    rule_width = max(rule_width, len("Rule"))

    address_width = max(len(s.family.template.address) for s in summaries)
    address_width = max(address_width, len("Address"))
    address_width = min(address_width, constants.MAX_TABLE_COLUMN_WIDTH)

    click.echo(
        f"{'ID':<{id_width}}  {'Status':<8}  {'Rule':<{rule_width}}  {'Next':<10}  "
        f"{'Pending':>7}  {'Booked':>6}  {'Address':<{address_width}}"
    )
    click.echo("-" * (id_width + 8 + rule_width + 10 + 7 + 6 + address_width + 12))

    for s in summaries:
        family = s.family
        next_date = str(family.next_appointment_date or "-")
        address = family.template.address[:address_width]
        click.echo(
            f"{family.id:<{id_width}}  {family.status.value:<8}  "
            f"{s.rule_summary:<{rule_width}}  {next_date:<10}  "
            f"{s.unconfirmed_count:>7}  {s.confirmed_count:>6}  {address:<{address_width}}"
        )

    click.echo(f"\nTotal: {len(summaries)} families")


def print_family_csv(summaries: list) -> None:
    """
    Print families as comma-separated values (CSV) to stdout.

    Columns include: ID, Status, Rule type, Rule summary, Next date, Client,
    Price, Unconfirmed, Booked, Upcoming and Total instance counts.

    Args:
        summaries: List of FamilySummary objects to export.
    """
    writer = csv.writer(sys.stdout)
    writer.writerow(
        [
            "ID",
            "Status",
            "Rule",
            "Summary",
            "Next",
            "Client",
            "Price",
            "Unconfirmed",
            "Booked",
            "Upcoming",
            "Total",
        ]
    )

    for s in summaries:
        family = s.family
        writer.writerow(
            [
                family.id,
                family.status.value,
                family.rule.type,
                s.rule_summary,
                family.next_appointment_date or "",
                family.client_id if family.client_id is not None else "",
                f"{family.template.price:.2f}",
                s.unconfirmed_count,
                s.confirmed_count,
                s.upcoming_count,
                s.total_count,
            ],
        )


def print_family_json(summaries: list) -> None:
    """Print families as a JSON array, one object per family with its counts."""
    data = []
    for s in summaries:
        family_data = s.family.model_dump(mode="json", by_alias=True, exclude_none=True)
        family_data["summary"] = {
            "rule": s.rule_summary,
            "unconfirmed": s.unconfirmed_count,
            "booked": s.confirmed_count,
            "upcoming": s.upcoming_count,
            "total": s.total_count,
        }
        data.append(family_data)
    click.echo(json.dumps(data, indent=2))


def print_appointment_table(appointments: list) -> None:
    """Print a family's instances as a table.

    Args:
        appointments: List of Appointment objects, already sorted.
    """
    header = f"{'ID':>6}  {'Date':<10}  {'Time':<5}  {'Status':<15}  {'Price':>10}"
    click.echo(header)
    click.echo("-" * len(header))

    for appt in appointments:
        click.echo(
            f"{appt.id:>6}  {appt.date.strftime(constants.DATE_FORMAT):<10}  {appt.time:<5}  "
            f"{appt.status.value:<15}  {appt.price:>10,.2f}"
        )


def print_revenue_table(projection, currency: str) -> None:
    """Print a revenue projection with one row per family.

    Args:
        projection: RevenueProjection to display.
        currency: Currency code shown next to amounts.
    """
    header = f"{'Family':>6}  {'Occurrences':>11}  {'Price':>10}  {'Revenue':>12}"
    click.echo(header)
    click.echo("-" * len(header))

    for detail in projection.details:
        click.echo(
            f"{detail.family_id:>6}  {detail.occurrences:>11}  "
            f"{detail.price:>10,.2f}  {detail.revenue:>12,.2f}"
        )

    click.echo("-" * len(header))
    click.echo(f"Total: {projection.total:,.2f} {currency}")

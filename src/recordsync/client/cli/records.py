"""Record commands for the recordsync CLI.

Commands:
- add: Add a record (delivered now, or queued when offline)
- list: List records, optionally filtered by category or text
- random: Show a random record
- stats: Show record and category counts
"""

from __future__ import annotations

import asyncio
import sys

import click

from recordsync.client.cli.config import open_engine, open_store
from recordsync.core.errors import RecordSyncError
from recordsync.core.types import Record


def format_record(record: Record) -> str:
    """Format a record for terminal output."""
    source = f" [{record.source.value}]" if record.source else ""
    return f'"{record.text}" - {record.category}{source}'


@click.command()
@click.argument("text")
@click.argument("category")
@click.option("--offline", is_flag=True, help="Queue the record instead of delivering it now.")
def add(text: str, category: str, offline: bool) -> None:
    """Add a record with TEXT and CATEGORY."""

    async def _add() -> tuple[Record, int]:
        async with open_engine(online=not offline) as orchestrator:
            record = await orchestrator.add_record(text, category)
            return record, orchestrator.get_sync_state().pending_mutations

    try:
        record, pending = asyncio.run(_add())
    except RecordSyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Added {record.id}: {format_record(record)}")
    if pending:
        click.echo(f"{pending} mutation(s) waiting for delivery")


@click.command(name="list")
@click.option("--category", "-c", default=None, help="Only records whose category contains this.")
@click.option("--search", "-s", default=None, help="Only records whose text contains this.")
def list_records(category: str | None, search: str | None) -> None:
    """List records.

    The category filter is remembered and reused when omitted.
    """
    with open_store() as store:
        if category is None:
            category = store.load_filter()
        else:
            store.save_filter(category)

        records = store.filter_by_category(category)
        if search:
            needle = search.lower()
            records = [r for r in records if needle in r.text.lower()]

    if not records:
        click.echo("No records found.")
        return
    for record in records:
        click.echo(f"{record.id}  {format_record(record)}")


@click.command()
@click.option("--category", "-c", default=None, help="Pick from this category only.")
def random(category: str | None) -> None:
    """Show a random record."""
    with open_store() as store:
        record = store.random_record(category)
    if record is None:
        click.echo("No records found.")
        return
    click.echo(format_record(record))


@click.command()
def stats() -> None:
    """Show record and category counts."""
    with open_store() as store:
        summary = store.stats()
    click.echo(f"Total records: {summary['total']}")
    click.echo(f"Categories: {summary['categories']}")
    for name, count in sorted(summary["by_category"].items()):
        click.echo(f"  {name}: {count}")

"""Sync commands for the recordsync CLI.

Commands:
- configure: Set the remote server and collection
- sync: Run one sync cycle (optionally resolving conflicts interactively)
- status: Show sync state
- auto: Enable or disable periodic sync
- offline: Toggle offline mode
- watch: Keep syncing periodically until interrupted
"""

from __future__ import annotations

import asyncio
import sys

import click

from recordsync.client.cli.config import (
    load_config,
    load_settings,
    open_backend,
    open_engine,
    save_config,
    save_settings,
)
from recordsync.client.cli.records import format_record
from recordsync.client.store import RecordStore
from recordsync.core.config import DEFAULT_INTERVAL_MS, validate_interval
from recordsync.core.errors import RecordSyncError, ValidationError
from recordsync.sync.events import ConflictsDetected, QueueDrained, SyncCompleted, SyncFailed
from recordsync.sync.queue import OfflineQueue
from recordsync.sync.types import Conflict, ConflictKind, ResolutionChoice, SyncReport

SKIP = "skip"


def format_conflict(index: int, conflict: Conflict) -> str:
    """Format a conflict for terminal output."""
    if conflict.kind == ConflictKind.CONTENT_MISMATCH and conflict.remote is not None:
        return (
            f"[{index}] {conflict.kind.value}: local {format_record(conflict.local)}"
            f" / server {format_record(conflict.remote)}"
        )
    return f"[{index}] {conflict.kind.value}: {format_record(conflict.local)}"


def print_report(report: SyncReport) -> None:
    """Print a sync cycle summary."""
    click.echo(f"Fetched {report.fetched} remote record(s)")
    if report.merged:
        click.echo("Merged without conflicts")
    elif report.conflicts:
        click.echo(f"{len(report.conflicts)} conflict(s) detected")
        if report.auto_resolved:
            click.echo(f"Auto-resolved {report.auto_resolved} conflict(s)")
    drain = report.drain
    if drain.attempted:
        click.echo(f"Delivered {len(drain.delivered)} queued mutation(s), {len(drain.failed)} failed")


def interval_ms_from_seconds(seconds: int) -> int:
    """Convert and validate an interval given in seconds."""
    try:
        return validate_interval(seconds * 1000)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="--interval") from e


@click.command()
@click.option("--server-url", prompt="Server URL", help="Base URL of the remote API.")
@click.option("--collection", default="posts", show_default=True, help="Record collection path.")
@click.option("--owner-ref", default=1, show_default=True, type=int, help="Owner reference for posts.")
@click.option("--timeout", default=10.0, show_default=True, type=float, help="Request timeout (s).")
def configure(server_url: str, collection: str, owner_ref: int, timeout: float) -> None:
    """Set the remote record source."""
    config = load_config()
    config.update(
        {
            "server_url": server_url.rstrip("/"),
            "collection": collection,
            "owner_ref": owner_ref,
            "timeout": timeout,
        }
    )
    save_config(config)
    click.echo(f"Remote set to {config['server_url']}/{collection}")


@click.command()
@click.option("--interactive", "-i", is_flag=True, help="Resolve conflicts one by one.")
def sync(interactive: bool) -> None:
    """Run one sync cycle."""

    async def _sync() -> None:
        async with open_engine() as orchestrator:
            report = await orchestrator.run_cycle()
            print_report(report)

            conflicts = orchestrator.get_pending_conflicts()
            if not conflicts:
                return
            for index, conflict in enumerate(conflicts):
                click.echo(format_conflict(index, conflict))
            if not interactive:
                click.echo("Run 'recordsync sync --interactive' to resolve them.")
                return

            index = 0
            while index < len(orchestrator.get_pending_conflicts()):
                conflict = orchestrator.get_pending_conflicts()[index]
                click.echo(format_conflict(index, conflict))
                options = [c.value for c in ResolutionChoice]
                if conflict.remote is None:
                    options.remove(ResolutionChoice.USE_REMOTE.value)
                choice = click.prompt(
                    "Resolution",
                    type=click.Choice([*options, SKIP]),
                    default=SKIP,
                )
                if choice == SKIP:
                    index += 1
                    continue
                orchestrator.resolve_conflict(index, choice)

            remaining = len(orchestrator.get_pending_conflicts())
            if remaining:
                click.echo(f"{remaining} conflict(s) left unresolved")

    try:
        asyncio.run(_sync())
    except RecordSyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.command()
def status() -> None:
    """Show sync state."""
    with open_backend() as backend:
        settings = load_settings(backend)
        pending = len(OfflineQueue(backend))
        store = RecordStore(backend)
        store.load()
        records = len(store)

    last_sync = settings.last_sync_at.isoformat() if settings.last_sync_at else "never"
    auto = f"every {settings.interval_ms // 1000}s" if settings.auto_sync_enabled else "off"
    click.echo(f"Records: {records}")
    click.echo(f"Pending mutations: {pending}")
    click.echo(f"Auto-sync: {auto}")
    click.echo(f"Offline mode: {'on' if settings.offline_mode else 'off'}")
    click.echo(f"Last sync: {last_sync}")


@click.command()
@click.option("--interval", "-n", type=int, default=None, help="Interval in seconds (10-300).")
@click.option("--off", is_flag=True, help="Disable periodic sync.")
def auto(interval: int | None, off: bool) -> None:
    """Enable or disable periodic sync (used by 'watch')."""
    with open_backend() as backend:
        settings = load_settings(backend)
        if off:
            settings.auto_sync_enabled = False
        else:
            if interval is not None:
                settings.interval_ms = interval_ms_from_seconds(interval)
            settings.auto_sync_enabled = True
        try:
            save_settings(backend, settings)
        except RecordSyncError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    if settings.auto_sync_enabled:
        click.echo(f"Auto-sync enabled (every {settings.interval_ms // 1000}s)")
    else:
        click.echo("Auto-sync disabled")


@click.command()
@click.option("--on/--off", "enabled", default=True, help="Queue all mutations until turned off.")
def offline(enabled: bool) -> None:
    """Toggle offline mode."""
    with open_backend() as backend:
        settings = load_settings(backend)
        settings.offline_mode = enabled
        try:
            save_settings(backend, settings)
        except RecordSyncError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    click.echo(f"Offline mode {'on' if enabled else 'off'}")


@click.command()
@click.option("--interval", "-n", type=int, default=None, help="Interval in seconds (10-300).")
def watch(interval: int | None) -> None:
    """Sync now, then keep syncing periodically until interrupted."""
    interval_ms = interval_ms_from_seconds(interval) if interval is not None else None

    async def _watch() -> None:
        async with open_engine() as orchestrator:
            orchestrator.events.subscribe(
                SyncCompleted,
                lambda e: click.echo(
                    f"Synced at {e.report.finished_at:%H:%M:%S}: "
                    f"{e.report.fetched} fetched, {len(e.report.conflicts)} conflict(s)"
                ),
            )
            orchestrator.events.subscribe(
                SyncFailed, lambda e: click.echo(f"Sync failed: {e.error}", err=True)
            )
            orchestrator.events.subscribe(
                ConflictsDetected,
                lambda e: click.echo(
                    f"{len(e.conflicts)} conflict(s) "
                    f"{'auto-resolved' if e.auto_resolved else 'need resolution'}"
                ),
            )
            orchestrator.events.subscribe(
                QueueDrained,
                lambda e: click.echo(f"Delivered {len(e.result.delivered)}, {e.remaining} queued"),
            )

            # Timer only; the saved auto-sync setting is left as it is
            orchestrator.scheduler.start(
                interval_ms or orchestrator.settings.interval_ms or DEFAULT_INTERVAL_MS
            )
            click.echo(
                f"Watching (every {orchestrator.scheduler.interval_ms // 1000}s), Ctrl+C to stop"
            )
            try:
                await orchestrator.run_cycle()
            except RecordSyncError:
                pass  # Reported through SyncFailed
            await asyncio.Event().wait()

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        click.echo("Stopped")

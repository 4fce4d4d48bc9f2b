"""Command line entry points for inspecting and driving offline sync."""

from __future__ import annotations

import click

from .config import BaseConfig
from .context import SyncContext, create_sync_context
from .errors import PocketSyncError
from .logging_config import setup_logging


@click.group()
@click.option("--offline", is_flag=True, default=False, help="Treat the network as unavailable")
@click.pass_context
def cli(ctx: click.Context, offline: bool) -> None:
    """PocketSync offline store and sync tools."""

    if ctx.obj is None:
        config = BaseConfig()
        setup_logging(config)
        sync_ctx = create_sync_context(config)
        ctx.call_on_close(sync_ctx.close)
        ctx.obj = sync_ctx
    if offline:
        ctx.obj.connectivity.set_online(False)


def _open(sync_ctx: SyncContext) -> SyncContext:
    try:
        sync_ctx.store.init()
    except PocketSyncError as exc:
        raise click.ClickException(str(exc)) from exc
    return sync_ctx


@cli.command("status")
@click.pass_obj
def status(sync_ctx: SyncContext) -> None:
    """Show connectivity, last sync time and pending work."""

    snapshot = _open(sync_ctx).controller.status()
    click.echo(f"Online:               {'yes' if snapshot.is_online else 'no'}")
    click.echo(f"Last sync:            {snapshot.last_sync or 'never'}")
    click.echo(f"Pending mutations:    {snapshot.pending_count}")
    click.echo(f"Unresolved conflicts: {snapshot.unresolved_conflicts}")
    click.echo(f"Dropped changes:      {snapshot.dropped_count}")


@cli.command("sync")
@click.option("--probe/--no-probe", default=True, help="Check the server is reachable first")
@click.pass_obj
def sync(sync_ctx: SyncContext, probe: bool) -> None:
    """Run one pull-then-push cycle."""

    _open(sync_ctx)
    if probe and sync_ctx.connectivity.is_online:
        sync_ctx.connectivity.probe()
    try:
        result = sync_ctx.controller.trigger_sync()
    except PocketSyncError as exc:
        raise click.ClickException(f"Sync failed: {exc}") from exc

    click.echo(f"Sync {result.status.value}")
    if result.ok:
        click.echo(
            f"Pulled {result.records_pulled} records, {result.categories_pulled} categories; "
            f"pushed {result.pushed}, conflicts {result.conflicts}, "
            f"retried {result.retried}, dropped {result.dropped}"
        )
    elif result.error:
        click.echo(f"Error: {result.error}")


@cli.command("conflicts")
@click.option("--all", "show_all", is_flag=True, default=False, help="Include resolved conflicts")
@click.pass_obj
def conflicts(sync_ctx: SyncContext, show_all: bool) -> None:
    """List conflicts waiting for a decision."""

    ledger = _open(sync_ctx).ledger
    rows = ledger.list() if show_all else ledger.list(resolved=False)
    if not rows:
        click.echo("No conflicts.")
        return
    for conflict in rows:
        state = f"resolved ({conflict.resolution})" if conflict.resolved else "open"
        click.echo(f"{conflict.id}  {conflict.entity_kind} {conflict.entity_id}  {state}")
        if not conflict.resolved:
            click.echo(f"    local:  {conflict.local_version}")
            click.echo(f"    server: {conflict.server_version}")


@cli.command("resolve")
@click.argument("conflict_id")
@click.option(
    "--use",
    "side",
    type=click.Choice(["local", "server"]),
    required=True,
    help="Which version to keep",
)
@click.pass_obj
def resolve(sync_ctx: SyncContext, conflict_id: str, side: str) -> None:
    """Resolve a conflict by keeping the local or the server version."""

    _open(sync_ctx)
    try:
        conflict = sync_ctx.controller.resolve_conflict(conflict_id, f"use-{side}")
    except PocketSyncError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Resolved {conflict.id} using the {side} version.")


@cli.command("clear-resolved")
@click.pass_obj
def clear_resolved(sync_ctx: SyncContext) -> None:
    """Delete conflicts that have already been resolved."""

    removed = _open(sync_ctx).ledger.clear_resolved()
    click.echo(f"Removed {removed} resolved conflicts.")


@cli.command("dropped")
@click.option("--clear", is_flag=True, default=False, help="Forget the list after printing it")
@click.pass_obj
def dropped(sync_ctx: SyncContext, clear: bool) -> None:
    """List local changes dropped after repeated push failures."""

    queue = _open(sync_ctx).queue
    entries = queue.dropped_mutations()
    if not entries:
        click.echo("No dropped changes.")
    for item in entries:
        click.echo(
            f"#{item['sequence_id']} {item['op_kind']} {item['entity_kind']} "
            f"{item.get('entity_id') or ''} at {item['dropped_at']}: {item['reason']}"
        )
    if clear:
        queue.clear_dropped()


def main() -> None:
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()

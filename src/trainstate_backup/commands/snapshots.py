"""Backup listing, preview and deletion commands."""

from datetime import timedelta

import click

from ..models.snapshot import SnapshotPreview
from .base import (
    allow_metered_option,
    async_command,
    build_service,
    echo_error,
    echo_info,
    echo_success,
    echo_warning,
    ensure_initialized,
    format_table,
    format_timestamp,
    handle_backup_errors,
)
from .prompts import confirm_delete


@click.command(name="list")
@allow_metered_option
@click.pass_context
@async_command
@handle_backup_errors
async def list_backups(ctx, allow_metered: bool):
    """List available backups, newest first."""
    ensure_initialized(ctx)
    service = await build_service()

    summaries = await service.list_backups(allow_metered=allow_metered)
    if not summaries:
        echo_info("No backups found. Create one with 'trainstate-backup backup'")
        return

    headers = ["ID", "Created", "Device", "Workouts", "Categories", "Subcategories"]
    rows = []
    for summary in summaries:
        rows.append([
            summary.snapshot_id,
            format_timestamp(summary.created_at),
            summary.device_name[:20],
            str(summary.workout_count),
            str(summary.category_count),
            f"{summary.subcategory_count} ({summary.assigned_subcategory_count} used)",
        ])

    click.echo()
    click.echo(format_table(headers, rows))
    click.echo()
    click.echo(f"Total: {len(summaries)} backup(s)")


def echo_preview(preview: SnapshotPreview, limit: int) -> None:
    summary = preview.summary
    graph = preview.graph

    click.echo()
    click.echo("=" * 60)
    click.echo(f"Backup {summary.snapshot_id}")
    click.echo("=" * 60)
    click.echo(f"Created: {format_timestamp(summary.created_at)} on {summary.device_name}")
    click.echo(f"Contents: {graph.get_summary()}")

    if graph.categories:
        click.echo()
        click.echo("Categories:")
        for category in graph.categories:
            subs = ", ".join(s.name for s in category.subcategories)
            click.echo(f"  - {category.name}" + (f" ({subs})" if subs else ""))

    if graph.workouts:
        click.echo()
        click.echo("Recent workouts:")
        workouts = sorted(graph.workouts, key=lambda w: w.start_date, reverse=True)
        for workout in workouts[:limit]:
            minutes = int(workout.duration // 60)
            categories = ", ".join(workout.category_names) or "uncategorized"
            click.echo(
                f"  - {format_timestamp(workout.start_date)}  {workout.type.value}, "
                f"{minutes} min [{categories}]"
            )
        if len(workouts) > limit:
            click.echo(f"  ... and {len(workouts) - limit} more")

    if graph.templates:
        click.echo()
        click.echo("Strength templates:")
        for template in graph.templates:
            click.echo(f"  - {template.name} ({len(template.exercises)} exercises)")

    report = preview.report
    if report.has_warnings:
        click.echo()
        if report.malformed:
            echo_warning(f"{len(report.malformed)} record(s) are unreadable and would be skipped")
        if report.dangling:
            echo_warning(f"{len(report.dangling)} reference(s) do not resolve and would be dropped")
        if report.unknown_kinds:
            echo_warning(f"{report.unknown_kinds} record(s) of unknown kind would be ignored")


@click.command()
@click.argument("snapshot_id")
@click.option("--limit", "-n", default=10, show_default=True, help="Workouts to show")
@allow_metered_option
@click.pass_context
@async_command
@handle_backup_errors
async def preview(ctx, snapshot_id: str, limit: int, allow_metered: bool):
    """Show what a backup contains without restoring it."""
    ensure_initialized(ctx)
    service = await build_service()

    result = await service.preview_backup(snapshot_id, allow_metered=allow_metered)
    echo_preview(result, limit)


@click.command()
@click.argument("snapshot_ids", nargs=-1, required=True)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@allow_metered_option
@click.pass_context
@async_command
@handle_backup_errors
async def delete(ctx, snapshot_ids: tuple[str, ...], yes: bool, allow_metered: bool):
    """Delete one or more backups."""
    ensure_initialized(ctx)
    service = await build_service()

    if not yes:
        listed = {
            s.snapshot_id: s for s in await service.list_backups(allow_metered=allow_metered)
        }
        selected = [listed[sid] for sid in snapshot_ids if sid in listed]
        if selected and not await confirm_delete(selected):
            echo_info("Cancelled")
            return

    result = await service.delete_backups(list(snapshot_ids), allow_metered=allow_metered)

    for snapshot_id in result.succeeded:
        echo_success(f"Backup {snapshot_id} deleted")
    if result.failed:
        for snapshot_id in result.failed:
            echo_error(f"Backup {snapshot_id} could not be fully deleted; run delete again")
        ctx.exit(1)


@click.command()
@click.option(
    "--older-than",
    type=float,
    default=None,
    help="Only sweep incomplete backups idle for this many hours",
)
@allow_metered_option
@click.pass_context
@async_command
@handle_backup_errors
async def sweep(ctx, older_than: float | None, allow_metered: bool):
    """Remove records left behind by backups that never completed."""
    ensure_initialized(ctx)
    service = await build_service()

    grace = timedelta(hours=older_than) if older_than is not None else None

    result = await service.sweep_orphans(allow_metered=allow_metered, older_than=grace)
    if not result.succeeded and not result.failed:
        echo_info("No incomplete backups found")
        return

    echo_success(f"Removed {len(result.succeeded)} incomplete backup(s)")
    if result.failed:
        echo_error(f"{len(result.failed)} incomplete backup(s) could not be removed")
        ctx.exit(1)

"""Restore backup command."""

import click

from ..models.snapshot import RestoreReport
from .base import (
    allow_metered_option,
    async_command,
    build_service,
    echo_info,
    echo_success,
    echo_warning,
    ensure_initialized,
    handle_backup_errors,
)
from .prompts import choose_snapshot, confirm_replace, describe_summary


def echo_report(report: RestoreReport) -> None:
    """Print restored counts and any reconstruction warnings."""
    counts = report.restored
    click.echo(
        f"  {counts.get('workout', 0)} workouts, {counts.get('category', 0)} categories, "
        f"{counts.get('subcategory', 0)} subcategories, {counts.get('exercise', 0)} exercises, "
        f"{counts.get('strengthTemplate', 0)} templates"
    )
    for failure in report.malformed:
        echo_warning(f"Skipped unreadable record {failure.record_id}: {failure.reason}")
    if report.dangling:
        echo_warning(f"Dropped {len(report.dangling)} reference(s) to missing records")
    if report.unknown_kinds:
        echo_warning(f"Ignored {report.unknown_kinds} record(s) of unknown kind")


@click.command()
@click.argument("snapshot_id", required=False)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@allow_metered_option
@click.pass_context
@async_command
@handle_backup_errors
async def restore(ctx, snapshot_id: str | None, yes: bool, allow_metered: bool):
    """Replace local data with a backup.

    Without SNAPSHOT_ID, pick one of the available backups interactively.
    """
    ensure_initialized(ctx)
    service = await build_service()

    source = f"backup {snapshot_id}"
    if snapshot_id is None:
        summaries = await service.list_backups(allow_metered=allow_metered)
        if not summaries:
            echo_info("No backups found")
            return
        snapshot_id = await choose_snapshot(summaries, "restore")
        if snapshot_id is None:
            echo_info("Cancelled")
            return
        chosen = next(s for s in summaries if s.snapshot_id == snapshot_id)
        source = f"the backup of {describe_summary(chosen)}"

    if not yes and not await confirm_replace(source):
        echo_info("Cancelled")
        return

    echo_info(f"Restoring backup {snapshot_id}...")
    report = await service.restore_backup(snapshot_id, allow_metered=allow_metered)
    echo_success("Restore complete")
    echo_report(report)

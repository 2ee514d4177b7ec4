"""Local JSON backup file commands."""

import click

from .base import (
    async_command,
    build_service,
    echo_info,
    echo_success,
    ensure_initialized,
    handle_backup_errors,
)
from .prompts import confirm_replace
from .restore import echo_report


@click.command(name="export-file")
@click.argument("path", type=click.Path(dir_okay=False, writable=True))
@click.pass_context
@async_command
@handle_backup_errors
async def export_file(ctx, path: str):
    """Write all local data to a JSON backup file."""
    ensure_initialized(ctx)
    service = await build_service()

    summary = await service.export_file(path)
    echo_success(f"Exported {summary.workout_count} workouts to {path}")


@click.command(name="import-file")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
@async_command
@handle_backup_errors
async def import_file(ctx, path: str, yes: bool):
    """Replace local data with the contents of a JSON backup file."""
    ensure_initialized(ctx)
    service = await build_service()

    if not yes and not await confirm_replace(path):
        echo_info("Cancelled")
        return

    report = await service.import_file(path)
    echo_success(f"Imported {path}")
    echo_report(report)

"""Create backup command."""

import click

from .base import (
    allow_metered_option,
    async_command,
    build_service,
    echo_info,
    echo_success,
    ensure_initialized,
    handle_backup_errors,
)


@click.command()
@allow_metered_option
@click.pass_context
@async_command
@handle_backup_errors
async def backup(ctx, allow_metered: bool):
    """Snapshot all local data to the record store."""
    ensure_initialized(ctx)
    service = await build_service()

    echo_info("Creating backup...")
    summary = await service.create_backup(allow_metered=allow_metered)

    echo_success(f"Backup {summary.snapshot_id} created")
    click.echo(
        f"  {summary.workout_count} workouts, {summary.category_count} categories, "
        f"{summary.subcategory_count} subcategories, {summary.exercise_count} exercises, "
        f"{summary.template_count} templates"
    )

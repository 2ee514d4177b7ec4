"""CLI entry point for trainstate-backup."""

import logging

import click

from .commands import (
    backup,
    delete,
    export_file,
    import_file,
    init,
    list_backups,
    preview,
    restore,
    status,
    sweep,
)
from .log import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="trainstate-backup")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.option("--log-json", is_flag=True, help="Emit logs as JSON lines")
def main(verbose: bool, log_json: bool):
    """trainstate-backup: snapshot and restore your TrainState workout log.

    Backups are written to a record store (by default a SQLite file under
    the data directory; point it at a synced folder to keep copies
    off-device). Transfers are refused on metered connections unless
    --allow-metered is given.

    Example usage:

        # Initialize the project
        trainstate-backup init --record-store ~/Sync/trainstate/records.db

        # Back up, list and restore
        trainstate-backup backup
        trainstate-backup list
        trainstate-backup restore <backup-id>
    """
    configure_logging(
        level=logging.DEBUG if verbose else logging.WARNING,
        structured=log_json,
    )


# Register commands
main.add_command(init)
main.add_command(status)
main.add_command(backup)
main.add_command(list_backups)
main.add_command(preview)
main.add_command(restore)
main.add_command(delete)
main.add_command(sweep)
main.add_command(export_file)
main.add_command(import_file)


def run():
    """Run the CLI (handles async event loop)."""
    main()


if __name__ == "__main__":
    run()

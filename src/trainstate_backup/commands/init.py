"""Initialize project command."""

import click

from ..config import BackupConfig, CONFIG_FILENAME, get_data_dir, load_config, save_config
from ..db import get_db_path, init_db
from ..errors import RemoteError
from .base import async_command, echo_error, echo_info, echo_success, get_record_store


@click.command()
@click.option(
    "--record-store",
    type=click.Path(dir_okay=False),
    help="Path of the backup record store (e.g. on a synced folder)",
)
@click.option("--metered", is_flag=True, help="Treat this machine's connection as metered")
@click.option("--probe-host", help="Host to probe for connectivity before transfers")
@click.pass_context
@async_command
async def init(ctx, record_store: str | None, metered: bool, probe_host: str | None):
    """Initialize the local database and the backup record store.

    Creates the data directory, the local SQLite database and a
    config.json holding the backup settings.
    """
    data_dir = get_data_dir()
    echo_info(f"Initializing trainstate-backup in {data_dir}")
    data_dir.mkdir(parents=True, exist_ok=True)

    await init_db(get_db_path(data_dir))
    echo_success("Local database initialized")

    if (data_dir / CONFIG_FILENAME).exists():
        config = load_config(data_dir)
    else:
        config = BackupConfig()
    if record_store:
        config.record_store_path = record_store
    if probe_host:
        config.probe_host = probe_host
    if metered:
        config.metered = True
    save_config(config, data_dir)
    echo_success(f"Configuration written to {data_dir / CONFIG_FILENAME}")

    store = get_record_store(config, data_dir)
    try:
        await store.init()
    except RemoteError as e:
        echo_error(f"Could not initialize record store: {e}")
        ctx.exit(1)
    echo_success(f"Record store ready at {store.db_path}")

    click.echo()
    click.echo("trainstate-backup is ready to use!")
    click.echo()
    click.echo("Next steps:")
    click.echo("  trainstate-backup backup        # Snapshot local data")
    click.echo("  trainstate-backup list          # Show available backups")

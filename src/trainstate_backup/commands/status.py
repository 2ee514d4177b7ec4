"""Show local data and connection status."""

import click

from ..config import get_data_dir, load_config
from ..db import SQLiteLocalStore, get_db_path
from ..services.network_gate import ConnectionType
from .base import async_command, ensure_initialized, get_gate, get_record_store


@click.command()
@click.pass_context
@async_command
async def status(ctx):
    """Show what would be backed up and whether transfers are allowed."""
    ensure_initialized(ctx)
    data_dir = get_data_dir()
    config = load_config(data_dir)

    store = SQLiteLocalStore(get_db_path(data_dir))
    graph = await store.load_graph()

    gate = get_gate(config)
    connection = await gate.classify()

    click.echo()
    click.echo(f"Data directory: {data_dir}")
    click.echo(f"Record store:   {get_record_store(config, data_dir).db_path}")
    click.echo(f"Device name:    {config.device_name}")
    click.echo()
    click.echo(f"Local data: {graph.get_summary()}")
    click.echo(f"Subcategories in use: {graph.assigned_subcategory_count()}")
    click.echo()
    if connection == ConnectionType.UNMETERED:
        safe = click.style("yes", fg="green")
    else:
        safe = click.style("no", fg="yellow")
    click.echo(f"Connection: {connection.value} (safe to transfer: {safe})")

"""Shared CLI utilities."""

import asyncio
from functools import wraps
from pathlib import Path

import click

from ..clients.sqlite_store import SQLiteRecordStore
from ..config import BackupConfig, get_data_dir, load_config
from ..db import SQLiteLocalStore, get_db_path, get_record_store_path
from ..errors import (
    BackupError,
    NetworkBlocked,
    PartialWriteFailure,
    QuotaExceeded,
    RemoteError,
    RemoteUnavailable,
    RestoreError,
    SnapshotNotFound,
)
from ..services.backup import BackupService
from ..services.network_gate import NetworkGate, ProbeClassifier

# Exit codes by error family
EXIT_BLOCKED = 3
EXIT_NOT_FOUND = 4
EXIT_PARTIAL = 5
EXIT_RESTORE = 6
EXIT_REMOTE = 7

allow_metered_option = click.option(
    "--allow-metered",
    is_flag=True,
    help="Allow transfers over a metered connection",
)


def async_command(f):
    """Decorator to run async Click commands."""

    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))

    return wrapper


def ensure_initialized(ctx: click.Context) -> None:
    """Ensure the database is initialized."""
    db_path = get_db_path()
    if not db_path.exists():
        click.echo(
            click.style("Error: ", fg="red")
            + "Project not initialized. Run 'trainstate-backup init' first."
        )
        ctx.exit(1)


def get_record_store(config: BackupConfig, data_dir: Path | None = None) -> SQLiteRecordStore:
    """Build the record store named by the configuration."""
    path = (
        Path(config.record_store_path).expanduser()
        if config.record_store_path
        else get_record_store_path(data_dir)
    )
    return SQLiteRecordStore(path, max_batch_size=config.max_batch_size)


def get_gate(config: BackupConfig) -> NetworkGate:
    return NetworkGate(
        ProbeClassifier(config.probe_host, config.probe_port, metered=config.metered)
    )


async def build_service(data_dir: Path | None = None) -> BackupService:
    """Wire a BackupService from the on-disk configuration."""
    data_dir = data_dir or get_data_dir()
    config = load_config(data_dir)
    record_store = get_record_store(config, data_dir)
    await record_store.init()
    return BackupService(
        local_store=SQLiteLocalStore(get_db_path(data_dir)),
        record_store=record_store,
        gate=get_gate(config),
        config=config,
    )


def describe_error(error: BackupError) -> tuple[str, int]:
    """Map an engine error to a user message and exit code."""
    if isinstance(error, NetworkBlocked):
        return str(error), EXIT_BLOCKED
    if isinstance(error, SnapshotNotFound):
        return f"Backup {error.snapshot_id} not found", EXIT_NOT_FOUND
    if isinstance(error, QuotaExceeded):
        return (
            f"Remote storage quota exceeded; {len(error.failed_record_ids)} record(s) "
            "were not written and the backup is not listed",
            EXIT_PARTIAL,
        )
    if isinstance(error, PartialWriteFailure):
        if error.interrupted:
            return (
                "Connection changed during backup; "
                f"{len(error.failed_record_ids)} record(s) were not written",
                EXIT_PARTIAL,
            )
        return (
            f"{len(error.failed_record_ids)} record(s) could not be written; "
            "the backup is not listed",
            EXIT_PARTIAL,
        )
    if isinstance(error, RestoreError):
        if error.step == "clear":
            return f"Restore failed while clearing local data, nothing changed ({error})", EXIT_RESTORE
        return f"Restore failed ({error})", EXIT_RESTORE
    if isinstance(error, RemoteUnavailable):
        return f"Backup storage unavailable: {error}", EXIT_REMOTE
    if isinstance(error, RemoteError):
        return f"Backup storage error: {error}", EXIT_REMOTE
    return str(error), 1


def handle_backup_errors(f):
    """Turn engine errors into an error line and a non-zero exit."""

    @wraps(f)
    async def wrapper(*args, **kwargs):
        try:
            return await f(*args, **kwargs)
        except BackupError as e:
            message, code = describe_error(e)
            echo_error(message)
            raise click.exceptions.Exit(code)

    return wrapper


def echo_success(message: str) -> None:
    """Print a success message."""
    click.echo(click.style("[OK] ", fg="green") + message)


def echo_error(message: str) -> None:
    """Print an error message."""
    click.echo(click.style("[ERROR] ", fg="red") + message)


def echo_info(message: str) -> None:
    """Print an info message."""
    click.echo(click.style("[INFO] ", fg="blue") + message)


def echo_warning(message: str) -> None:
    """Print a warning message."""
    click.echo(click.style("[WARN] ", fg="yellow") + message)


def format_table(headers: list[str], rows: list[list[str]], padding: int = 2) -> str:
    """Format data as a simple table."""
    if not rows:
        return ""

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(str(cell)))

    lines = []
    lines.append("".join(h.ljust(widths[i] + padding) for i, h in enumerate(headers)).rstrip())
    lines.append("".join("-" * w + " " * padding for w in widths).rstrip())
    for row in rows:
        lines.append(
            "".join(str(cell).ljust(widths[i] + padding) for i, cell in enumerate(row)).rstrip()
        )

    return "\n".join(lines)


def format_timestamp(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "N/A"

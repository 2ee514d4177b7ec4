"""CLI commands for trainstate-backup."""

from .backup import backup
from .files import export_file, import_file
from .init import init
from .restore import restore
from .snapshots import delete, list_backups, preview, sweep
from .status import status

__all__ = [
    "backup",
    "delete",
    "export_file",
    "import_file",
    "init",
    "list_backups",
    "preview",
    "restore",
    "status",
    "sweep",
]

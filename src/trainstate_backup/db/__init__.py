"""Database layer for trainstate-backup."""

from .engine import get_db_path, get_record_store_path, init_db
from .local_store import LocalStore, SQLiteLocalStore

__all__ = [
    "get_db_path",
    "get_record_store_path",
    "init_db",
    "LocalStore",
    "SQLiteLocalStore",
]

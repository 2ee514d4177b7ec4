"""SQLite-file record store.

Keeps records in a single SQLite file, which can live on a shared or synced
volume to act as the remote side of a backup.
"""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

import aiosqlite

from ..errors import PermanentRemoteError, RemoteUnavailable, TransientRemoteError
from ..models.snapshot import Record, to_naive_local
from .base import BaseRecordStore

logger = logging.getLogger(__name__)


class SQLiteRecordStore(BaseRecordStore):
    """Record store backed by an ``aiosqlite`` database file."""

    def __init__(self, db_path: Path, max_batch_size: int | None = 400):
        super().__init__(max_batch_size=max_batch_size)
        self.db_path = Path(db_path)

    @property
    def store_name(self) -> str:
        return f"sqlite:{self.db_path}"

    async def init(self) -> None:
        """Create the records table if needed."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RemoteUnavailable(f"Cannot reach record store at {self.db_path}: {e}") from e

        async with self._connect() as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    id TEXT PRIMARY KEY,
                    kind TEXT NOT NULL,
                    snapshot_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    fields TEXT NOT NULL DEFAULT '{}',
                    refs TEXT NOT NULL DEFAULT '{}'
                )
            """)
            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_records_snapshot
                ON records(snapshot_id)
            """)
            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_records_kind
                ON records(kind)
            """)
            await db.commit()

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(self.db_path)

    async def write_batch(self, records: list[Record]) -> list[str]:
        """Upsert a batch of records in one transaction."""
        self.check_batch_size(len(records))
        rejected = []
        rows = []
        for record in records:
            try:
                rows.append((
                    record.id,
                    record.kind,
                    record.snapshot_id,
                    record.created_at.isoformat(),
                    json.dumps(record.fields),
                    json.dumps(record.refs),
                ))
            except (TypeError, ValueError):
                # Non-JSON field value: schema rejection for this record only
                rejected.append(record.id)

        try:
            async with self._connect() as db:
                await db.executemany(
                    """
                    INSERT OR REPLACE INTO records
                    (id, kind, snapshot_id, created_at, fields, refs)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    rows,
                )
                await db.commit()
        except sqlite3.OperationalError as e:
            raise self._translate(e) from e

        if rejected:
            logger.warning("Rejected %d record(s) with unserializable fields", len(rejected))
        return rejected

    async def query(
        self, kind: str | None = None, snapshot_id: str | None = None
    ) -> list[Record]:
        """Query records by kind and/or snapshot id."""
        clauses = []
        params = []
        if kind is not None:
            clauses.append("kind = ?")
            params.append(kind)
        if snapshot_id is not None:
            clauses.append("snapshot_id = ?")
            params.append(snapshot_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        try:
            async with self._connect() as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(
                    f"SELECT * FROM records {where} ORDER BY created_at, id", params
                )
                rows = await cursor.fetchall()
        except sqlite3.OperationalError as e:
            raise self._translate(e) from e

        return [self._row_to_record(row) for row in rows]

    async def delete_batch(self, record_ids: list[str]) -> list[str]:
        """Delete records by id; missing ids are ignored."""
        self.check_batch_size(len(record_ids))
        try:
            async with self._connect() as db:
                await db.executemany(
                    "DELETE FROM records WHERE id = ?", [(rid,) for rid in record_ids]
                )
                await db.commit()
        except sqlite3.OperationalError as e:
            raise self._translate(e) from e
        return []

    def _translate(self, error: sqlite3.OperationalError) -> Exception:
        """Map SQLite errors onto the remote error taxonomy."""
        message = str(error).lower()
        if "locked" in message or "busy" in message:
            return TransientRemoteError(f"Record store busy: {error}")
        if "no such table" in message or "no such column" in message:
            return PermanentRemoteError(f"Record store schema mismatch: {error}")
        return RemoteUnavailable(f"Record store unavailable: {error}")

    def _row_to_record(self, row: aiosqlite.Row) -> Record:
        """Convert a database row to a Record."""
        return Record(
            id=row["id"],
            kind=row["kind"],
            snapshot_id=row["snapshot_id"],
            created_at=to_naive_local(datetime.fromisoformat(row["created_at"])),
            fields=json.loads(row["fields"]),
            refs=json.loads(row["refs"]),
        )

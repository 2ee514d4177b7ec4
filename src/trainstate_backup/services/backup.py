"""User-facing backup operations.

:class:`BackupService` wires the codec, network gate, batch writer, catalog,
reconstructor and pruner around an injected local store and record store.
Every networked operation checks the gate before its first remote call.
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Awaitable, Callable

from ..clients.base import RecordStore
from ..config import BackupConfig
from ..db.local_store import LocalStore
from ..errors import DecodeFailed, DecodeFailure, PartialWriteFailure, QuotaExceeded
from ..models.category import Category, Subcategory
from ..models.graph import EntityGraph
from ..models.snapshot import (
    FORMAT_VERSION,
    PruneResult,
    Record,
    RestoreReport,
    SnapshotPreview,
    SnapshotSummary,
    WriteResult,
)
from ..models.template import StrengthTemplate
from ..models.workout import Exercise, Workout, new_id
from .batch_writer import BatchWriter
from .catalog import BackupCatalog
from .codec import build_metadata_record, encode, summary_from_metadata
from .network_gate import Continuation, NetworkGate
from .pruner import Pruner
from .reconstructor import RestoreReconstructor

logger = logging.getLogger(__name__)


class BackupService:
    """Snapshot, list, preview, restore and delete backups."""

    def __init__(
        self,
        local_store: LocalStore,
        record_store: RecordStore,
        gate: NetworkGate,
        config: BackupConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.local_store = local_store
        self.record_store = record_store
        self.gate = gate
        self.config = config or BackupConfig()
        self.writer = BatchWriter(
            record_store,
            max_batch_size=self.config.max_batch_size,
            max_concurrency=self.config.max_concurrency,
            retry_config=self.config.retry,
            sleep=sleep,
        )
        self.catalog = BackupCatalog(record_store, retry_config=self.config.retry, sleep=sleep)
        self.reconstructor = RestoreReconstructor(self.catalog)
        self.pruner = Pruner(self.writer)

    async def load_local_graph(self) -> EntityGraph:
        """Read every exportable entity from the local store."""
        return EntityGraph(
            workouts=await self.local_store.fetch_all(Workout),
            categories=await self.local_store.fetch_all(Category),
            subcategories=await self.local_store.fetch_all(Subcategory),
            exercises=await self.local_store.fetch_all(Exercise),
            templates=await self.local_store.fetch_all(StrengthTemplate),
        )

    def _raise_for(self, result: WriteResult) -> None:
        if result.ok:
            return
        if result.quota_exceeded and not result.interrupted:
            raise QuotaExceeded(
                "Remote quota exceeded after retries", failed_record_ids=result.failed
            )
        raise PartialWriteFailure(result.failed, interrupted=result.interrupted)

    async def create_backup(
        self,
        allow_metered: bool = False,
        should_continue: Continuation | None = None,
    ) -> SnapshotSummary:
        """Export the local dataset as a new snapshot.

        The metadata record is written only after every data record landed,
        so a failed backup is never listed.

        Raises:
            NetworkBlocked: If the connection is unsafe (no remote call made)
            PartialWriteFailure: If some records could not be written
            QuotaExceeded: If the store kept rejecting chunks for quota
            RemoteUnavailable: If the store could not be reached
        """
        await self.gate.check(allow_metered)
        should_continue = should_continue or self.gate.continuation(allow_metered)

        graph = await self.load_local_graph()
        snapshot_id = new_id()
        created_at = datetime.now()
        records = encode(graph, snapshot_id, created_at)
        log_extra = {"snapshot_id": snapshot_id}
        logger.info("Writing %d records (%s)", len(records), graph.get_summary(), extra=log_extra)

        self._raise_for(await self.writer.write(records, should_continue=should_continue))

        metadata = build_metadata_record(
            graph, snapshot_id, self.config.device_name, created_at
        )
        self._raise_for(await self.writer.write([metadata], should_continue=should_continue))

        logger.info("Backup complete", extra=log_extra)
        return summary_from_metadata(metadata)

    async def list_backups(self, allow_metered: bool = False) -> list[SnapshotSummary]:
        """List listable snapshots, newest first."""
        await self.gate.check(allow_metered)
        return await self.catalog.list()

    async def preview_backup(
        self, snapshot_id: str, allow_metered: bool = False
    ) -> SnapshotPreview:
        """Reconstruct a snapshot without touching local data."""
        await self.gate.check(allow_metered)
        return await self.reconstructor.preview(snapshot_id)

    async def restore_backup(
        self, snapshot_id: str, allow_metered: bool = False
    ) -> RestoreReport:
        """Replace local entities with a snapshot's contents.

        Once the records are fetched the restore runs to completion or to a
        typed failure; it is never interrupted by a connection change.
        """
        await self.gate.check(allow_metered)
        return await self.reconstructor.restore(snapshot_id, self.local_store)

    async def delete_backups(
        self, snapshot_ids: list[str], allow_metered: bool = False
    ) -> PruneResult:
        """Delete snapshots, reporting which ones could not be fully removed."""
        await self.gate.check(allow_metered)
        return await self.pruner.delete(
            snapshot_ids, should_continue=self.gate.continuation(allow_metered)
        )

    async def sweep_orphans(
        self,
        allow_metered: bool = False,
        older_than: timedelta | None = None,
    ) -> PruneResult:
        """Delete records of snapshots that never got a metadata record.

        Only snapshots idle for longer than ``older_than`` (default: the
        configured grace period) are touched.
        """
        await self.gate.check(allow_metered)
        if older_than is None:
            older_than = timedelta(hours=self.config.orphan_grace_hours)

        orphans = await self.catalog.find_orphans(older_than)
        if not orphans:
            return PruneResult()
        return await self.pruner.delete(
            list(orphans), should_continue=self.gate.continuation(allow_metered)
        )

    async def export_file(self, path: Path) -> SnapshotSummary:
        """Write the local dataset to a JSON backup file."""
        graph = await self.load_local_graph()
        snapshot_id = new_id()
        created_at = datetime.now()
        records = encode(graph, snapshot_id, created_at)
        metadata = build_metadata_record(
            graph, snapshot_id, self.config.device_name, created_at
        )

        data = {
            "formatVersion": FORMAT_VERSION,
            "records": [r.to_dict() for r in records + [metadata]],
        }
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(data, f, indent=2)

        logger.info("Exported %d records to %s", len(records) + 1, path)
        return summary_from_metadata(metadata)

    async def import_file(self, path: Path) -> RestoreReport:
        """Restore local entities from a JSON backup file.

        Raises:
            DecodeFailed: If the file is not a readable backup
            ClearFailed: If existing entities could not be removed
            CommitFailed: If inserting or saving failed
        """
        try:
            with open(path) as f:
                data = json.load(f)
            raw_records = data["records"]
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise DecodeFailed(f"cannot read backup file {path}: {e}") from e

        records: list[Record] = []
        unreadable: list[DecodeFailure] = []
        for index, raw in enumerate(raw_records):
            try:
                records.append(Record.from_dict(raw))
            except ValueError as e:
                record_id = raw.get("id") if isinstance(raw, dict) else None
                unreadable.append(DecodeFailure(str(record_id or f"#{index}"), str(e)))

        report = await self.reconstructor.apply(records, self.local_store)
        report.malformed.extend(unreadable)
        return report

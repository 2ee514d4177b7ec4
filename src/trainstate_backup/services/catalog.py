"""Snapshot listing and retrieval."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from ..clients.base import RecordStore
from ..errors import DecodeFailure, SnapshotNotFound
from ..models.snapshot import Record, RecordKind, SnapshotSummary
from .codec import summary_from_metadata
from .retry import RetryConfig, retry_async

logger = logging.getLogger(__name__)


class BackupCatalog:
    """Reads snapshots from the record store.

    A snapshot is listed only once its metadata record exists, so partially
    written snapshots stay invisible.
    """

    def __init__(
        self,
        store: RecordStore,
        retry_config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.retry_config = retry_config or RetryConfig()
        self.sleep = sleep

    async def _query(self, **tags) -> list[Record]:
        result = await retry_async(
            lambda: self.store.query(**tags),
            self.retry_config,
            operation_name=f"query {tags or 'all'}",
            sleep=self.sleep,
        )
        if not result.success:
            raise result.error
        return result.result

    async def get_summary(self, snapshot_id: str) -> SnapshotSummary:
        """Return one snapshot's summary.

        Raises:
            SnapshotNotFound: If the snapshot has no metadata record
            DecodeFailure: If its metadata record is malformed
        """
        records = await self._query(
            kind=RecordKind.METADATA.value, snapshot_id=snapshot_id
        )
        if not records:
            raise SnapshotNotFound(snapshot_id)
        return summary_from_metadata(records[-1])

    async def fetch_full(self, snapshot_id: str) -> list[Record]:
        """Return every record of one snapshot, metadata included.

        This is the only way a snapshot's contents are materialized, for
        both preview and restore.

        Raises:
            SnapshotNotFound: If the snapshot has no metadata record
        """
        records = await self._query(snapshot_id=snapshot_id)
        if not any(r.is_metadata for r in records):
            raise SnapshotNotFound(snapshot_id)
        logger.debug(
            "Fetched %d records", len(records), extra={"snapshot_id": snapshot_id}
        )
        return records

    async def find_orphans(
        self, older_than: timedelta, now: datetime | None = None
    ) -> dict[str, list[str]]:
        """Find snapshots that have records but no metadata record.

        Only snapshots whose newest record is older than ``older_than`` are
        returned, so a backup still being written is never reported.

        Returns:
            Record ids keyed by orphaned snapshot id
        """
        now = now or datetime.now()
        cutoff = now - older_than

        by_snapshot: dict[str, list[Record]] = {}
        for record in await self._query():
            by_snapshot.setdefault(record.snapshot_id, []).append(record)

        orphans = {}
        for snapshot_id, records in by_snapshot.items():
            if any(r.is_metadata for r in records):
                continue
            newest = max(r.created_at for r in records)
            if newest < cutoff:
                orphans[snapshot_id] = [r.id for r in records]

        if orphans:
            logger.info("Found %d orphaned snapshot(s)", len(orphans))
        return orphans

    # Defined last so the builtin ``list`` stays usable in the annotations above
    async def list(self) -> list[SnapshotSummary]:
        """Return snapshot summaries, newest first.

        Malformed metadata records are skipped with a warning.
        """
        records = await self._query(kind=RecordKind.METADATA.value)

        summaries: dict[str, SnapshotSummary] = {}
        for record in records:
            try:
                summary = summary_from_metadata(record)
            except DecodeFailure as e:
                logger.warning(
                    "Skipping malformed metadata record: %s", e,
                    extra={"snapshot_id": record.snapshot_id},
                )
                continue
            existing = summaries.get(summary.snapshot_id)
            if existing is None or summary.created_at > existing.created_at:
                summaries[summary.snapshot_id] = summary

        return sorted(summaries.values(), key=lambda s: s.created_at, reverse=True)

"""Snapshot deletion."""

import logging

from ..errors import RemoteError
from ..models.snapshot import PruneResult, Record
from .batch_writer import BatchWriter
from .network_gate import Continuation
from .retry import retry_async

logger = logging.getLogger(__name__)


class Pruner:
    """Deletes every record of one or more snapshots.

    Data records go first and the metadata record last, so a snapshot whose
    deletion did not finish stays listed and can be deleted again.
    """

    def __init__(self, writer: BatchWriter):
        self.writer = writer

    async def _records_of(self, snapshot_id: str) -> list[Record]:
        result = await retry_async(
            lambda: self.writer.store.query(snapshot_id=snapshot_id),
            self.writer.retry_config,
            operation_name=f"query snapshot {snapshot_id}",
            sleep=self.writer.sleep,
        )
        if not result.success:
            raise result.error
        return result.result

    async def delete_snapshot(
        self, snapshot_id: str, should_continue: Continuation | None = None
    ) -> bool:
        """Delete one snapshot; return True only if every record is gone."""
        records = await self._records_of(snapshot_id)
        data_ids = [r.id for r in records if not r.is_metadata]
        metadata_ids = [r.id for r in records if r.is_metadata]

        if data_ids:
            result = await self.writer.delete(data_ids, should_continue=should_continue)
            if not result.ok:
                logger.warning(
                    "Could not delete %d record(s); keeping metadata",
                    len(result.failed), extra={"snapshot_id": snapshot_id},
                )
                return False

        if metadata_ids:
            result = await self.writer.delete(metadata_ids, should_continue=should_continue)
            if not result.ok:
                return False

        logger.info(
            "Deleted %d record(s)", len(records), extra={"snapshot_id": snapshot_id}
        )
        return True

    async def delete(
        self,
        snapshot_ids: list[str],
        should_continue: Continuation | None = None,
    ) -> PruneResult:
        """Delete snapshots, reporting which ones must be retried.

        A snapshot with no records left counts as deleted.
        """
        result = PruneResult()
        for snapshot_id in dict.fromkeys(snapshot_ids):
            try:
                deleted = await self.delete_snapshot(snapshot_id, should_continue)
            except RemoteError as e:
                logger.error(
                    "Deleting snapshot failed: %s", e, extra={"snapshot_id": snapshot_id}
                )
                deleted = False
            if deleted:
                result.succeeded.append(snapshot_id)
            else:
                result.failed.append(snapshot_id)
        return result

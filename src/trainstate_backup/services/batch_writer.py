"""Chunked, bounded-parallel writes and deletes against a record store."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from ..clients.base import RecordStore
from ..errors import QuotaExceeded, RemoteUnavailable
from ..models.snapshot import DeleteResult, Record, WriteResult
from .network_gate import Continuation
from .retry import RetryConfig, retry_async

logger = logging.getLogger(__name__)

DEFAULT_MAX_BATCH_SIZE = 400
DEFAULT_MAX_CONCURRENCY = 4


def chunked(items: list, size: int) -> list[list]:
    """Split a list into consecutive chunks of at most ``size`` items."""
    if size < 1:
        raise ValueError("Chunk size must be at least 1")
    return [items[i:i + size] for i in range(0, len(items), size)]


@dataclass
class _Progress:
    """Result accumulator shared by concurrent chunk tasks."""

    done: int = 0
    failed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    quota_exceeded: bool = False
    interrupted: bool = False
    unavailable: RemoteUnavailable | None = None


class BatchWriter:
    """Submits records to a :class:`RecordStore` in size-bounded chunks.

    Chunks run concurrently up to ``max_concurrency``. Transient failures
    are retried with exponential backoff; permanent failures send the
    chunk's ids to ``failed``. The operation is not atomic across chunks.
    """

    def __init__(
        self,
        store: RecordStore,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        retry_config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.max_batch_size = max_batch_size
        self.max_concurrency = max(1, max_concurrency)
        self.retry_config = retry_config or RetryConfig()
        self.sleep = sleep

    async def write(
        self,
        records: list[Record],
        max_batch_size: int | None = None,
        should_continue: Continuation | None = None,
    ) -> WriteResult:
        """Write records, reporting which ids ultimately failed.

        Raises:
            RemoteUnavailable: If the store became unreachable; chunks
                already in flight are allowed to finish first
        """
        if max_batch_size is None:
            max_batch_size = self.max_batch_size
        chunks = chunked(records, max_batch_size)

        async def submit(chunk: list[Record]) -> list[str]:
            return await self.store.write_batch(chunk)

        progress = await self._run(
            [[r.id for r in chunk] for chunk in chunks],
            [lambda c=chunk: submit(c) for chunk in chunks],
            "write",
            should_continue,
        )
        return WriteResult(
            written=progress.done,
            failed=progress.failed,
            errors=progress.errors,
            quota_exceeded=progress.quota_exceeded,
            interrupted=progress.interrupted,
        )

    async def delete(
        self,
        record_ids: list[str],
        max_batch_size: int | None = None,
        should_continue: Continuation | None = None,
    ) -> DeleteResult:
        """Delete records by id on the same chunking path as :meth:`write`.

        Raises:
            RemoteUnavailable: If the store became unreachable
        """
        if max_batch_size is None:
            max_batch_size = self.max_batch_size
        chunks = chunked(record_ids, max_batch_size)

        async def submit(chunk: list[str]) -> list[str]:
            return await self.store.delete_batch(chunk)

        progress = await self._run(
            chunks,
            [lambda c=chunk: submit(c) for chunk in chunks],
            "delete",
            should_continue,
        )
        return DeleteResult(
            deleted=progress.done,
            failed=progress.failed,
            errors=progress.errors,
            interrupted=progress.interrupted,
        )

    async def _run(
        self,
        id_chunks: list[list[str]],
        operations: list[Callable[[], Awaitable[list[str]]]],
        verb: str,
        should_continue: Continuation | None,
    ) -> _Progress:
        progress = _Progress()
        lock = asyncio.Lock()
        semaphore = asyncio.Semaphore(self.max_concurrency)
        total = len(id_chunks)

        async def run_chunk(index: int, ids: list[str], operation) -> None:
            async with semaphore:
                async with lock:
                    if progress.unavailable is not None:
                        progress.failed.extend(ids)
                        return
                    stop = progress.interrupted

                # Awaited outside the lock: the gate may block on a network check
                if not stop and should_continue is not None:
                    stop = not await should_continue()

                if stop:
                    async with lock:
                        if not progress.interrupted:
                            logger.warning(
                                "Connection no longer allowed; not starting %s chunk %d/%d",
                                verb, index + 1, total,
                                extra={"chunk": index + 1},
                            )
                        progress.interrupted = True
                        progress.failed.extend(ids)
                    return

                logger.debug(
                    "Submitting %s chunk %d/%d (%d records)", verb, index + 1, total, len(ids),
                    extra={"chunk": index + 1},
                )
                result = await retry_async(
                    operation,
                    self.retry_config,
                    operation_name=f"{verb} chunk {index + 1}/{total}",
                    sleep=self.sleep,
                )

            async with lock:
                if result.success:
                    rejected = list(result.result or [])
                    progress.done += len(ids) - len(rejected)
                    progress.failed.extend(rejected)
                    if rejected:
                        progress.errors.append(
                            f"chunk {index + 1}: store rejected {len(rejected)} record(s)"
                        )
                    return

                error = result.error
                progress.failed.extend(ids)
                progress.errors.append(f"chunk {index + 1}: {error}")
                if isinstance(error, QuotaExceeded):
                    progress.quota_exceeded = True
                if isinstance(error, RemoteUnavailable) and progress.unavailable is None:
                    progress.unavailable = error

        outcomes = await asyncio.gather(
            *(run_chunk(i, ids, op) for i, (ids, op) in enumerate(zip(id_chunks, operations))),
            return_exceptions=True,
        )
        crashed = [o for o in outcomes if isinstance(o, BaseException)]
        if crashed:
            logger.error(
                "%d %s chunk(s) raised unexpectedly; all chunks have settled",
                len(crashed), verb,
            )
            raise crashed[0]

        if progress.failed:
            logger.warning(
                "%s finished with %d failed id(s) across %d chunk(s)",
                verb.capitalize(), len(progress.failed), total,
            )
        if progress.unavailable is not None:
            raise progress.unavailable
        return progress

"""Tests for the batch writer."""

import asyncio
from datetime import datetime

import pytest

from conftest import FakeRecordStore, no_sleep
from trainstate_backup.errors import (
    PermanentRemoteError,
    QuotaExceeded,
    RemoteUnavailable,
    TransientRemoteError,
)
from trainstate_backup.models import Record
from trainstate_backup.services.batch_writer import BatchWriter, chunked


def make_records(count: int) -> list[Record]:
    created = datetime(2024, 3, 5, 10, 0)
    return [
        Record(
            id=f"snap/{i:04d}",
            kind="workout",
            snapshot_id="snap",
            created_at=created,
            fields={"duration": i},
        )
        for i in range(count)
    ]


def make_writer(store, fast_retry, **kwargs) -> BatchWriter:
    return BatchWriter(store, retry_config=fast_retry, sleep=no_sleep, **kwargs)


class TestChunked:
    """Tests for chunked()."""

    def test_sizes(self):
        assert [len(c) for c in chunked(list(range(900)), 400)] == [400, 400, 100]

    def test_empty(self):
        assert chunked([], 400) == []

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            chunked([1], 0)


class TestWrite:
    """Tests for BatchWriter.write()."""

    async def test_all_written(self, fake_store, fast_retry):
        writer = make_writer(fake_store, fast_retry)
        result = await writer.write(make_records(900), max_batch_size=400)

        assert result.ok
        assert result.written == 900
        assert fake_store.write_calls == 3
        assert len(fake_store.records) == 900

    async def test_every_third_chunk_fails(self, fake_store, fast_retry):
        """Only the failed chunk's ids are reported; the rest are stored."""
        records = make_records(900)
        fake_store.write_failures = {3: PermanentRemoteError("schema rejected")}
        writer = make_writer(fake_store, fast_retry)

        result = await writer.write(records, max_batch_size=400)

        assert sorted(result.failed) == [r.id for r in records[800:]]
        assert result.written == 800
        assert set(fake_store.records) == {r.id for r in records[:800]}
        assert fake_store.write_calls == 3
        assert len(result.errors) == 1

    async def test_transient_error_retried(self, fake_store, fast_retry):
        fake_store.write_failures = {1: TransientRemoteError("timeout")}
        writer = make_writer(fake_store, fast_retry)

        result = await writer.write(make_records(10))

        assert result.ok
        assert result.written == 10
        assert fake_store.write_calls == 2

    async def test_quota_exhaustion(self, fake_store, fast_retry):
        """Quota errors are retried up to the bound, then reported."""
        fake_store.write_failures = {n: QuotaExceeded("rate limited") for n in (1, 2, 3)}
        writer = make_writer(fake_store, fast_retry)

        result = await writer.write(make_records(10))

        assert result.quota_exceeded
        assert len(result.failed) == 10
        assert fake_store.write_calls == 3

    async def test_per_record_rejections(self, fake_store, fast_retry):
        records = make_records(5)
        fake_store.reject_ids = {records[1].id, records[3].id}
        writer = make_writer(fake_store, fast_retry)

        result = await writer.write(records)

        assert result.written == 3
        assert sorted(result.failed) == [records[1].id, records[3].id]

    async def test_should_continue_stops_new_chunks(self, fake_store, fast_retry):
        """Once the check fails, unstarted chunks are reported as failed."""
        checks = []

        async def should_continue():
            checks.append(1)
            return len(checks) == 1

        records = make_records(900)
        writer = make_writer(fake_store, fast_retry, max_concurrency=1)

        result = await writer.write(records, max_batch_size=400, should_continue=should_continue)

        assert result.interrupted
        assert result.written == 400
        assert sorted(result.failed) == [r.id for r in records[400:]]
        assert fake_store.write_calls == 1

    async def test_slow_check_does_not_hold_up_other_chunks(self, fake_store, fast_retry):
        """A pending connection check does not stop finished chunks being recorded.

        The second check only returns once the third chunk has started, which
        needs the first chunk to be fully recorded and its slot released.
        """
        third_started = asyncio.Event()
        calls = []

        async def should_continue():
            calls.append(1)
            if len(calls) == 3:
                third_started.set()
            elif len(calls) == 2:
                await asyncio.wait_for(third_started.wait(), timeout=2)
            return True

        original = fake_store.write_batch

        async def write_batch(records):
            await asyncio.sleep(0.01)
            return await original(records)

        fake_store.write_batch = write_batch
        writer = make_writer(fake_store, fast_retry, max_concurrency=2)

        result = await writer.write(make_records(30), max_batch_size=10,
                                    should_continue=should_continue)

        assert result.ok
        assert result.written == 30

    async def test_explicit_zero_batch_size_rejected(self, fake_store, fast_retry):
        writer = make_writer(fake_store, fast_retry)

        with pytest.raises(ValueError):
            await writer.write(make_records(3), max_batch_size=0)
        with pytest.raises(ValueError):
            await writer.delete(["a"], max_batch_size=0)
        assert fake_store.total_calls == 0

    async def test_unexpected_error_raised_after_all_chunks_settle(self, fake_store, fast_retry):
        """A crashing check is re-raised only once the other chunks are done."""
        calls = []

        async def should_continue():
            calls.append(1)
            if len(calls) == 2:
                raise RuntimeError("classifier crashed")
            return True

        writer = make_writer(fake_store, fast_retry, max_concurrency=1)

        with pytest.raises(RuntimeError, match="classifier crashed"):
            await writer.write(make_records(30), max_batch_size=10,
                               should_continue=should_continue)

        assert fake_store.write_calls == 2
        assert len(fake_store.records) == 20

    async def test_remote_unavailable_raises(self, fake_store, fast_retry):
        fake_store.unavailable = True
        writer = make_writer(fake_store, fast_retry)

        with pytest.raises(RemoteUnavailable):
            await writer.write(make_records(900), max_batch_size=400)

        # not retried, and no new chunk started after the first failure
        assert fake_store.write_calls == 1

    async def test_bounded_concurrency(self, fast_retry):
        """No more than max_concurrency chunks are in flight."""

        class SlowStore(FakeRecordStore):
            def __init__(self):
                super().__init__()
                self.in_flight = 0
                self.peak = 0

            async def write_batch(self, records):
                self.in_flight += 1
                self.peak = max(self.peak, self.in_flight)
                await asyncio.sleep(0.01)
                self.in_flight -= 1
                return await super().write_batch(records)

        store = SlowStore()
        writer = make_writer(store, fast_retry, max_concurrency=2)

        result = await writer.write(make_records(50), max_batch_size=10)

        assert result.written == 50
        assert store.peak == 2


class TestDelete:
    """Tests for BatchWriter.delete()."""

    async def test_delete_chunks(self, fake_store, fast_retry):
        records = make_records(900)
        writer = make_writer(fake_store, fast_retry)
        await writer.write(records, max_batch_size=400)

        result = await writer.delete([r.id for r in records], max_batch_size=400)

        assert result.ok
        assert result.deleted == 900
        assert fake_store.delete_calls == 3
        assert fake_store.records == {}

    async def test_delete_failure_reported(self, fake_store, fast_retry):
        fake_store.delete_failures = {1: PermanentRemoteError("denied")}
        writer = make_writer(fake_store, fast_retry)

        result = await writer.delete(["a", "b"])

        assert not result.ok
        assert sorted(result.failed) == ["a", "b"]

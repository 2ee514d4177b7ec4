"""Pytest configuration and fixtures."""

import pytest
import tempfile
from datetime import datetime
from pathlib import Path

from trainstate_backup.db import SQLiteLocalStore, init_db
from trainstate_backup.errors import RemoteUnavailable
from trainstate_backup.models import (
    Category,
    EntityGraph,
    Exercise,
    StrengthTemplate,
    Subcategory,
    Workout,
    WorkoutType,
)
from trainstate_backup.models.template import SetPlanEntry, encode_set_plan
from trainstate_backup.services.codec import build_metadata_record, encode
from trainstate_backup.services.network_gate import (
    ConnectionType,
    NetworkGate,
    StaticClassifier,
)
from trainstate_backup.services.retry import RetryConfig


class FakeRecordStore:
    """In-memory record store that counts calls and injects failures.

    ``write_failures`` maps a 1-based write call number to the exception
    that call raises.
    """

    def __init__(self, max_batch_size: int | None = None):
        self.records = {}
        self.max_batch_size = max_batch_size
        self.write_calls = 0
        self.query_calls = 0
        self.delete_calls = 0
        self.write_failures: dict[int, Exception] = {}
        self.delete_failures: dict[int, Exception] = {}
        self.reject_ids: set[str] = set()
        self.unavailable = False

    @property
    def store_name(self) -> str:
        return "fake"

    @property
    def total_calls(self) -> int:
        return self.write_calls + self.query_calls + self.delete_calls

    def _check_available(self):
        if self.unavailable:
            raise RemoteUnavailable("store offline")

    async def write_batch(self, records):
        self.write_calls += 1
        self._check_available()
        if self.write_calls in self.write_failures:
            raise self.write_failures[self.write_calls]
        rejected = []
        for record in records:
            if record.id in self.reject_ids:
                rejected.append(record.id)
            else:
                self.records[record.id] = record
        return rejected

    async def query(self, kind=None, snapshot_id=None):
        self.query_calls += 1
        self._check_available()
        return [
            r for r in self.records.values()
            if (kind is None or r.kind == kind)
            and (snapshot_id is None or r.snapshot_id == snapshot_id)
        ]

    async def delete_batch(self, record_ids):
        self.delete_calls += 1
        self._check_available()
        if self.delete_calls in self.delete_failures:
            raise self.delete_failures[self.delete_calls]
        for record_id in record_ids:
            self.records.pop(record_id, None)
        return []


class MemoryLocalStore:
    """Unit-of-work local store held in memory, with failure switches."""

    def __init__(self, graph: EntityGraph | None = None):
        graph = graph or EntityGraph()
        self.saved = {
            Workout: list(graph.workouts),
            Category: list(graph.categories),
            Subcategory: list(graph.subcategories),
            Exercise: graph.all_exercises(),
            StrengthTemplate: list(graph.templates),
        }
        self.inserts = []
        self.deletes = []
        self.fail_fetch = False
        self.fail_insert = False
        self.fail_save = False
        self.rollbacks = 0
        self.saves = 0

    async def fetch_all(self, entity_type):
        if self.fail_fetch:
            raise RuntimeError("disk I/O error")
        return list(self.saved[entity_type])

    def insert(self, entity):
        if self.fail_insert:
            raise RuntimeError("constraint failed")
        self.inserts.append(entity)

    def delete(self, entity):
        self.deletes.append(entity)

    async def save(self):
        if self.fail_save:
            raise RuntimeError("database is locked")
        for entity in self.deletes:
            items = self.saved[type(entity)]
            self.saved[type(entity)] = [e for e in items if e.id != entity.id]
        for entity in self.inserts:
            items = self.saved[type(entity)]
            self.saved[type(entity)] = [e for e in items if e.id != entity.id] + [entity]
        self.inserts = []
        self.deletes = []
        self.saves += 1

    def rollback(self):
        self.inserts = []
        self.deletes = []
        self.rollbacks += 1


def seed_snapshot(store, graph, snapshot_id, created_at=None, device_name="test-device",
                  with_metadata=True):
    """Put an encoded snapshot straight into a fake record store."""
    created_at = created_at or datetime(2024, 3, 5, 10, 0)
    records = encode(graph, snapshot_id, created_at)
    if with_metadata:
        records.append(build_metadata_record(graph, snapshot_id, device_name, created_at))
    for record in records:
        store.records[record.id] = record
    return records


async def no_sleep(delay: float) -> None:
    """Backoff sleep replacement that returns immediately."""
    return None


def build_sample_graph() -> EntityGraph:
    """3 workouts, 2 categories, 1 subcategory and a strength template."""
    push = Category(name="Push", color="#00FF00", workout_type=WorkoutType.STRENGTH)
    cardio = Category(name="Conditioning", workout_type=WorkoutType.CARDIO)
    chest = Subcategory(name="Chest")
    push.add_subcategory(chest)

    bench = Exercise(name="Bench Press", sets=5, reps=5, weight=80.0, order_index=0,
                     subcategory=chest)
    dips = Exercise(name="Dips", sets=3, reps=10, order_index=1)

    strength = Workout(
        type=WorkoutType.STRENGTH,
        start_date=datetime(2024, 3, 1, 18, 0),
        duration=3600,
        rating=4,
        notes="Felt strong",
    )
    strength.add_category(push)
    strength.add_subcategory(chest)
    strength.add_exercise(dips)
    strength.add_exercise(bench)

    run = Workout(
        type=WorkoutType.RUNNING,
        start_date=datetime(2024, 3, 2, 7, 30),
        duration=1800,
        calories=320.5,
        distance=5.0,
    )
    run.add_category(cardio)

    mixed = Workout(
        type=WorkoutType.OTHER,
        start_date=datetime(2024, 3, 3, 12, 0),
        duration=2700,
    )
    mixed.add_category(push)
    mixed.add_category(cardio)

    template = StrengthTemplate(
        name="Push Day",
        created_at=datetime(2024, 1, 1, 9, 0),
        updated_at=datetime(2024, 2, 1, 9, 0),
    )
    template.add_exercise(Exercise(
        name="Incline Press",
        order_index=0,
        subcategory=chest,
        set_plan=encode_set_plan([SetPlanEntry(8, 60.0), SetPlanEntry(6, 65.0)]),
    ))

    return EntityGraph(
        workouts=[strength, run, mixed],
        categories=[push, cardio],
        subcategories=[chest],
        templates=[template],
    )


@pytest.fixture
def temp_db_path():
    """Create a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_graph():
    """Create a sample entity graph for testing."""
    return build_sample_graph()


@pytest.fixture
def fake_store():
    return FakeRecordStore()


@pytest.fixture
def fast_retry():
    """Retry settings without jitter, for use with ``no_sleep``."""
    return RetryConfig(max_attempts=3, initial_delay_ms=1000, jitter=False)


@pytest.fixture
def unmetered_gate():
    return NetworkGate(StaticClassifier(ConnectionType.UNMETERED))


@pytest.fixture
def metered_gate():
    return NetworkGate(StaticClassifier(ConnectionType.METERED))


@pytest.fixture
def offline_gate():
    return NetworkGate(StaticClassifier(ConnectionType.OFFLINE))


@pytest.fixture
async def sqlite_local_store(temp_db_path):
    """An initialized, empty SQLite local store."""
    await init_db(temp_db_path)
    return SQLiteLocalStore(temp_db_path)

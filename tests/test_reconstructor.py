"""Tests for restore reconstruction."""

from datetime import datetime

import pytest

from conftest import MemoryLocalStore, seed_snapshot
from trainstate_backup.errors import (
    ClearFailed,
    CommitFailed,
    DecodeFailed,
    SnapshotNotFound,
)
from trainstate_backup.models import (
    Category,
    EntityGraph,
    Exercise,
    Record,
    StrengthTemplate,
    Subcategory,
    Workout,
)
from trainstate_backup.services.catalog import BackupCatalog
from trainstate_backup.services.codec import (
    build_metadata_record,
    decode,
    encode,
    record_id,
)
from trainstate_backup.services.reconstructor import RestoreReconstructor, reconstruct

CREATED = datetime(2024, 3, 5, 10, 0)


def snapshot_records(graph, snapshot_id="snap"):
    records = encode(graph, snapshot_id, CREATED)
    records.append(build_metadata_record(graph, snapshot_id, "laptop", CREATED))
    return records


def find(records, entity_id, snapshot_id="snap"):
    return next(r for r in records if r.id == record_id(snapshot_id, entity_id))


def edges(graph: EntityGraph) -> dict:
    """Relationship edges by id, for isomorphism checks."""
    return {
        "workout_categories": {w.id: sorted(c.id for c in w.categories) for w in graph.workouts},
        "workout_subcategories": {
            w.id: sorted(s.id for s in w.subcategories) for w in graph.workouts
        },
        "workout_exercises": {w.id: [e.id for e in w.exercises] for w in graph.workouts},
        "template_exercises": {t.id: [e.id for e in t.exercises] for t in graph.templates},
        "subcategory_parent": {
            s.id: s.category.id if s.category else None for s in graph.subcategories
        },
        "exercise_subcategory": {
            e.id: e.subcategory.id if e.subcategory else None for e in graph.all_exercises()
        },
    }


class TestReconstruct:
    """Tests for the two-phase load."""

    def test_round_trip_isomorphic(self, sample_graph):
        """Encode, decode and reconstruct yields the same graph by id."""
        graph, report = reconstruct(decode(snapshot_records(sample_graph)))

        assert graph.counts() == sample_graph.counts()
        assert edges(graph) == edges(sample_graph)
        assert not report.has_warnings

    def test_scalars_preserved(self, sample_graph):
        graph, _ = reconstruct(decode(snapshot_records(sample_graph)))
        original = sample_graph.workouts[0]
        restored = next(w for w in graph.workouts if w.id == original.id)

        assert restored.type == original.type
        assert restored.start_date == original.start_date
        assert restored.rating == 4
        assert restored.notes == "Felt strong"
        template = graph.templates[0]
        assert template.exercises[0].set_plan == sample_graph.templates[0].exercises[0].set_plan

    def test_owned_exercises_ordered_by_index(self, sample_graph):
        records = snapshot_records(sample_graph)
        workout = sample_graph.workouts[0]
        # reverse the ref order; order_index still decides
        find(records, workout.id).refs["exercises"].reverse()

        graph, _ = reconstruct(decode(records))
        restored = next(w for w in graph.workouts if w.id == workout.id)

        assert [e.name for e in restored.exercises] == ["Bench Press", "Dips"]

    def test_dangling_reference_dropped(self, sample_graph):
        """An unresolved id is dropped and reported, never fatal."""
        records = snapshot_records(sample_graph)
        workout = sample_graph.workouts[0]
        find(records, workout.id).refs["categoryIds"].append("missing-category")

        graph, report = reconstruct(decode(records))
        restored = next(w for w in graph.workouts if w.id == workout.id)

        assert len(restored.categories) == 1
        assert len(report.dangling) == 1
        assert report.dangling[0].target_id == "missing-category"
        assert report.dangling[0].role == "categoryIds"

    def test_second_parent_dropped(self, sample_graph):
        """A subcategory keeps the first parent it is attached to."""
        records = snapshot_records(sample_graph)
        push, cardio = sample_graph.categories
        chest = sample_graph.subcategories[0]
        find(records, chest.id).refs["categoryIds"] = [cardio.id]

        graph, report = reconstruct(decode(records))
        restored = next(s for s in graph.subcategories if s.id == chest.id)

        assert restored.category.id == push.id
        assert [d.target_id for d in report.dangling] == [cardio.id]

    def test_exercise_owned_once(self, sample_graph):
        records = snapshot_records(sample_graph)
        first, second = sample_graph.workouts[0], sample_graph.workouts[1]
        shared = first.exercises[0].id
        find(records, second.id).refs["exercises"] = [shared]

        graph, report = reconstruct(decode(records))
        restored = next(w for w in graph.workouts if w.id == second.id)

        assert restored.exercises == []
        assert len(report.dangling) == 1

    def test_malformed_record_skipped(self, sample_graph):
        """One bad record does not stop the rest from loading."""
        records = snapshot_records(sample_graph)
        bad = sample_graph.workouts[1]
        find(records, bad.id).fields["startDate"] = "someday"

        graph, report = reconstruct(decode(records))

        assert len(graph.workouts) == 2
        assert report.malformed_ids == [record_id("snap", bad.id)]
        assert report.restored["workout"] == 2

    def test_unknown_kinds_reported(self, sample_graph):
        records = snapshot_records(sample_graph)
        records.append(Record(
            id="snap/route", kind="workoutRoute", snapshot_id="snap", created_at=CREATED,
        ))

        _, report = reconstruct(decode(records))

        assert report.unknown_kinds == 1


class TestRestore:
    """Tests for RestoreReconstructor.restore()."""

    async def test_restore_replaces_local(self, fake_store, sample_graph):
        seed_snapshot(fake_store, sample_graph, "snap")
        local = MemoryLocalStore(EntityGraph(workouts=[Workout(), Workout()]))
        reconstructor = RestoreReconstructor(BackupCatalog(fake_store))

        report = await reconstructor.restore("snap", local)

        assert len(local.saved[Workout]) == 3
        assert {w.id for w in local.saved[Workout]} == {w.id for w in sample_graph.workouts}
        assert report.restored["category"] == 2
        assert local.saves == 1

    async def test_idempotent_reimport(self, fake_store, sample_graph):
        """Restoring the same snapshot twice gives the same counts."""
        seed_snapshot(fake_store, sample_graph, "snap")
        local = MemoryLocalStore()
        reconstructor = RestoreReconstructor(BackupCatalog(fake_store))

        await reconstructor.restore("snap", local)
        first = {t: len(items) for t, items in local.saved.items()}
        await reconstructor.restore("snap", local)
        second = {t: len(items) for t, items in local.saved.items()}

        assert first == second
        assert second[Workout] == 3

    async def test_scoped_clear(self, fake_store):
        """Types absent from the snapshot are left untouched."""
        seed_snapshot(fake_store, EntityGraph(categories=[Category(name="Push")]), "snap")
        existing = Workout()
        local = MemoryLocalStore(EntityGraph(workouts=[existing]))

        await RestoreReconstructor(BackupCatalog(fake_store)).restore("snap", local)

        assert local.saved[Workout] == [existing]
        assert [c.name for c in local.saved[Category]] == ["Push"]

    async def test_scoped_clear_keeps_links_to_restored_ids(self, fake_store, sqlite_local_store):
        """Restoring categories alone keeps local workouts and subcategories linked."""
        push = Category(name="Push")
        chest = Subcategory(name="Chest")
        push.add_subcategory(chest)
        workout = Workout()
        workout.add_category(push)
        workout.add_subcategory(chest)
        for entity in (push, chest, workout):
            sqlite_local_store.insert(entity)
        await sqlite_local_store.save()

        snapshot = EntityGraph(categories=[Category(name="Push", id=push.id)])
        seed_snapshot(fake_store, snapshot, "snap")

        await RestoreReconstructor(BackupCatalog(fake_store)).restore("snap", sqlite_local_store)

        [restored] = await sqlite_local_store.fetch_all(Workout)
        assert restored.category_names == ["Push"]
        assert [s.name for s in restored.subcategories] == ["Chest"]
        [subcategory] = await sqlite_local_store.fetch_all(Subcategory)
        assert subcategory.category.id == push.id

    async def test_snapshot_not_found(self, fake_store):
        local = MemoryLocalStore()
        with pytest.raises(SnapshotNotFound):
            await RestoreReconstructor(BackupCatalog(fake_store)).restore("nope", local)

    async def test_malformed_metadata(self, fake_store, sample_graph):
        records = seed_snapshot(fake_store, sample_graph, "snap")
        records[-1].fields["timestamp"] = None
        local = MemoryLocalStore(sample_graph)

        with pytest.raises(DecodeFailed) as exc_info:
            await RestoreReconstructor(BackupCatalog(fake_store)).restore("snap", local)

        assert exc_info.value.step == "decode"
        assert local.deletes == []

    async def test_clear_failed(self, fake_store, sample_graph):
        """A failing clear changes nothing."""
        seed_snapshot(fake_store, sample_graph, "snap")
        local = MemoryLocalStore(sample_graph)
        local.fail_fetch = True

        with pytest.raises(ClearFailed) as exc_info:
            await RestoreReconstructor(BackupCatalog(fake_store)).restore("snap", local)

        assert exc_info.value.step == "clear"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert local.rollbacks == 1
        assert local.saves == 0

    async def test_insert_failed(self, fake_store, sample_graph):
        seed_snapshot(fake_store, sample_graph, "snap")
        local = MemoryLocalStore(sample_graph)
        local.fail_insert = True

        with pytest.raises(CommitFailed) as exc_info:
            await RestoreReconstructor(BackupCatalog(fake_store)).restore("snap", local)

        assert exc_info.value.step == "insert"
        assert local.rollbacks == 1
        assert local.deletes == []

    async def test_commit_failed(self, fake_store, sample_graph):
        """A failed save rolls back staged changes and keeps local data."""
        seed_snapshot(fake_store, sample_graph, "snap")
        existing = Workout()
        local = MemoryLocalStore(EntityGraph(workouts=[existing]))
        local.fail_save = True

        with pytest.raises(CommitFailed) as exc_info:
            await RestoreReconstructor(BackupCatalog(fake_store)).restore("snap", local)

        assert exc_info.value.step == "commit"
        assert local.rollbacks == 1
        assert local.saved[Workout] == [existing]
        assert local.inserts == []


class TestPreview:
    """Tests for RestoreReconstructor.preview()."""

    async def test_preview_matches_restore(self, fake_store, sample_graph):
        """Preview shows what restore would produce, without saving."""
        seed_snapshot(fake_store, sample_graph, "snap")
        reconstructor = RestoreReconstructor(BackupCatalog(fake_store))

        preview = await reconstructor.preview("snap")

        assert preview.summary.snapshot_id == "snap"
        assert preview.summary.device_name == "test-device"
        assert preview.graph.counts() == sample_graph.counts()
        assert edges(preview.graph) == edges(sample_graph)

    async def test_preview_reports_dangling(self, fake_store):
        workout = Workout()
        workout.add_category(Category(name="Gone"))
        workout.add_subcategory(Subcategory(name="Also gone"))
        workout.add_exercise(Exercise(name="Plank"))
        template = StrengthTemplate(name="Core")
        seed_snapshot(fake_store, EntityGraph(workouts=[workout], templates=[template]), "snap")

        preview = await RestoreReconstructor(BackupCatalog(fake_store)).preview("snap")

        # categories and subcategories were not exported; the exercise was
        assert len(preview.report.dangling) == 2
        assert len(preview.graph.workouts[0].exercises) == 1

"""Two-phase reconstruction of an entity graph from snapshot records.

Phase one builds every entity from its scalar fields, keeping the original
ids. Phase two resolves the ``refs`` id lists through the id lookup built in
phase one. References that do not resolve are dropped and reported.
"""

import logging

from ..db.local_store import LocalStore
from ..errors import ClearFailed, CommitFailed, DecodeFailed, DecodeFailure
from ..models.category import Category, Subcategory
from ..models.graph import EntityGraph
from ..models.snapshot import (
    DanglingReference,
    Record,
    RecordKind,
    RestoreReport,
    SnapshotPreview,
)
from ..models.template import StrengthTemplate
from ..models.workout import Exercise, Workout
from .catalog import BackupCatalog
from .codec import PartialGraph, decode, entity_from_record, summary_from_metadata

logger = logging.getLogger(__name__)

KIND_TYPES: dict[RecordKind, type] = {
    RecordKind.CATEGORY: Category,
    RecordKind.SUBCATEGORY: Subcategory,
    RecordKind.STRENGTH_TEMPLATE: StrengthTemplate,
    RecordKind.WORKOUT: Workout,
    RecordKind.EXERCISE: Exercise,
}

Lookup = dict[RecordKind, dict[str, object]]


def load_scalars(partial: PartialGraph, report: RestoreReport) -> Lookup:
    """Phase one: build entities without relationships.

    Malformed records are skipped and added to ``report.malformed``.
    """
    lookup: Lookup = {kind: {} for kind in KIND_TYPES}
    for kind in partial.kinds_present():
        for entity_id, record in partial.records(kind).items():
            try:
                lookup[kind][entity_id] = entity_from_record(record)
            except DecodeFailure as e:
                report.malformed.append(e)
                logger.warning(
                    "Skipping malformed record: %s", e,
                    extra={"snapshot_id": report.snapshot_id},
                )

    report.restored = {kind.value: len(entities) for kind, entities in lookup.items()}
    return lookup


class _Linker:
    """Phase two: attach relationships through the id lookup."""

    def __init__(self, partial: PartialGraph, lookup: Lookup, report: RestoreReport):
        self.partial = partial
        self.lookup = lookup
        self.report = report
        self.owned_exercises: set[str] = set()

    def resolve(self, record: Record, role: str, kind: RecordKind) -> list:
        found = []
        for target_id in record.refs.get(role, []):
            target = self.lookup[kind].get(target_id)
            if target is None:
                self.drop(record, role, target_id)
            else:
                found.append(target)
        return found

    def drop(self, record: Record, role: str, target_id: str) -> None:
        reference = DanglingReference(record.id, role, target_id)
        self.report.dangling.append(reference)
        logger.warning(
            "Dropping unresolved reference %s", reference,
            extra={"snapshot_id": self.report.snapshot_id},
        )

    def set_parent(self, record: Record, subcategory: Subcategory, category: Category) -> None:
        """Link a subcategory to its category; the first parent seen wins."""
        current = subcategory.category
        if current is None:
            category.add_subcategory(subcategory)
        elif current.id != category.id:
            self.drop(record, "categoryIds", category.id)

    def claim(self, record: Record, exercise: Exercise) -> bool:
        """An exercise may be owned by only one workout or template."""
        if exercise.id in self.owned_exercises:
            self.drop(record, "exercises", exercise.id)
            return False
        self.owned_exercises.add(exercise.id)
        return True

    def link(self) -> None:
        records = self.partial.records
        lookup = self.lookup

        for category_id, record in records(RecordKind.CATEGORY).items():
            category = lookup[RecordKind.CATEGORY].get(category_id)
            if category is None:
                continue
            for subcategory in self.resolve(record, "subcategoryIds", RecordKind.SUBCATEGORY):
                self.set_parent(record, subcategory, category)

        for subcategory_id, record in records(RecordKind.SUBCATEGORY).items():
            subcategory = lookup[RecordKind.SUBCATEGORY].get(subcategory_id)
            if subcategory is None:
                continue
            for category in self.resolve(record, "categoryIds", RecordKind.CATEGORY):
                self.set_parent(record, subcategory, category)

        for template_id, record in records(RecordKind.STRENGTH_TEMPLATE).items():
            template = lookup[RecordKind.STRENGTH_TEMPLATE].get(template_id)
            if template is None:
                continue
            for exercise in self.resolve(record, "exercises", RecordKind.EXERCISE):
                if self.claim(record, exercise):
                    template.add_exercise(exercise)

        for workout_id, record in records(RecordKind.WORKOUT).items():
            workout = lookup[RecordKind.WORKOUT].get(workout_id)
            if workout is None:
                continue
            for category in self.resolve(record, "categoryIds", RecordKind.CATEGORY):
                workout.add_category(category)
            for subcategory in self.resolve(record, "subcategoryIds", RecordKind.SUBCATEGORY):
                workout.add_subcategory(subcategory)
            for exercise in self.resolve(record, "exercises", RecordKind.EXERCISE):
                if self.claim(record, exercise):
                    workout.add_exercise(exercise)

        for exercise_id, record in records(RecordKind.EXERCISE).items():
            exercise = lookup[RecordKind.EXERCISE].get(exercise_id)
            if exercise is None:
                continue
            subcategories = self.resolve(record, "subcategoryIds", RecordKind.SUBCATEGORY)
            if subcategories:
                exercise.subcategory = subcategories[0]


def attach_relationships(partial: PartialGraph, lookup: Lookup, report: RestoreReport) -> None:
    """Phase two: resolve every record's refs, dropping unresolved ids."""
    _Linker(partial, lookup, report).link()


def graph_from_lookup(lookup: Lookup) -> EntityGraph:
    return EntityGraph(
        workouts=list(lookup[RecordKind.WORKOUT].values()),
        categories=list(lookup[RecordKind.CATEGORY].values()),
        subcategories=list(lookup[RecordKind.SUBCATEGORY].values()),
        exercises=list(lookup[RecordKind.EXERCISE].values()),
        templates=list(lookup[RecordKind.STRENGTH_TEMPLATE].values()),
    )


def reconstruct(partial: PartialGraph) -> tuple[EntityGraph, RestoreReport]:
    """Rebuild a linked graph from decoded records without touching any store."""
    report = RestoreReport(
        snapshot_id=partial.snapshot_id or "", unknown_kinds=partial.unknown_kinds
    )
    lookup = load_scalars(partial, report)
    attach_relationships(partial, lookup, report)
    return graph_from_lookup(lookup), report


class RestoreReconstructor:
    """Runs preview and restore for snapshots held in the record store."""

    def __init__(self, catalog: BackupCatalog):
        self.catalog = catalog

    async def preview(self, snapshot_id: str) -> SnapshotPreview:
        """Reconstruct a snapshot in memory; nothing local is changed."""
        records = await self.catalog.fetch_full(snapshot_id)
        partial = decode(records)
        summary = self._summary(partial)
        graph, report = reconstruct(partial)
        return SnapshotPreview(summary=summary, graph=graph, report=report)

    async def restore(self, snapshot_id: str, local_store: LocalStore) -> RestoreReport:
        """Replace local entities with the snapshot's contents.

        Raises:
            SnapshotNotFound: If the snapshot has no metadata record
            DecodeFailed: If the metadata record is malformed
            ClearFailed: If existing entities could not be removed
            CommitFailed: If inserting or saving the restored entities failed
        """
        records = await self.catalog.fetch_full(snapshot_id)
        return await self.apply(records, local_store)

    async def apply(self, records: list[Record], local_store: LocalStore) -> RestoreReport:
        """Clear, insert, attach and commit an already fetched record set."""
        partial = decode(records)
        self._summary(partial)
        snapshot_id = partial.snapshot_id
        log_extra = {"snapshot_id": snapshot_id}

        kinds = partial.kinds_present()
        logger.info(
            "Restoring %s", ", ".join(k.value for k in kinds) or "nothing",
            extra={**log_extra, "step": "clear"},
        )
        try:
            for kind in kinds:
                for entity in await local_store.fetch_all(KIND_TYPES[kind]):
                    local_store.delete(entity)
        except Exception as e:
            local_store.rollback()
            raise ClearFailed(str(e)) from e

        report = RestoreReport(snapshot_id=snapshot_id, unknown_kinds=partial.unknown_kinds)
        lookup = load_scalars(partial, report)
        try:
            for kind in kinds:
                for entity in lookup[kind].values():
                    local_store.insert(entity)
        except Exception as e:
            local_store.rollback()
            raise CommitFailed(str(e), step="insert") from e

        attach_relationships(partial, lookup, report)

        try:
            await local_store.save()
        except Exception as e:
            local_store.rollback()
            raise CommitFailed(str(e), step="commit") from e

        logger.info(
            "Restored %s", report.restored, extra={**log_extra, "step": "commit"}
        )
        if report.has_warnings:
            logger.warning(
                "Restore finished with %d malformed record(s) and %d dropped reference(s)",
                len(report.malformed), len(report.dangling), extra=log_extra,
            )
        return report

    def _summary(self, partial: PartialGraph):
        if partial.metadata is None:
            raise DecodeFailed("snapshot has no metadata record")
        try:
            return summary_from_metadata(partial.metadata)
        except DecodeFailure as e:
            raise DecodeFailed(str(e)) from e

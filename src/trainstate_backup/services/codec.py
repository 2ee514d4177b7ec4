"""Conversion between the entity graph and flat snapshot records.

Record ids are scoped to their snapshot (``<snapshot_id>/<entity_id>``) so
that two snapshots of the same data never share a primary key in the record
store. Foreign keys in ``refs`` always hold plain entity ids.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..errors import DecodeFailure
from ..models.category import Category, Subcategory
from ..models.graph import EntityGraph
from ..models.snapshot import (
    ENTITY_KINDS,
    FORMAT_VERSION,
    Record,
    RecordKind,
    SnapshotSummary,
    to_naive_local,
)
from ..models.template import StrengthTemplate
from ..models.workout import Exercise, Workout, WorkoutType

logger = logging.getLogger(__name__)

METADATA_SUFFIX = "metadata"

# Metadata count fields keyed by record kind
COUNT_FIELDS = {
    RecordKind.WORKOUT.value: "workoutCount",
    RecordKind.CATEGORY.value: "categoryCount",
    RecordKind.SUBCATEGORY.value: "subcategoryCount",
    RecordKind.EXERCISE.value: "exerciseCount",
    RecordKind.STRENGTH_TEMPLATE.value: "strengthTemplateCount",
}

KNOWN_KINDS = {kind.value for kind in RecordKind}


def record_id(snapshot_id: str, entity_id: str) -> str:
    """Build the store key of an entity's record within a snapshot."""
    return f"{snapshot_id}/{entity_id}"


def metadata_record_id(snapshot_id: str) -> str:
    return record_id(snapshot_id, METADATA_SUFFIX)


def entity_id_of(record: Record) -> str:
    """Return the entity id a record was encoded from."""
    prefix = f"{record.snapshot_id}/"
    if record.id.startswith(prefix):
        return record.id[len(prefix):]
    return record.id


@dataclass
class PartialGraph:
    """Records grouped by kind and keyed by entity id, references unresolved."""

    snapshot_id: str | None = None
    by_kind: dict[str, dict[str, Record]] = field(default_factory=dict)
    metadata: Record | None = None
    unknown_kinds: int = 0

    def records(self, kind: RecordKind) -> dict[str, Record]:
        return self.by_kind.get(kind.value, {})

    def kinds_present(self) -> list[RecordKind]:
        """Entity kinds with at least one record, in insertion order."""
        return [kind for kind in ENTITY_KINDS if self.by_kind.get(kind.value)]

    def counts(self) -> dict[str, int]:
        return {kind.value: len(self.records(kind)) for kind in ENTITY_KINDS}


# -- encoding -----------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _make_record(
    kind: RecordKind,
    entity_id: str,
    snapshot_id: str,
    created_at: datetime,
    fields: dict,
    refs: dict[str, list[str]] | None = None,
) -> Record:
    return Record(
        id=record_id(snapshot_id, entity_id),
        kind=kind.value,
        snapshot_id=snapshot_id,
        created_at=created_at,
        fields=fields,
        refs=refs or {},
    )


def encode(
    graph: EntityGraph, snapshot_id: str, created_at: datetime | None = None
) -> list[Record]:
    """Flatten an entity graph into one record per entity.

    Exercises owned by workouts and templates are included even when they
    are not listed in ``graph.exercises``. The metadata record is not part
    of the result; see :func:`build_metadata_record`.
    """
    created_at = created_at or datetime.now()
    records = []

    for category in graph.categories:
        records.append(_make_record(
            RecordKind.CATEGORY, category.id, snapshot_id, created_at,
            {
                "name": category.name,
                "color": category.color,
                "workoutType": category.workout_type.value if category.workout_type else None,
            },
            {"subcategoryIds": [s.id for s in category.subcategories]},
        ))

    for subcategory in graph.subcategories:
        parent = subcategory.category
        records.append(_make_record(
            RecordKind.SUBCATEGORY, subcategory.id, snapshot_id, created_at,
            {"name": subcategory.name},
            {"categoryIds": [parent.id] if parent else []},
        ))

    for template in graph.templates:
        records.append(_make_record(
            RecordKind.STRENGTH_TEMPLATE, template.id, snapshot_id, created_at,
            {
                "name": template.name,
                "mainCategory": template.main_category,
                "createdAt": _iso(template.created_at),
                "updatedAt": _iso(template.updated_at),
            },
            {"exercises": [e.id for e in template.exercises]},
        ))

    for workout in graph.workouts:
        records.append(_make_record(
            RecordKind.WORKOUT, workout.id, snapshot_id, created_at,
            {
                "type": workout.type.value,
                "startDate": _iso(workout.start_date),
                "duration": workout.duration,
                "calories": workout.calories,
                "distance": workout.distance,
                "rating": workout.rating,
                "notes": workout.notes,
            },
            {
                "categoryIds": [c.id for c in workout.categories],
                "subcategoryIds": [s.id for s in workout.subcategories],
                "exercises": [e.id for e in workout.exercises],
            },
        ))

    for exercise in graph.all_exercises():
        records.append(_make_record(
            RecordKind.EXERCISE, exercise.id, snapshot_id, created_at,
            {
                "name": exercise.name,
                "sets": exercise.sets,
                "reps": exercise.reps,
                "weight": exercise.weight,
                "notes": exercise.notes,
                "orderIndex": exercise.order_index,
                "setPlan": exercise.set_plan,
            },
            {"subcategoryIds": [exercise.subcategory.id] if exercise.subcategory else []},
        ))

    return records


def build_metadata_record(
    graph: EntityGraph,
    snapshot_id: str,
    device_name: str,
    created_at: datetime | None = None,
) -> Record:
    """Build the single metadata record that makes a snapshot listable."""
    created_at = created_at or datetime.now()
    fields = {
        "deviceName": device_name,
        "timestamp": created_at.isoformat(),
        "formatVersion": FORMAT_VERSION,
        "assignedSubcategoryCount": graph.assigned_subcategory_count(),
    }
    for kind, count in graph.counts().items():
        fields[COUNT_FIELDS[kind]] = count

    return Record(
        id=metadata_record_id(snapshot_id),
        kind=RecordKind.METADATA.value,
        snapshot_id=snapshot_id,
        created_at=created_at,
        fields=fields,
    )


# -- decoding -----------------------------------------------------------------


def decode(records: list[Record]) -> PartialGraph:
    """Group records by kind without resolving any reference.

    Unknown kinds are skipped and counted. If more than one metadata record
    is present the newest wins.
    """
    partial = PartialGraph()
    for record in records:
        if partial.snapshot_id is None:
            partial.snapshot_id = record.snapshot_id

        if record.kind not in KNOWN_KINDS:
            partial.unknown_kinds += 1
            logger.debug("Skipping record %s of unknown kind %r", record.id, record.kind)
            continue

        if record.is_metadata:
            if partial.metadata is None or record.created_at > partial.metadata.created_at:
                partial.metadata = record
            continue

        partial.by_kind.setdefault(record.kind, {})[entity_id_of(record)] = record

    if partial.unknown_kinds:
        logger.warning(
            "Skipped %d record(s) of unknown kind", partial.unknown_kinds,
            extra={"snapshot_id": partial.snapshot_id},
        )
    return partial


def _get(record: Record, name: str):
    return record.fields.get(name)


def _require_str(record: Record, name: str) -> str:
    value = _get(record, name)
    if not isinstance(value, str) or not value:
        raise DecodeFailure(record.id, f"missing or invalid '{name}'")
    return value


def _optional_str(record: Record, name: str) -> str | None:
    value = _get(record, name)
    if value is not None and not isinstance(value, str):
        raise DecodeFailure(record.id, f"'{name}' must be a string")
    return value


def _optional_number(record: Record, name: str) -> float | None:
    value = _get(record, name)
    if value is None:
        return None
    # bool is an int subclass but never a valid measurement
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeFailure(record.id, f"'{name}' must be a number")
    return value


def _optional_int(record: Record, name: str) -> int | None:
    value = _get(record, name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeFailure(record.id, f"'{name}' must be an integer")
    return value


def _timestamp(record: Record, name: str, required: bool = True) -> datetime | None:
    value = _get(record, name)
    if value is None and not required:
        return None
    if not isinstance(value, str):
        raise DecodeFailure(record.id, f"missing or invalid '{name}'")
    try:
        return to_naive_local(datetime.fromisoformat(value))
    except ValueError:
        raise DecodeFailure(record.id, f"bad timestamp in '{name}': {value!r}")


def _workout_type(record: Record, name: str, required: bool = True) -> WorkoutType | None:
    value = _get(record, name)
    if value is None and not required:
        return None
    try:
        return WorkoutType(value)
    except ValueError:
        raise DecodeFailure(record.id, f"unknown workout type {value!r}")


def entity_from_record(record: Record):
    """Build an entity with scalar fields only, keeping its original id.

    Raises:
        DecodeFailure: If the record's fields are missing or malformed
    """
    entity_id = entity_id_of(record)
    kind = record.kind

    if kind == RecordKind.CATEGORY.value:
        return Category(
            id=entity_id,
            name=_require_str(record, "name"),
            color=_optional_str(record, "color") or "#FF0000",
            workout_type=_workout_type(record, "workoutType", required=False),
        )

    if kind == RecordKind.SUBCATEGORY.value:
        return Subcategory(id=entity_id, name=_require_str(record, "name"))

    if kind == RecordKind.STRENGTH_TEMPLATE.value:
        created_at = _timestamp(record, "createdAt", required=False) or record.created_at
        return StrengthTemplate(
            id=entity_id,
            name=_require_str(record, "name"),
            main_category=_optional_str(record, "mainCategory") or WorkoutType.STRENGTH.value,
            created_at=created_at,
            updated_at=_timestamp(record, "updatedAt", required=False) or created_at,
        )

    if kind == RecordKind.WORKOUT.value:
        return Workout(
            id=entity_id,
            type=_workout_type(record, "type"),
            start_date=_timestamp(record, "startDate"),
            duration=_optional_number(record, "duration") or 0,
            calories=_optional_number(record, "calories"),
            distance=_optional_number(record, "distance"),
            rating=_optional_int(record, "rating"),
            notes=_optional_str(record, "notes"),
        )

    if kind == RecordKind.EXERCISE.value:
        return Exercise(
            id=entity_id,
            name=_require_str(record, "name"),
            sets=_optional_int(record, "sets"),
            reps=_optional_int(record, "reps"),
            weight=_optional_number(record, "weight"),
            notes=_optional_str(record, "notes"),
            order_index=_optional_int(record, "orderIndex") or 0,
            set_plan=_optional_str(record, "setPlan"),
        )

    raise DecodeFailure(record.id, f"kind {kind!r} is not an entity")


def summary_from_metadata(record: Record) -> SnapshotSummary:
    """Build a listing summary from a metadata record.

    Raises:
        DecodeFailure: If the record is not a well-formed metadata record
    """
    if not record.is_metadata:
        raise DecodeFailure(record.id, "not a metadata record")

    counts = {}
    for kind, name in COUNT_FIELDS.items():
        counts[kind] = _optional_int(record, name) or 0

    return SnapshotSummary(
        snapshot_id=record.snapshot_id,
        device_name=_optional_str(record, "deviceName") or "Unknown device",
        created_at=_timestamp(record, "timestamp"),
        counts=counts,
        assigned_subcategory_count=_optional_int(record, "assignedSubcategoryCount") or 0,
        record_id=record.id,
    )

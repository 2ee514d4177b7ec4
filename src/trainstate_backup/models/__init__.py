"""Data models for trainstate-backup."""

from .category import Category, Subcategory
from .graph import EntityGraph
from .snapshot import (
    Record,
    RecordKind,
    RestoreReport,
    SnapshotPreview,
    SnapshotSummary,
)
from .template import SetPlanEntry, StrengthTemplate
from .workout import Exercise, Workout, WorkoutType

__all__ = [
    "Category",
    "EntityGraph",
    "Exercise",
    "Record",
    "RecordKind",
    "RestoreReport",
    "SetPlanEntry",
    "SnapshotPreview",
    "SnapshotSummary",
    "StrengthTemplate",
    "Subcategory",
    "Workout",
    "WorkoutType",
]

"""Snapshot wire records and the result types of engine operations."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Union

from .graph import EntityGraph

if TYPE_CHECKING:
    from ..errors import DecodeFailure

Scalar = Union[str, int, float, bool, None]

FORMAT_VERSION = 1


def to_naive_local(value: datetime) -> datetime:
    """Return ``value`` as naive local time, the form used throughout."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class RecordKind(str, Enum):
    """Record kinds stored in the remote record store."""

    WORKOUT = "workout"
    CATEGORY = "category"
    SUBCATEGORY = "subcategory"
    EXERCISE = "exercise"
    STRENGTH_TEMPLATE = "strengthTemplate"
    METADATA = "metadata"


ENTITY_KINDS = [
    RecordKind.CATEGORY,
    RecordKind.SUBCATEGORY,
    RecordKind.STRENGTH_TEMPLATE,
    RecordKind.WORKOUT,
    RecordKind.EXERCISE,
]


@dataclass
class Record:
    """Flat, foreign-key-addressed representation of one entity.

    ``fields`` only holds scalars; relationships live in ``refs`` as id
    lists keyed by role (``categoryIds``, ``subcategoryIds``, ``exercises``).
    """

    id: str
    kind: str
    snapshot_id: str
    created_at: datetime
    fields: dict[str, Scalar] = field(default_factory=dict)
    refs: dict[str, list[str]] = field(default_factory=dict)

    @property
    def is_metadata(self) -> bool:
        return self.kind == RecordKind.METADATA.value

    def to_dict(self) -> dict:
        """Convert to the wire dictionary."""
        return {
            "id": self.id,
            "kind": self.kind,
            "snapshotId": self.snapshot_id,
            "createdAt": self.created_at.isoformat(),
            "fields": dict(self.fields),
            "refs": {role: list(ids) for role, ids in self.refs.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Record":
        """Create from a wire dictionary.

        Raises:
            ValueError: If required keys are missing or malformed
        """
        try:
            refs = data.get("refs") or {}
            return cls(
                id=str(data["id"]),
                kind=str(data["kind"]),
                snapshot_id=str(data["snapshotId"]),
                created_at=to_naive_local(datetime.fromisoformat(data["createdAt"])),
                fields=dict(data.get("fields") or {}),
                refs={role: [str(i) for i in ids] for role, ids in refs.items()},
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed record: {e!r}") from e


@dataclass
class SnapshotSummary:
    """Listing entry for one snapshot, built from its metadata record."""

    snapshot_id: str
    device_name: str
    created_at: datetime
    counts: dict[str, int] = field(default_factory=dict)
    assigned_subcategory_count: int = 0
    record_id: str | None = None

    @property
    def workout_count(self) -> int:
        return self.counts.get(RecordKind.WORKOUT.value, 0)

    @property
    def category_count(self) -> int:
        return self.counts.get(RecordKind.CATEGORY.value, 0)

    @property
    def subcategory_count(self) -> int:
        return self.counts.get(RecordKind.SUBCATEGORY.value, 0)

    @property
    def exercise_count(self) -> int:
        return self.counts.get(RecordKind.EXERCISE.value, 0)

    @property
    def template_count(self) -> int:
        return self.counts.get(RecordKind.STRENGTH_TEMPLATE.value, 0)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "snapshot_id": self.snapshot_id,
            "device_name": self.device_name,
            "created_at": self.created_at.isoformat(),
            "counts": dict(self.counts),
            "assigned_subcategory_count": self.assigned_subcategory_count,
        }


@dataclass
class DanglingReference:
    """A foreign key that did not resolve within its snapshot."""

    record_id: str
    role: str
    target_id: str

    def __str__(self) -> str:
        return f"{self.record_id}.{self.role} -> {self.target_id}"


@dataclass
class RestoreReport:
    """Outcome of a reconstruction (restore, preview or file import)."""

    snapshot_id: str
    restored: dict[str, int] = field(default_factory=dict)
    malformed: list["DecodeFailure"] = field(default_factory=list)
    dangling: list[DanglingReference] = field(default_factory=list)
    unknown_kinds: int = 0

    @property
    def malformed_ids(self) -> list[str]:
        return [m.record_id for m in self.malformed]

    @property
    def has_warnings(self) -> bool:
        return bool(self.malformed or self.dangling or self.unknown_kinds)


@dataclass
class SnapshotPreview:
    """Read-only view of a snapshot's reconstructed contents."""

    summary: SnapshotSummary
    graph: EntityGraph
    report: RestoreReport


@dataclass
class WriteResult:
    """Aggregated result of a chunked write."""

    written: int = 0
    failed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    quota_exceeded: bool = False
    interrupted: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class DeleteResult:
    """Aggregated result of a chunked delete."""

    deleted: int = 0
    failed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    interrupted: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class PruneResult:
    """Which snapshots were fully deleted and which must be retried."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

"""Strength workout template model."""

import json
from dataclasses import dataclass, field
from datetime import datetime

from .workout import Exercise, WorkoutType, new_id


@dataclass
class SetPlanEntry:
    """One planned set of a template exercise."""

    reps: int
    weight: float

    def to_dict(self) -> dict:
        return {"reps": self.reps, "weight": self.weight}


def encode_set_plan(entries: list[SetPlanEntry]) -> str | None:
    """Serialize a set plan to the JSON text stored on an exercise."""
    if not entries:
        return None
    return json.dumps([e.to_dict() for e in entries])


def decode_set_plan(set_plan: str | None) -> list[SetPlanEntry]:
    """Parse stored set plan JSON, returning an empty plan if unreadable."""
    if not set_plan:
        return []
    try:
        raw = json.loads(set_plan)
        return [SetPlanEntry(reps=int(e["reps"]), weight=float(e["weight"])) for e in raw]
    except (ValueError, TypeError, KeyError):
        return []


@dataclass(eq=False)
class StrengthTemplate:
    """A reusable strength workout made of ordered template exercises."""

    name: str
    main_category: str = WorkoutType.STRENGTH.value
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    exercises: list[Exercise] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def add_exercise(self, exercise: Exercise) -> None:
        """Append an owned exercise, keeping the list ordered by order index."""
        if any(e.id == exercise.id for e in self.exercises):
            return
        self.exercises.append(exercise)
        self.exercises.sort(key=lambda e: e.order_index)

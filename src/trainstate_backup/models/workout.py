"""Workout and exercise models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import uuid4

if TYPE_CHECKING:
    from .category import Category, Subcategory


def new_id() -> str:
    """Generate a new entity identifier."""
    return str(uuid4())


class WorkoutType(str, Enum):
    """Top-level workout types."""

    STRENGTH = "Strength Training"
    CARDIO = "Cardio"
    YOGA = "Yoga"
    RUNNING = "Running"
    CYCLING = "Cycling"
    SWIMMING = "Swimming"
    OTHER = "Other"


@dataclass(eq=False)
class Exercise:
    """An exercise owned by a single workout or strength template.

    Template exercises additionally carry a set plan (JSON list of
    ``{"reps", "weight"}`` entries) and usually a subcategory link.
    """

    name: str
    sets: int | None = None
    reps: int | None = None
    weight: float | None = None
    notes: str | None = None
    order_index: int = 0
    set_plan: str | None = None
    subcategory: "Subcategory | None" = field(default=None, repr=False)
    id: str = field(default_factory=new_id)


@dataclass(eq=False)
class Workout:
    """A logged workout session."""

    type: WorkoutType = WorkoutType.OTHER
    start_date: datetime = field(default_factory=datetime.now)
    duration: float = 0  # seconds
    calories: float | None = None
    distance: float | None = None
    rating: int | None = None
    notes: str | None = None
    categories: list["Category"] = field(default_factory=list)
    subcategories: list["Subcategory"] = field(default_factory=list)
    exercises: list[Exercise] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def add_category(self, category: "Category") -> None:
        """Link a category, ignoring duplicates by id."""
        if not any(c.id == category.id for c in self.categories):
            self.categories.append(category)

    def remove_category(self, category: "Category") -> None:
        self.categories = [c for c in self.categories if c.id != category.id]

    def add_subcategory(self, subcategory: "Subcategory") -> None:
        """Link a subcategory, ignoring duplicates by id."""
        if not any(s.id == subcategory.id for s in self.subcategories):
            self.subcategories.append(subcategory)

    def remove_subcategory(self, subcategory: "Subcategory") -> None:
        self.subcategories = [s for s in self.subcategories if s.id != subcategory.id]

    def add_exercise(self, exercise: Exercise) -> None:
        """Append an owned exercise, keeping the list ordered by order index."""
        if any(e.id == exercise.id for e in self.exercises):
            return
        self.exercises.append(exercise)
        self.exercises.sort(key=lambda e: e.order_index)

    @property
    def category_names(self) -> list[str]:
        return sorted(c.name for c in self.categories)


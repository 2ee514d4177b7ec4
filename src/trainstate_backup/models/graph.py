"""In-memory entity graph exchanged between the local store and the codec."""

from dataclasses import dataclass, field

from .category import Category, Subcategory
from .template import StrengthTemplate
from .workout import Exercise, Workout


@dataclass
class EntityGraph:
    """All exportable entities, linked by object references."""

    workouts: list[Workout] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    subcategories: list[Subcategory] = field(default_factory=list)
    exercises: list[Exercise] = field(default_factory=list)
    templates: list[StrengthTemplate] = field(default_factory=list)

    def all_exercises(self) -> list[Exercise]:
        """Exercises listed directly plus those owned by workouts and templates."""
        seen: set[str] = set()
        result = []
        owned = [ex for w in self.workouts for ex in w.exercises]
        owned += [ex for t in self.templates for ex in t.exercises]
        for exercise in self.exercises + owned:
            if exercise.id not in seen:
                seen.add(exercise.id)
                result.append(exercise)
        return result

    def counts(self) -> dict[str, int]:
        """Entity counts keyed by record kind."""
        return {
            "workout": len(self.workouts),
            "category": len(self.categories),
            "subcategory": len(self.subcategories),
            "exercise": len(self.all_exercises()),
            "strengthTemplate": len(self.templates),
        }

    def assigned_subcategory_count(self) -> int:
        """Number of subcategories linked to at least one workout."""
        assigned = {s.id for w in self.workouts for s in w.subcategories}
        return sum(1 for s in self.subcategories if s.id in assigned)

    def get_summary(self) -> str:
        """Generate a short text summary of the graph."""
        counts = self.counts()
        return (
            f"{counts['workout']} workouts, {counts['category']} categories, "
            f"{counts['subcategory']} subcategories, {counts['exercise']} exercises, "
            f"{counts['strengthTemplate']} templates"
        )

"""Workout category and subcategory models."""

from dataclasses import dataclass, field

from .workout import WorkoutType, new_id


@dataclass(eq=False)
class Subcategory:
    """A named subdivision of a category (e.g. "Chest" under "Push").

    The ``category`` back-reference is a lookup edge only: deleting a
    subcategory never deletes its category.
    """

    name: str
    category: "Category | None" = field(default=None, repr=False)
    id: str = field(default_factory=new_id)


@dataclass(eq=False)
class Category:
    """A user-defined workout category."""

    name: str
    color: str = "#FF0000"  # hex string
    workout_type: WorkoutType | None = None
    subcategories: list[Subcategory] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def add_subcategory(self, subcategory: Subcategory) -> None:
        """Attach an owned subcategory and set its back-reference."""
        if not any(s.id == subcategory.id for s in self.subcategories):
            self.subcategories.append(subcategory)
            subcategory.category = self

    def remove_subcategory(self, subcategory: Subcategory) -> None:
        self.subcategories = [s for s in self.subcategories if s.id != subcategory.id]
        if subcategory.category is not None and subcategory.category.id == self.id:
            subcategory.category = None

    @staticmethod
    def for_type(
        workout_type: WorkoutType, categories: list["Category"]
    ) -> list["Category"]:
        """Filter categories tagged with a workout type."""
        return [c for c in categories if c.workout_type == workout_type]

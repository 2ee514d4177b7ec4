"""Local entity store.

The restore engine consumes the local store through the small
:class:`LocalStore` interface. :class:`SQLiteLocalStore` implements it as a
unit of work: ``insert`` and ``delete`` only stage changes, and ``save``
applies all of them in a single SQLite transaction.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Protocol, TypeVar, runtime_checkable

import aiosqlite

from ..models.category import Category, Subcategory
from ..models.graph import EntityGraph
from ..models.template import StrengthTemplate
from ..models.workout import Exercise, Workout, WorkoutType
from .engine import get_db_path

logger = logging.getLogger(__name__)

T = TypeVar("T")

Entity = Workout | Category | Subcategory | Exercise | StrengthTemplate

# EntityGraph attribute holding each entity type
GRAPH_ATTRS: dict[type, str] = {
    Workout: "workouts",
    Category: "categories",
    Subcategory: "subcategories",
    Exercise: "exercises",
    StrengthTemplate: "templates",
}

# Order in which staged inserts are written
WRITE_ORDER = [Category, Subcategory, StrengthTemplate, Workout, Exercise]

# Rows other types point at; re-inserting one under the same id overwrites it
# in place so those references survive
REFERENCED_TYPES = (Category, Subcategory, Exercise)


@runtime_checkable
class LocalStore(Protocol):
    """Interface the engine needs from the local entity store."""

    async def fetch_all(self, entity_type: type[T]) -> list[T]:
        """Return every persisted entity of a type."""
        ...

    def insert(self, entity: Entity) -> None:
        """Stage an entity for insertion (overwrites by id)."""
        ...

    def delete(self, entity: Entity) -> None:
        """Stage an entity for deletion."""
        ...

    async def save(self) -> None:
        """Persist all staged changes atomically."""
        ...

    def rollback(self) -> None:
        """Discard all staged changes."""
        ...


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class SQLiteLocalStore:
    """``aiosqlite`` implementation of :class:`LocalStore`.

    ``fetch_all`` reflects the last saved state; staged changes are invisible
    until ``save`` succeeds.
    """

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_db_path()
        self._inserts: dict[tuple[type, str], Entity] = {}
        self._deletes: dict[tuple[type, str], Entity] = {}
        self._graph: EntityGraph | None = None

    @property
    def has_pending_changes(self) -> bool:
        return bool(self._inserts or self._deletes)

    async def fetch_all(self, entity_type: type[T]) -> list[T]:
        """Return all saved entities of ``entity_type``, fully linked."""
        if entity_type not in GRAPH_ATTRS:
            raise TypeError(f"Unsupported entity type: {entity_type.__name__}")
        graph = await self.load_graph()
        return list(getattr(graph, GRAPH_ATTRS[entity_type]))

    def insert(self, entity: Entity) -> None:
        """Stage an entity for insertion."""
        self._inserts[(type(entity), entity.id)] = entity

    def delete(self, entity: Entity) -> None:
        """Stage an entity for deletion."""
        key = (type(entity), entity.id)
        self._inserts.pop(key, None)
        self._deletes[key] = entity

    def rollback(self) -> None:
        """Discard staged changes."""
        if self.has_pending_changes:
            logger.debug(
                "Discarding %d staged insert(s) and %d staged delete(s)",
                len(self._inserts), len(self._deletes),
            )
        self._inserts.clear()
        self._deletes.clear()

    async def save(self) -> None:
        """Apply staged deletions, then insertions, in one transaction.

        A category, subcategory or exercise deleted and inserted again under
        the same id is replaced in place, so workout links, subcategory
        parents and exercise owners pointing at it are kept.

        On error the transaction is rolled back and the staged changes are
        kept so the caller can decide to retry or :meth:`rollback`.
        """
        if not self.has_pending_changes:
            return

        async with aiosqlite.connect(self.db_path) as db:
            try:
                for key, entity in self._deletes.items():
                    if key in self._inserts and isinstance(entity, REFERENCED_TYPES):
                        continue
                    await self._delete_row(db, entity)
                for entity in self._ordered_inserts():
                    await self._write_row(db, entity)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.debug(
            "Saved %d insert(s) and %d delete(s)", len(self._inserts), len(self._deletes)
        )
        self._inserts.clear()
        self._deletes.clear()
        self._graph = None

    def _ordered_inserts(self) -> list[Entity]:
        """Staged inserts plus owned exercises, in write order."""
        entities = dict(self._inserts)
        for (entity_type, _), entity in self._inserts.items():
            if entity_type in (Workout, StrengthTemplate):
                for exercise in entity.exercises:
                    entities.setdefault((Exercise, exercise.id), exercise)

        ordered = []
        for entity_type in WRITE_ORDER:
            ordered.extend(e for (t, _), e in entities.items() if t is entity_type)
        return ordered

    def _exercise_owners(self) -> dict[str, tuple[str | None, str | None]]:
        """Map staged exercise ids to their (workout_id, template_id)."""
        owners = {}
        for (entity_type, _), entity in self._inserts.items():
            if entity_type is Workout:
                for exercise in entity.exercises:
                    owners[exercise.id] = (entity.id, None)
            elif entity_type is StrengthTemplate:
                for exercise in entity.exercises:
                    owners[exercise.id] = (None, entity.id)
        return owners

    async def _delete_row(self, db: aiosqlite.Connection, entity: Entity) -> None:
        if isinstance(entity, Workout):
            await db.execute("DELETE FROM exercises WHERE workout_id = ?", (entity.id,))
            await db.execute("DELETE FROM workout_categories WHERE workout_id = ?", (entity.id,))
            await db.execute(
                "DELETE FROM workout_subcategories WHERE workout_id = ?", (entity.id,)
            )
            await db.execute("DELETE FROM workouts WHERE id = ?", (entity.id,))
        elif isinstance(entity, StrengthTemplate):
            await db.execute("DELETE FROM exercises WHERE template_id = ?", (entity.id,))
            await db.execute("DELETE FROM strength_templates WHERE id = ?", (entity.id,))
        elif isinstance(entity, Category):
            await db.execute(
                "DELETE FROM workout_categories WHERE category_id = ?", (entity.id,)
            )
            await db.execute(
                "UPDATE subcategories SET category_id = NULL WHERE category_id = ?",
                (entity.id,),
            )
            await db.execute("DELETE FROM categories WHERE id = ?", (entity.id,))
        elif isinstance(entity, Subcategory):
            await db.execute(
                "DELETE FROM workout_subcategories WHERE subcategory_id = ?", (entity.id,)
            )
            await db.execute(
                "UPDATE exercises SET subcategory_id = NULL WHERE subcategory_id = ?",
                (entity.id,),
            )
            await db.execute("DELETE FROM subcategories WHERE id = ?", (entity.id,))
        elif isinstance(entity, Exercise):
            await db.execute("DELETE FROM exercises WHERE id = ?", (entity.id,))

    async def _write_row(self, db: aiosqlite.Connection, entity: Entity) -> None:
        if isinstance(entity, Category):
            await db.execute(
                """
                INSERT OR REPLACE INTO categories (id, name, color, workout_type)
                VALUES (?, ?, ?, ?)
                """,
                (
                    entity.id,
                    entity.name,
                    entity.color,
                    entity.workout_type.value if entity.workout_type else None,
                ),
            )
        elif isinstance(entity, Subcategory):
            await db.execute(
                """
                INSERT OR REPLACE INTO subcategories (id, name, category_id)
                VALUES (?, ?, ?)
                """,
                (entity.id, entity.name, entity.category.id if entity.category else None),
            )
        elif isinstance(entity, StrengthTemplate):
            await db.execute(
                """
                INSERT OR REPLACE INTO strength_templates
                (id, name, main_category, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    entity.id,
                    entity.name,
                    entity.main_category,
                    _iso(entity.created_at),
                    _iso(entity.updated_at),
                ),
            )
        elif isinstance(entity, Workout):
            await db.execute(
                """
                INSERT OR REPLACE INTO workouts
                (id, type, start_date, duration, calories, distance, rating, notes)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entity.id,
                    entity.type.value,
                    _iso(entity.start_date),
                    entity.duration,
                    entity.calories,
                    entity.distance,
                    entity.rating,
                    entity.notes,
                ),
            )
            await db.execute("DELETE FROM workout_categories WHERE workout_id = ?", (entity.id,))
            await db.executemany(
                """
                INSERT OR REPLACE INTO workout_categories (workout_id, category_id, position)
                VALUES (?, ?, ?)
                """,
                [(entity.id, c.id, i) for i, c in enumerate(entity.categories)],
            )
            await db.execute(
                "DELETE FROM workout_subcategories WHERE workout_id = ?", (entity.id,)
            )
            await db.executemany(
                """
                INSERT OR REPLACE INTO workout_subcategories
                (workout_id, subcategory_id, position)
                VALUES (?, ?, ?)
                """,
                [(entity.id, s.id, i) for i, s in enumerate(entity.subcategories)],
            )
        elif isinstance(entity, Exercise):
            owner = self._exercise_owners().get(entity.id)
            if owner is None:
                # Not listed by a staged workout or template: keep the saved owner
                cursor = await db.execute(
                    "SELECT workout_id, template_id FROM exercises WHERE id = ?", (entity.id,)
                )
                owner = await cursor.fetchone() or (None, None)
            workout_id, template_id = owner
            await db.execute(
                """
                INSERT OR REPLACE INTO exercises
                (id, name, sets, reps, weight, notes, order_index, set_plan,
                 subcategory_id, workout_id, template_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entity.id,
                    entity.name,
                    entity.sets,
                    entity.reps,
                    entity.weight,
                    entity.notes,
                    entity.order_index,
                    entity.set_plan,
                    entity.subcategory.id if entity.subcategory else None,
                    workout_id,
                    template_id,
                ),
            )

    async def load_graph(self) -> EntityGraph:
        """Load every saved entity and link them by id."""
        if self._graph is not None:
            return self._graph

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row

            cursor = await db.execute("SELECT * FROM categories ORDER BY name, id")
            categories = {row["id"]: self._row_to_category(row) for row in await cursor.fetchall()}

            cursor = await db.execute("SELECT * FROM subcategories ORDER BY name, id")
            subcategory_rows = await cursor.fetchall()

            cursor = await db.execute("SELECT * FROM strength_templates ORDER BY name, id")
            templates = {row["id"]: self._row_to_template(row) for row in await cursor.fetchall()}

            cursor = await db.execute("SELECT * FROM workouts ORDER BY start_date, id")
            workouts = {row["id"]: self._row_to_workout(row) for row in await cursor.fetchall()}

            cursor = await db.execute("SELECT * FROM exercises ORDER BY order_index, id")
            exercise_rows = await cursor.fetchall()

            cursor = await db.execute("SELECT * FROM workout_categories ORDER BY position")
            category_links = await cursor.fetchall()

            cursor = await db.execute("SELECT * FROM workout_subcategories ORDER BY position")
            subcategory_links = await cursor.fetchall()

        subcategories = {}
        for row in subcategory_rows:
            subcategory = Subcategory(id=row["id"], name=row["name"])
            subcategories[subcategory.id] = subcategory
            parent = categories.get(row["category_id"])
            if parent is not None:
                parent.add_subcategory(subcategory)

        exercises = []
        for row in exercise_rows:
            exercise = self._row_to_exercise(row)
            exercise.subcategory = subcategories.get(row["subcategory_id"])
            exercises.append(exercise)
            if row["workout_id"] in workouts:
                workouts[row["workout_id"]].exercises.append(exercise)
            elif row["template_id"] in templates:
                templates[row["template_id"]].exercises.append(exercise)

        for row in category_links:
            workout = workouts.get(row["workout_id"])
            category = categories.get(row["category_id"])
            if workout is not None and category is not None:
                workout.add_category(category)

        for row in subcategory_links:
            workout = workouts.get(row["workout_id"])
            subcategory = subcategories.get(row["subcategory_id"])
            if workout is not None and subcategory is not None:
                workout.add_subcategory(subcategory)

        self._graph = EntityGraph(
            workouts=list(workouts.values()),
            categories=list(categories.values()),
            subcategories=list(subcategories.values()),
            exercises=exercises,
            templates=list(templates.values()),
        )
        return self._graph

    def _row_to_category(self, row: aiosqlite.Row) -> Category:
        """Convert a database row to a Category."""
        return Category(
            id=row["id"],
            name=row["name"],
            color=row["color"],
            workout_type=WorkoutType(row["workout_type"]) if row["workout_type"] else None,
        )

    def _row_to_template(self, row: aiosqlite.Row) -> StrengthTemplate:
        """Convert a database row to a StrengthTemplate."""
        return StrengthTemplate(
            id=row["id"],
            name=row["name"],
            main_category=row["main_category"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _row_to_workout(self, row: aiosqlite.Row) -> Workout:
        """Convert a database row to a Workout."""
        return Workout(
            id=row["id"],
            type=WorkoutType(row["type"]),
            start_date=datetime.fromisoformat(row["start_date"]),
            duration=row["duration"],
            calories=row["calories"],
            distance=row["distance"],
            rating=row["rating"],
            notes=row["notes"],
        )

    def _row_to_exercise(self, row: aiosqlite.Row) -> Exercise:
        """Convert a database row to an Exercise."""
        return Exercise(
            id=row["id"],
            name=row["name"],
            sets=row["sets"],
            reps=row["reps"],
            weight=row["weight"],
            notes=row["notes"],
            order_index=row["order_index"],
            set_plan=row["set_plan"],
        )

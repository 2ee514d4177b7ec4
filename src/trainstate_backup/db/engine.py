"""Database engine setup and initialization."""

from pathlib import Path

import aiosqlite

from ..config import get_data_dir


def get_db_path(data_dir: Path | None = None) -> Path:
    """Get the local database file path."""
    if data_dir is None:
        data_dir = get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / "trainstate.db"


def get_record_store_path(data_dir: Path | None = None) -> Path:
    """Get the default record store file path."""
    if data_dir is None:
        data_dir = get_data_dir()
    return data_dir / "remote" / "records.db"


async def _run_migrations(db: aiosqlite.Connection) -> None:
    """Run database migrations for schema updates."""
    cursor = await db.execute("PRAGMA table_info(workouts)")
    columns = await cursor.fetchall()
    workout_columns = {col[1] for col in columns}

    # rating was added after the first release
    if "rating" not in workout_columns:
        await db.execute("ALTER TABLE workouts ADD COLUMN rating INTEGER")

    cursor = await db.execute("PRAGMA table_info(exercises)")
    columns = await cursor.fetchall()
    exercise_columns = {col[1] for col in columns}

    if "set_plan" not in exercise_columns:
        await db.execute("ALTER TABLE exercises ADD COLUMN set_plan TEXT")

    await db.commit()


async def init_db(db_path: Path | None = None) -> None:
    """Initialize the local database schema."""
    if db_path is None:
        db_path = get_db_path()

    async with aiosqlite.connect(db_path) as db:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS categories (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                color TEXT NOT NULL DEFAULT '#FF0000',
                workout_type TEXT
            )
        """)

        # category_id is a weak reference: cleared, never cascaded
        await db.execute("""
            CREATE TABLE IF NOT EXISTS subcategories (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                category_id TEXT
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS strength_templates (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                main_category TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS workouts (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                start_date TIMESTAMP NOT NULL,
                duration REAL NOT NULL DEFAULT 0,
                calories REAL,
                distance REAL,
                rating INTEGER,
                notes TEXT
            )
        """)

        # Owned by exactly one of workout_id / template_id
        await db.execute("""
            CREATE TABLE IF NOT EXISTS exercises (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                sets INTEGER,
                reps INTEGER,
                weight REAL,
                notes TEXT,
                order_index INTEGER NOT NULL DEFAULT 0,
                set_plan TEXT,
                subcategory_id TEXT,
                workout_id TEXT,
                template_id TEXT
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS workout_categories (
                workout_id TEXT NOT NULL,
                category_id TEXT NOT NULL,
                position INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (workout_id, category_id)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS workout_subcategories (
                workout_id TEXT NOT NULL,
                subcategory_id TEXT NOT NULL,
                position INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (workout_id, subcategory_id)
            )
        """)

        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_exercises_workout
            ON exercises(workout_id)
        """)
        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_exercises_template
            ON exercises(template_id)
        """)
        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_subcategories_category
            ON subcategories(category_id)
        """)

        await db.commit()

        await _run_migrations(db)

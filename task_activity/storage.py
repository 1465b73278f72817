"""
SQLite-based storage for imported task records.

Tasks are keyed by their external identifier so a re-import updates rows in place.
"""

import json
import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

# Columns overwritten on conflict. external_id is the conflict key and never changes.
MUTABLE_COLUMNS = (
    "name",
    "status",
    "task_status",
    "active",
    "added",
    "modified",
    "completed",
    "completion_date",
    "due_date",
    "note",
    "tags",
    "raw_data",
)

TIMESTAMP_COLUMNS = ("added", "modified", "completed", "completion_date", "due_date")


class StorageError(Exception):
    """Raised when the task store cannot complete a read or write."""

    pass


def _get_default_db_path() -> Path:
    """Get the default database path."""
    env_path = os.environ.get("TASK_ACTIVITY_DB_PATH")
    if env_path:
        return Path(env_path)
    return Path.home() / ".task-activity" / "tasks.db"


def _serialize_timestamp(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    return str(value)


class TaskStorage:
    """SQLite-based storage for task records."""

    def __init__(self, db_path: str | Path | None = None):
        """
        Initialize the task storage.

        Args:
            db_path: Path to the SQLite database file.
                     Defaults to ~/.task-activity/tasks.db
        """
        if db_path is None:
            db_path = _get_default_db_path()
        self.db_path = Path(db_path)
        try:
            self._init_db()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database {self.db_path}: {e}") from e

    def _init_db(self) -> None:
        """Create tables and indexes if they don't exist."""
        # Ensure parent directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    external_id TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    status TEXT,
                    task_status TEXT,
                    active INTEGER,
                    added TEXT,
                    modified TEXT,
                    completed TEXT,
                    completion_date TEXT,
                    due_date TEXT,
                    note TEXT,
                    tags TEXT,
                    raw_data TEXT NOT NULL,
                    imported_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_imported_at ON tasks(imported_at)
            """)
            conn.commit()

    def upsert_tasks(
        self, rows: list[dict], imported_at: datetime | None = None
    ) -> int:
        """
        Insert or update task rows in a single transaction.

        On an external_id conflict every mutable column is overwritten and
        imported_at is moved to the new write time.

        Args:
            rows: Normalized task rows (see importer.normalize_task)
            imported_at: Write time to record. Defaults to now (UTC).

        Returns:
            Number of rows written (inserts and updates combined)

        Raises:
            StorageError: If the write fails; nothing from the batch is kept
        """
        if not rows:
            return 0

        if imported_at is None:
            imported_at = datetime.now(timezone.utc)
        imported_at_str = imported_at.astimezone(timezone.utc).isoformat(
            timespec="microseconds"
        )

        columns = ("external_id",) + MUTABLE_COLUMNS + ("imported_at",)
        placeholders = ", ".join("?" for _ in columns)
        updates = ",\n                    ".join(
            f"{column} = excluded.{column}" for column in MUTABLE_COLUMNS + ("imported_at",)
        )
        sql = f"""
            INSERT INTO tasks ({", ".join(columns)})
            VALUES ({placeholders})
            ON CONFLICT(external_id) DO UPDATE SET
                    {updates}
        """

        params = [self._row_params(row, imported_at_str) for row in rows]

        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.executemany(sql, params)
                written = cursor.rowcount
        except sqlite3.Error as e:
            logger.error("Failed to upsert %d tasks: %s", len(rows), e)
            raise StorageError(f"Failed to write tasks: {e}") from e

        logger.info("Upserted %d tasks into %s", written, self.db_path)
        return written

    @staticmethod
    def _row_params(row: dict, imported_at: str) -> tuple:
        active = row.get("active")
        tags = row.get("tags")
        return (
            row["external_id"],
            row["name"],
            row.get("status"),
            row.get("task_status"),
            None if active is None else int(bool(active)),
            *(_serialize_timestamp(row.get(column)) for column in TIMESTAMP_COLUMNS),
            row.get("note"),
            None if tags is None else json.dumps(tags),
            json.dumps(row.get("raw_data") or {}, default=str),
            imported_at,
        )

    def get_all_tasks(self) -> list[dict]:
        """
        Retrieve all tasks, most recently written first.

        Returns:
            List of task dictionaries with timestamps as ISO strings
        """
        return self._get_tasks_query(
            "SELECT * FROM tasks ORDER BY imported_at DESC, id"
        )

    def get_task(self, external_id: str) -> dict | None:
        """
        Get a single task by its external identifier.

        Args:
            external_id: The task's external identifier

        Returns:
            Task dictionary or None if not found
        """
        tasks = self._get_tasks_query(
            "SELECT * FROM tasks WHERE external_id = ?", (external_id,)
        )
        return tasks[0] if tasks else None

    def get_latest_batch(self) -> list[dict]:
        """
        Get the tasks written by the most recent import.

        Returns:
            List of task dictionaries sharing the latest imported_at
        """
        return self._get_tasks_query(
            """
            SELECT * FROM tasks
            WHERE imported_at = (SELECT MAX(imported_at) FROM tasks)
            ORDER BY id
            """
        )

    def _get_tasks_query(self, sql: str, params: tuple = ()) -> list[dict]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.row_factory = sqlite3.Row
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error("Failed to read tasks: %s", e)
            raise StorageError(f"Failed to read tasks: {e}") from e

        return [self._row_to_dict(row) for row in rows]

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> dict:
        task = dict(row)
        task["active"] = None if task["active"] is None else bool(task["active"])
        task["tags"] = None if task["tags"] is None else json.loads(task["tags"])
        task["raw_data"] = json.loads(task["raw_data"])
        return task

    def count_tasks(self) -> int:
        """Get the total number of stored tasks."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to count tasks: {e}") from e
        return row[0]

    def get_last_imported_at(self) -> str | None:
        """
        Get the write time of the most recent import.

        Returns:
            ISO timestamp string, or None if nothing has been imported
        """
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute("SELECT MAX(imported_at) FROM tasks").fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read tasks: {e}") from e
        return row[0] if row else None

    def clear(self) -> None:
        """Delete all tasks from the database. Primarily for testing."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("DELETE FROM tasks")
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to clear tasks: {e}") from e

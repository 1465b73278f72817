"""
Command line interface for task-activity.
"""

import json
import logging
from pathlib import Path

import typer

from task_activity.config import (
    IMPORT_API_SECRET,
    LOG_LEVEL,
    PSEUDONYMIZE_NAMES,
    get_reference_timezone,
    validate_import_config,
)
from task_activity.heatmap import calculate_heatmap
from task_activity.import_client import ImportClient, ImportClientError
from task_activity.importer import ImportValidationError, import_tasks
from task_activity.logging_setup import setup_logging
from task_activity.stats_calculator import calculate_stats
from task_activity.storage import StorageError, TaskStorage

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="task-activity",
    help="Import exported tasks and view your completion activity.",
    no_args_is_help=True,
)

LEVEL_SYMBOLS = {0: "·", 1: "░", 2: "▒", 3: "▓", 4: "█"}
WEEKDAY_LABELS = ["   ", "Mon", "   ", "Wed", "   ", "Fri", "   "]


@app.callback()
def main(
    log_level: str = typer.Option(LOG_LEVEL, "--log-level", help="Console log level."),
) -> None:
    """Task completion activity dashboard."""
    setup_logging(log_level)


def load_export_file(path: Path) -> list:
    """
    Load task records from an export file.

    Args:
        path: JSON file holding {"tasks": [...]} or a bare list of tasks

    Returns:
        List of raw task records

    Raises:
        ValueError: If the file is not valid JSON or has no task list
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"{path} is not valid JSON: {e}") from e

    if isinstance(data, dict):
        data = data.get("tasks")
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a list of tasks or an object with a 'tasks' list")
    return data


def display_stats(stats: dict, last_imported_at: str | None = None) -> None:
    """
    Display task statistics to the console.

    Args:
        stats: Dictionary from calculate_stats()
        last_imported_at: ISO time of the most recent import, if any
    """
    total = stats["total_tasks"]
    completed = stats["completed_tasks"]

    total_label = "task" if total == 1 else "tasks"

    print("📊 Task Stats:")
    print(f"   Total:           {total} {total_label}")
    print(f"   Completed:       {completed}")
    print(f"   Completion rate: {stats['completion_rate']}%")
    if last_imported_at:
        print(f"   Last import:     {last_imported_at}")
    print()


def display_heatmap(heatmap: dict, weeks: int = 26) -> None:
    """
    Display a text heatmap of the most recent weeks.

    Args:
        heatmap: Dictionary from calculate_heatmap()
        weeks: Number of trailing week columns to show
    """
    columns = heatmap["weeks"][-weeks:] if weeks > 0 else []

    print("Completion Activity:")
    for weekday in range(7):
        row = WEEKDAY_LABELS[weekday] + " "
        for week in columns:
            day = week[weekday]
            row += " " if day is None else LEVEL_SYMBOLS[day["level"]]
        print(row.rstrip())

    legend = " ".join(LEVEL_SYMBOLS[level] for level in sorted(LEVEL_SYMBOLS))
    print(f"    Less {legend} More")
    print(f"    {heatmap['total_completed']} tasks completed since {heatmap['period']['start']}")
    print()


@app.command("import")
def import_command(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Export file to import."),
) -> None:
    """Import an export file straight into the local database."""
    try:
        tasks = load_export_file(path)
        written = import_tasks(tasks, TaskStorage(), pseudonymize=PSEUDONYMIZE_NAMES)
    except ValueError as e:
        print(f"Error: {e}")
        raise typer.Exit(1)
    except ImportValidationError as e:
        print(f"Error: {e}")
        for error in e.errors:
            location = ".".join(str(part) for part in error["loc"])
            print(f"   record {error['index']} ({error['external_id'] or '?'}): {location} {error['msg']}")
        raise typer.Exit(1)
    except StorageError as e:
        print(f"Error: {e}")
        raise typer.Exit(1)

    print(f"Imported {written} tasks.")


@app.command()
def push(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Export file to send."),
    url: str = typer.Option("http://localhost:8000", "--url", help="Server base URL."),
    token: str = typer.Option(
        None, "--token", envvar="IMPORT_API_SECRET", help="Import bearer token."
    ),
) -> None:
    """Send an export file to a running task-activity server."""
    token = token or IMPORT_API_SECRET
    if not token:
        print("Error: no import token. Pass --token or set IMPORT_API_SECRET.")
        raise typer.Exit(1)

    try:
        tasks = load_export_file(path)
        result = ImportClient(url, token).push_tasks(tasks)
    except ValueError as e:
        print(f"Error: {e}")
        raise typer.Exit(1)
    except ImportClientError as e:
        print(f"Error: {e}")
        for detail in e.details:
            print(f"   {detail}")
        raise typer.Exit(1)

    print(result.get("message", f"Imported {result.get('imported', 0)} tasks."))


@app.command()
def show(
    weeks: int = typer.Option(26, "--weeks", min=1, max=53, help="Weeks of history to draw."),
) -> None:
    """Print stats and a text heatmap from the local database."""
    try:
        storage = TaskStorage()
        tasks = storage.get_all_tasks()
        last_imported_at = storage.get_last_imported_at()
        tz = get_reference_timezone()
    except (StorageError, ValueError) as e:
        print(f"Error: {e}")
        raise typer.Exit(1)

    display_stats(calculate_stats(tasks), last_imported_at)
    display_heatmap(calculate_heatmap(tasks, tz=tz), weeks=weeks)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind."),
    port: int = typer.Option(8000, "--port", help="Port to listen on."),
) -> None:
    """Run the dashboard web server."""
    import uvicorn

    try:
        validate_import_config()
    except ValueError as e:
        logger.warning("Import endpoint will refuse all requests. %s", e)

    logger.info("Starting task-activity on http://%s:%d", host, port)
    uvicorn.run("task_activity.app:app", host=host, port=port)


if __name__ == "__main__":
    app()

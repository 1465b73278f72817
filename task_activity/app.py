"""
FastAPI web application for task-activity.

Provides the import endpoint for the exporter, REST endpoints for heatmap and
stats data, and the dashboard page.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from fastapi import Body, FastAPI, Header, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from task_activity.auth import (
    ImportAuthError,
    ImportConfigError,
    get_current_user,
    verify_import_token,
)
from task_activity.config import IMPORT_API_SECRET, PSEUDONYMIZE_NAMES, get_reference_timezone
from task_activity.heatmap import calculate_heatmap
from task_activity.importer import ImportValidationError, import_tasks, parse_import_payload
from task_activity.stats_calculator import calculate_stats
from task_activity.storage import StorageError, TaskStorage

logger = logging.getLogger(__name__)

app = FastAPI(
    title="task-activity",
    description="Task completion activity dashboard",
    version="0.1.0",
)

templates = Jinja2Templates(directory=Path(__file__).parent / "templates")

LEVEL_DESCRIPTIONS = {
    0: "No tasks",
    1: "1-2 tasks",
    2: "3-5 tasks",
    3: "6-10 tasks",
    4: "More than 10 tasks",
}


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


def _load_tasks(latest: bool = False) -> list[dict]:
    """
    Load stored tasks, most recently imported first.

    Args:
        latest: Only return the tasks written by the most recent import

    Raises:
        HTTPException: on storage errors
    """
    try:
        storage = TaskStorage()
        if latest:
            return storage.get_latest_batch()
        return storage.get_all_tasks()
    except StorageError as e:
        logger.error("Error fetching tasks from database: %s", e)
        raise HTTPException(status_code=500, detail="Internal Server Error")


def _reference_timezone():
    try:
        return get_reference_timezone()
    except ValueError as e:
        raise HTTPException(status_code=500, detail=f"Configuration error: {e}")


@app.post("/api/import")
def import_endpoint(
    payload: Any = Body(None),
    authorization: str | None = Header(None),
):
    """
    Import a batch of exported tasks.

    Args:
        payload: {"tasks": [...]} with records in export format
        authorization: Bearer token matching IMPORT_API_SECRET

    Returns:
        JSON with the number of tasks written
    """
    try:
        verify_import_token(authorization, IMPORT_API_SECRET)
    except ImportConfigError as e:
        logger.error("Import rejected: %s", e)
        raise HTTPException(status_code=500, detail=f"Configuration error: {e}")
    except ImportAuthError as e:
        logger.warning("Unauthorized import attempt: %s", e)
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        raw_tasks = parse_import_payload(payload)
        logger.info("Received %d tasks", len(raw_tasks))

        if not raw_tasks:
            return {"imported": 0, "message": "No tasks received, nothing to import."}

        written = import_tasks(raw_tasks, TaskStorage(), pseudonymize=PSEUDONYMIZE_NAMES)
    except ImportValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid request body", "details": e.errors},
        )
    except StorageError as e:
        logger.error("Error importing tasks: %s", e)
        raise HTTPException(status_code=500, detail="Internal Server Error")

    return {
        "imported": written,
        "message": f"Successfully imported {written} tasks into the database.",
    }


@app.get("/api/tasks")
def get_tasks(latest: bool = False):
    """
    Get stored tasks.

    Args:
        latest: Only return the batch written by the most recent import

    Returns:
        JSON with tasks ordered by most recent import
    """
    tasks = _load_tasks(latest=latest)
    return {"tasks": tasks, "count": len(tasks)}


@app.get("/api/heatmap")
def get_heatmap():
    """
    Get completion activity for heatmap display.

    Returns:
        JSON with daily counts, intensity levels, week grid and month labels
        for the last 365 days
    """
    tz = _reference_timezone()
    return calculate_heatmap(_load_tasks(), tz=tz)


@app.get("/api/stats")
def get_stats():
    """
    Get task totals and completion rate.

    Returns:
        JSON with stats and the time of the last import
    """
    try:
        storage = TaskStorage()
        tasks = storage.get_all_tasks()
        last_imported_at = storage.get_last_imported_at()
    except StorageError as e:
        logger.error("Error fetching tasks from database: %s", e)
        raise HTTPException(status_code=500, detail="Internal Server Error")

    return {
        "stats": calculate_stats(tasks),
        "last_imported_at": last_imported_at,
    }


@app.get("/api/user")
def get_user(request: Request):
    """
    Get the signed-in user.

    Returns:
        JSON with name, email and image
    """
    user = get_current_user(request.headers)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user.to_dict()


@app.get("/", response_class=HTMLResponse)
def index(request: Request):
    """Render the dashboard page."""
    tz = _reference_timezone()

    # A broken store still renders the page, just without data
    try:
        storage = TaskStorage()
        tasks = storage.get_all_tasks()
        last_imported_at = storage.get_last_imported_at()
    except StorageError:
        logger.exception("Error fetching tasks from database")
        tasks, last_imported_at = [], None

    data = {
        "heatmap": calculate_heatmap(tasks, tz=tz),
        "stats": calculate_stats(tasks),
        "last_updated": _format_last_updated(last_imported_at),
        "user": get_current_user(request.headers),
        "level_descriptions": LEVEL_DESCRIPTIONS,
    }
    return templates.TemplateResponse(request, "index.html", data)


def _format_last_updated(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value).strftime("%B %d, %Y %H:%M UTC")
    except ValueError:
        return value

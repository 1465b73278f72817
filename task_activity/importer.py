"""
Import pipeline for exported task records.

Validates a batch, maps each record into the canonical task shape and upserts
the whole batch keyed by external identifier. A batch is either written in
full or not at all.
"""

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from task_activity.hashing import hash_name
from task_activity.storage import TaskStorage

logger = logging.getLogger(__name__)

# Older exports name fields differently; map them onto the current wire names.
LEGACY_FIELD_NAMES = {
    "primaryKey": "externalId",
    "completedDate": "completionDate",
}


class ImportValidationError(Exception):
    """Raised when one or more records in a batch fail validation."""

    def __init__(self, errors: list[dict]):
        self.errors = errors
        records = {e.get("index") for e in errors}
        super().__init__(f"{len(records)} invalid task record(s) in import batch")


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp string into an aware UTC datetime.

    Naive timestamps are taken to be UTC.

    Raises:
        ValueError: If the string is not a valid ISO-8601 timestamp
        OverflowError: If the UTC equivalent falls outside the datetime range
    """
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class TaskIn(BaseModel):
    """A single task record as sent by the exporter."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    external_id: str = Field(..., alias="externalId", min_length=1)
    name: str
    status: str | None = None
    task_status: str | None = Field(None, alias="taskStatus")
    active: bool | None = None
    added: datetime | None = None
    modified: datetime | None = None
    completed: datetime | None = None
    completion_date: datetime | None = Field(None, alias="completionDate")
    due_date: datetime | None = Field(None, alias="dueDate")
    note: str | None = None
    tags: list[str] | None = None

    @field_validator(
        "added", "modified", "completed", "completion_date", "due_date", mode="before"
    )
    @classmethod
    def _check_timestamp(cls, value):
        if value is None or isinstance(value, datetime):
            return value
        if not isinstance(value, str):
            raise ValueError("timestamp must be an ISO-8601 string")
        if not value.strip():
            return None
        try:
            return parse_timestamp(value)
        except (ValueError, OverflowError):
            raise ValueError(f"invalid ISO-8601 timestamp: {value!r}") from None


def adapt_record(raw):
    """
    Map an exported record of any known shape onto the current wire shape.

    Args:
        raw: Record as received. Non-dict values are returned unchanged so
             validation can report them.

    Returns:
        A new dict using current field names
    """
    if not isinstance(raw, dict):
        return raw

    adapted = dict(raw)
    for legacy, current in LEGACY_FIELD_NAMES.items():
        if legacy in adapted:
            value = adapted.pop(legacy)
            adapted.setdefault(current, value)

    # Some exporters send taskStatus as a numeric code
    task_status = adapted.get("taskStatus")
    if isinstance(task_status, (int, float)) and not isinstance(task_status, bool):
        adapted["taskStatus"] = str(task_status)

    return adapted


def validate_tasks(raw_tasks: list) -> list[TaskIn]:
    """
    Validate every record in a batch.

    Args:
        raw_tasks: Records as received from the exporter

    Returns:
        Validated TaskIn models in input order

    Raises:
        ImportValidationError: If any record is invalid; lists every problem
    """
    validated = []
    errors = []

    for index, raw in enumerate(raw_tasks):
        adapted = adapt_record(raw)
        try:
            validated.append(TaskIn.model_validate(adapted))
        except ValidationError as e:
            external_id = adapted.get("externalId") if isinstance(adapted, dict) else None
            for err in e.errors():
                errors.append({
                    "index": index,
                    "external_id": external_id if isinstance(external_id, str) else None,
                    "loc": list(err["loc"]),
                    "msg": err["msg"],
                    "type": err["type"],
                })

    if errors:
        logger.warning(
            "Rejected import batch of %d tasks: %d validation errors",
            len(raw_tasks),
            len(errors),
        )
        raise ImportValidationError(errors)

    return validated


def parse_import_payload(payload) -> list:
    """
    Extract the task list from an import request body.

    Args:
        payload: Decoded JSON body, expected to be {"tasks": [...]}

    Returns:
        The raw task records

    Raises:
        ImportValidationError: If the body is not an object with a tasks array
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("tasks"), list):
        raise ImportValidationError([{
            "index": None,
            "external_id": None,
            "loc": ["tasks"],
            "msg": "Request body must be an object with a 'tasks' array",
            "type": "missing_tasks",
        }])
    return payload["tasks"]


def normalize_task(task: TaskIn, raw: dict | None = None, pseudonymize: bool = False) -> dict:
    """
    Build the canonical storage row for a validated task.

    Every optional column is present, set to None when absent, so an update
    never keeps a stale value from an earlier import.

    Args:
        task: Validated task
        raw: The original record, stored verbatim. Defaults to the task's own fields.
        pseudonymize: Replace the name with its SHA-256 digest, in raw_data too

    Returns:
        Row dictionary for TaskStorage.upsert_tasks
    """
    name = task.name
    if pseudonymize:
        # Fall back to the plain name rather than losing it
        name = hash_name(name) or name

    if raw is None:
        raw = task.model_dump(by_alias=True, mode="json", exclude_none=True)

    if name != task.name and isinstance(raw.get("name"), str):
        raw = {**raw, "name": name}

    return {
        "external_id": task.external_id,
        "name": name,
        "status": task.status,
        "task_status": task.task_status,
        "active": task.active,
        "added": task.added,
        "modified": task.modified,
        "completed": task.completed or task.completion_date,
        "completion_date": task.completion_date,
        "due_date": task.due_date,
        "note": task.note,
        "tags": task.tags,
        "raw_data": raw,
    }


def import_tasks(
    raw_tasks: list,
    storage: TaskStorage,
    pseudonymize: bool = False,
    now: datetime | None = None,
) -> int:
    """
    Validate, normalize and upsert a batch of task records.

    Args:
        raw_tasks: Records as received from the exporter
        storage: Task storage to write to
        pseudonymize: Hash task names before storing them
        now: Write time to record. Defaults to the current time.

    Returns:
        Number of rows written (inserts and updates combined)

    Raises:
        ImportValidationError: If any record is invalid (nothing is written)
        StorageError: If the batch write fails (nothing is written)
    """
    if not raw_tasks:
        logger.info("Empty import batch, nothing to write")
        return 0

    validated = validate_tasks(raw_tasks)
    rows = [
        normalize_task(task, raw=raw, pseudonymize=pseudonymize)
        for task, raw in zip(validated, raw_tasks)
    ]

    logger.info("Preparing to upsert %d tasks", len(rows))
    return storage.upsert_tasks(rows, imported_at=now)

"""
Heatmap calculator for task completion activity.

Buckets completed tasks by calendar day over a trailing window, assigns each
day an intensity level and lays the days out as a week-column grid with
month labels, ready for a GitHub-style contribution heatmap.
"""

import logging
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 365

# Horizontal distance between week columns: 12px cell plus 2px margin each side
CELL_PITCH = 16

MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def calculate_heatmap(
    tasks: list,
    today: Optional[date] = None,
    days: int = DEFAULT_WINDOW_DAYS,
    tz: tzinfo = timezone.utc,
) -> dict:
    """
    Calculate completion activity for heatmap display.

    Args:
        tasks: List of task dicts with 'status' and 'completion_date' keys
        today: Override for today's date (for testing)
        days: Length of the trailing window; the grid covers today - days .. today
        tz: Timezone whose calendar days are used for bucketing

    Returns:
        Dictionary with:
            - days: List of {date, count, level}, oldest first
            - weeks: List of 7-cell week columns (Sunday first), None for padding
            - month_labels: List of {month, left} breakpoints
            - period: Start/end dates and total days
            - max_count: Maximum completions on a single day
            - total_completed: Completions counted inside the window
    """
    if today is None:
        today = datetime.now(tz).date()

    start_date = today - timedelta(days=days)

    # Dense map so every day in the window has a count
    counts: dict[date, int] = {}
    current = start_date
    while current <= today:
        counts[current] = 0
        current += timedelta(days=1)

    for task in tasks:
        if not _is_completed(task):
            continue
        completion_day = _completion_day(task, tz)
        if completion_day is not None and completion_day in counts:
            counts[completion_day] += 1

    day_list = [
        {"date": day.isoformat(), "count": count, "level": _calculate_level(count)}
        for day, count in counts.items()
    ]

    weeks = _build_weeks(start_date, day_list)

    return {
        "days": day_list,
        "weeks": weeks,
        "month_labels": _build_month_labels(weeks),
        "period": {
            "start": start_date.isoformat(),
            "end": today.isoformat(),
            "total_days": len(day_list),
        },
        "max_count": max((d["count"] for d in day_list), default=0),
        "total_completed": sum(d["count"] for d in day_list),
    }


def _is_completed(task: dict) -> bool:
    status = task.get("status")
    return isinstance(status, str) and status.lower() == "completed"


def _completion_day(task: dict, tz: tzinfo) -> date | None:
    """Calendar day a task was completed on, or None if unknown or unparseable."""
    value = task.get("completion_date")
    if not value:
        return None

    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        return value
    elif isinstance(value, str):
        try:
            moment = datetime.fromisoformat(value.strip())
        except ValueError:
            logger.debug(
                "Skipping task %s: unparseable completion date %r",
                task.get("external_id"),
                value,
            )
            return None
    else:
        return None

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    try:
        return moment.astimezone(tz).date()
    except (ValueError, OverflowError):
        # Values at the edge of the supported range can't shift into tz
        logger.debug(
            "Skipping task %s: completion date %r out of range for %s",
            task.get("external_id"),
            value,
            tz,
        )
        return None


def _sunday_index(day: date) -> int:
    """Weekday with Sunday as 0 and Saturday as 6."""
    return (day.weekday() + 1) % 7


def _build_weeks(start_date: date, day_list: list[dict]) -> list[list]:
    """
    Lay days out in week columns, Sunday through Saturday.

    The first week is left-padded so weekday rows line up; the last week is
    right-padded to seven cells.
    """
    weeks = []
    current_week: list = [None] * _sunday_index(start_date)

    for day in day_list:
        current_week.append(day)
        if len(current_week) == 7:
            weeks.append(current_week)
            current_week = []

    if current_week:
        current_week.extend([None] * (7 - len(current_week)))
        weeks.append(current_week)

    return weeks


def _build_month_labels(weeks: list[list]) -> list[dict]:
    """Emit a label for each week whose first day starts a new month."""
    labels = []
    last_month = None

    for week_index, week in enumerate(weeks):
        first_day = next((day for day in week if day is not None), None)
        if first_day is None:
            continue
        month = int(first_day["date"][5:7])
        if month != last_month:
            labels.append({
                "month": MONTH_ABBREVIATIONS[month - 1],
                "left": week_index * CELL_PITCH,
            })
            last_month = month

    return labels


def _calculate_level(count: int) -> int:
    """
    Calculate intensity level for heatmap coloring.

    Args:
        count: Number of tasks completed on the day

    Returns:
        Level from 0-4:
            0: No completions
            1: 1-2 completions
            2: 3-5 completions
            3: 6-10 completions
            4: 11+ completions
    """
    if count == 0:
        return 0
    elif count <= 2:
        return 1
    elif count <= 5:
        return 2
    elif count <= 10:
        return 3
    else:
        return 4

"""
Calculate summary statistics for stored tasks.
"""

import math


def calculate_stats(tasks: list[dict]) -> dict:
    """
    Calculate task totals and completion rate.

    Args:
        tasks: List of stored task dicts. Only the 'status' key is read.

    Returns:
        Dictionary with task statistics:
        - total_tasks: Number of tasks
        - completed_tasks: Tasks whose status is "completed" (any case)
        - completion_rate: Completed share as a whole percent, 0 when empty
        - status_breakdown: Task count per lower-cased status
    """
    total_tasks = len(tasks)
    completed_tasks = 0
    status_breakdown: dict[str, int] = {}

    for task in tasks:
        status = task.get("status")
        key = status.lower() if isinstance(status, str) and status else "unknown"
        status_breakdown[key] = status_breakdown.get(key, 0) + 1
        if key == "completed":
            completed_tasks += 1

    if total_tasks:
        # Round half up
        completion_rate = math.floor(completed_tasks * 100 / total_tasks + 0.5)
    else:
        completion_rate = 0

    return {
        "total_tasks": total_tasks,
        "completed_tasks": completed_tasks,
        "completion_rate": completion_rate,
        "status_breakdown": dict(sorted(status_breakdown.items())),
    }

"""
Configuration management for task-activity.

Loads the import secret and dashboard settings from environment variables.
"""

import os
from datetime import timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

# Load .env file from project root
load_dotenv()

PLACEHOLDER_SECRET = "your_secret_here"

IMPORT_API_SECRET = os.getenv("IMPORT_API_SECRET")
if IMPORT_API_SECRET == PLACEHOLDER_SECRET:
    IMPORT_API_SECRET = None
PSEUDONYMIZE_NAMES = os.getenv("PSEUDONYMIZE_NAMES", "").strip().lower() in {
    "1",
    "true",
    "yes",
    "on",
}
DASHBOARD_TIMEZONE = os.getenv("DASHBOARD_TIMEZONE", "UTC")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def validate_import_config():
    """Validate that the import endpoint has a secret configured."""
    if not IMPORT_API_SECRET or IMPORT_API_SECRET == PLACEHOLDER_SECRET:
        raise ValueError(
            "Missing required configuration: IMPORT_API_SECRET\n"
            "Please copy .env.example to .env and set a shared secret for the exporter."
        )


def get_reference_timezone(name: str | None = None) -> tzinfo:
    """
    Resolve the timezone used to turn timestamps into calendar days.

    Args:
        name: IANA timezone name. Defaults to DASHBOARD_TIMEZONE.

    Returns:
        A tzinfo instance

    Raises:
        ValueError: If the timezone name is unknown
    """
    if name is None:
        name = DASHBOARD_TIMEZONE
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e

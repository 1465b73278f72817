"""
Logging setup for task-activity.

Call setup_logging() once at process start, before the first log line.
"""

import logging
import sys

# Third-party loggers that are only interesting when something goes wrong.
_QUIET_LOGGERS = ("uvicorn.access", "urllib3", "httpx", "multipart")


def setup_logging(level: int | str = logging.INFO) -> None:
    """
    Configure a single console handler on the root logger.

    Args:
        level: Log level for the console, as a logging constant or name
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    # Remove any pre-existing handlers to avoid duplicates.
    for handler in list(root.handlers):
        root.removeHandler(handler)

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(fmt)
    root.addHandler(console)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.captureWarnings(True)

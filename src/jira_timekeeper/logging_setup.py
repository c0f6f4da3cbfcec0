"""Logging configuration shared by the CLI commands."""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "WARNING", stream: Optional[object] = None) -> None:
    """Configure the root logger with a single stream handler.

    Calling it again replaces the handler installed by a previous call.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR)
        stream: Target stream. Defaults to stderr.
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in list(root_logger.handlers):
        if getattr(handler, "_jira_timekeeper", False):
            root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream)  # type: ignore[arg-type]
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    console_handler._jira_timekeeper = True  # type: ignore[attr-defined]
    root_logger.addHandler(console_handler)

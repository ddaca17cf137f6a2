"""Logging setup for the tracker.

Console output uses a detailed text format; an optional file handler writes
one JSON object per line.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

LOGGER_NAMES = ("core", "storage", "services", "controller", "app")


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured log files."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "extra_fields"):
            entry.update(record.extra_fields)
        return json.dumps(entry)


def setup_logging(log_level: Union[str, int] = logging.INFO, log_file: Optional[Path] = None) -> None:
    """Attach handlers to the tracker's package loggers."""
    detailed = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console = logging.StreamHandler()
    console.setLevel(log_level)
    console.setFormatter(detailed)

    file_handler = None
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())

    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(log_level)
        logger.handlers.clear()
        logger.addHandler(console)
        if file_handler:
            logger.addHandler(file_handler)

    logging.getLogger("core").debug("logging initialized")

"""Logging setup for pit.

Library modules only create loggers with ``logging.getLogger(__name__)``;
:func:`setup_logging` is called once by the CLI to attach handlers to the
``pit`` logger.
"""

from __future__ import annotations

import json
import logging as std_logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Union

LOGGER_NAME = "pit"
RECORD_FIELDS = ("operation", "project_id", "issue_id", "task_id")


def setup_logging(log_level: Union[str, int] = std_logging.WARNING, log_file: Optional[Path] = None) -> std_logging.Logger:
    """Attach a console handler, and optionally a JSON-lines file handler."""
    logger = std_logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    logger.handlers.clear()
    logger.propagate = False

    console_handler = std_logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(std_logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = std_logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(std_logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)
        logger.setLevel(std_logging.DEBUG)

    return logger


class JsonFormatter(std_logging.Formatter):
    """Format each record as one JSON line keyed by what it touched.

    ``operation`` and the project, issue and task ids are always present,
    ``null`` when a message carries none, so a log can be filtered per
    record. Other context passed by :func:`log_operation` goes under
    ``details``.
    """

    def format(self, record: std_logging.LogRecord) -> str:
        context = dict(getattr(record, "extra_fields", {}))
        entry = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in RECORD_FIELDS:
            entry[name] = context.pop(name, None)
        if context:
            entry["details"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


@contextmanager
def log_operation(operation: str, **fields) -> Iterator[None]:
    """Log completion (INFO) or failure (WARNING) of a mutating operation."""
    logger = std_logging.getLogger(f"{LOGGER_NAME}.operations")
    start = time.monotonic()
    try:
        yield
    except Exception as e:
        logger.warning(
            "%s failed: %s", operation, e,
            extra={"extra_fields": {"operation": operation, "outcome": "failed",
                                    "error_type": type(e).__name__, **fields}},
        )
        raise
    duration = time.monotonic() - start
    logger.info(
        "%s completed in %.3fs", operation, duration,
        extra={"extra_fields": {"operation": operation, "outcome": "completed",
                                "duration": duration, **fields}},
    )


__all__ = ["setup_logging", "JsonFormatter", "log_operation", "LOGGER_NAME", "RECORD_FIELDS"]

"""
Structured logging configuration for the experiment service.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# Extra attributes copied onto the JSON line when a log call provides them
EXTRA_FIELDS = (
    "experiment_id",
    "subject_id",
    "variant_id",
    "session_id",
    "event",
    "backend",
    "attempt",
    "error",
)


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": "experiment-assignment-service",
        }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True) -> logging.Logger:
    """
    Configure logging for the ``app`` package.

    Returns:
        The package logger that module loggers propagate to.
    """
    logger = logging.getLogger("app")
    logger.setLevel(level.upper())

    # Remove existing handlers so repeated app construction doesn't duplicate lines
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    if json_output:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    logger.addHandler(console_handler)

    return logger

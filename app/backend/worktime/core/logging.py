"""Structured logging configuration for the billing and staffing engine."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import TextIO

# Fields passed through ``extra=`` that the JSON formatter carries over.
ENGINE_FIELDS = (
    "scope",
    "unit",
    "employee_id",
    "project_id",
    "task_id",
    "time_entry_id",
    "reason",
    "code",
    "applied",
    "unresolved",
    "rates_updated",
    "costs_updated",
    "skipped",
    "failed_units",
)


class JSONFormatter(logging.Formatter):
    """JSON structured log formatter for production."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        for field in ENGINE_FIELDS:
            if hasattr(record, field):
                log_entry[field] = _jsonable(getattr(record, field))
        return json.dumps(log_entry)


def _jsonable(value: object) -> object:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def setup_logging(level: str = "INFO", json_output: bool = False, stream: TextIO | None = None) -> None:
    """Configure application logging; records go to stdout unless ``stream`` is given."""

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(stream or sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))

    root.handlers = [handler]

    for name in ["uvicorn.access", "httpcore", "httpx", "sqlalchemy.engine"]:
        logging.getLogger(name).setLevel(logging.WARNING)

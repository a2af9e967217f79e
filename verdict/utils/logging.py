"""Logging configuration for Verdict"""

import json
import logging
import sys
from datetime import datetime, timezone

from verdict.config import settings

# Attributes every LogRecord carries; anything else arrived through ``extra=``
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}

NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "stripe", "aiosqlite")

TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per line, carrying any ``extra=`` fields"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and key not in entry
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter()
    return logging.Formatter(TEXT_FORMAT)


def setup_logging(level: str | None = None, log_format: str | None = None) -> None:
    """Route all logging to stdout with the configured format"""
    level = level or settings.log_level
    log_format = log_format or settings.log_format

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(build_formatter(log_format))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.debug("Logging configured", extra={"log_level": level, "log_format": log_format})

"""
Logging configuration.

Development gets human-readable console lines; production gets
one JSON object per line on stdout for log aggregation.

Environment variables (via Settings):
- LOG_FORMAT: "json" or "console"
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR
"""

import json
import logging
import logging.config
from datetime import datetime, timezone

from ledger_engine.config import Settings


class JsonFormatter(logging.Formatter):
    """Render a log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def get_logging_config(settings: Settings) -> dict:
    """Build a dictConfig dictionary for the given settings."""
    level = "DEBUG" if settings.DEBUG else settings.LOG_LEVEL.upper()

    if settings.LOG_FORMAT == "json":
        formatters = {"default": {"()": JsonFormatter}}
    else:
        formatters = {
            "default": {
                "format": "[{asctime}] {levelname} {name} {message}",
                "style": "{",
            },
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "ledger_engine": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "handlers": ["console"],
                "level": "INFO" if settings.DEBUG else "WARNING",
                "propagate": False,
            },
        },
    }


def configure_logging(settings: Settings) -> None:
    logging.config.dictConfig(get_logging_config(settings))

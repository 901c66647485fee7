"""
Structured logging configuration.

JSON output is meant for log shippers (Promtail/Loki, Cloud Logging); the
text formatter is for local development. Context travels in ``extra={...}``
and is emitted as top-level fields so runs can be filtered by action,
destination or failure type.
"""

import json
import logging
import sys
from typing import Any, Dict

CONTEXT_FIELDS = (
    "component",
    "operation",
    "action",
    "source",
    "destination",
    "error_type",
    "external_service",
    "http_status",
    "attempt",
    "retry_count",
    "failure_count",
)


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per log record.

    Standard fields: timestamp, level, logger, message
    Context fields: any of CONTEXT_FIELDS present on the record
    Exception handling: formatted traceback under "exception"
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt or "%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for attr in CONTEXT_FIELDS:
            if hasattr(record, attr):
                log_data[attr] = getattr(record, attr)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """
    Traditional text formatter for development/local logging.
    """

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)

        extra_parts = [
            f"{attr}={getattr(record, attr)}" for attr in CONTEXT_FIELDS if hasattr(record, attr)
        ]
        if extra_parts:
            msg += " | " + " ".join(extra_parts)

        return msg


def configure_logging(json_logs: bool = True, log_level: str = "INFO") -> None:
    """
    Configure the root logger with appropriate formatting and level.

    Args:
        json_logs: If True, use the JSON formatter. If False, use the text formatter.
        log_level: Log level as string ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicate logs
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    if json_logs:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = TextFormatter(fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

"""
Record Sync - Structured JSON Logging

Provides structured logging for reconciliation passes.
Outputs JSON format for log aggregation (Datadog, CloudWatch, etc.)
"""

import logging
import json
import sys
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import traceback


# Attributes every LogRecord carries; anything else was passed via `extra=`.
_RESERVED_ATTRS = frozenset([
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName", "run_id", "entity_type",
])


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per log line.
    Pass context (run id, entity type) is promoted to top-level keys.
    """

    def __init__(self, service_name: str = "record-sync"):
        super().__init__()
        self.service_name = service_name
        self.environment = os.environ.get("ENVIRONMENT", "development")
        self.hostname = os.environ.get("HOSTNAME", "unknown")

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": self.environment,
            "hostname": self.hostname,
            "run_id": getattr(record, "run_id", None),
            "entity_type": getattr(record, "entity_type", None),
        }

        log_data["location"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info) if record.exc_info[0] else None,
            }

        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)


class PassContextFilter(logging.Filter):
    """
    Adds the current reconciliation pass context to log records.
    """

    def __init__(self):
        super().__init__()
        self._run_id: Optional[str] = None
        self._entity_type: Optional[str] = None

    def set_pass_context(
        self,
        run_id: Optional[str] = None,
        entity_type: Optional[str] = None
    ):
        self._run_id = run_id
        self._entity_type = entity_type

    def clear_pass_context(self):
        self._run_id = None
        self._entity_type = None

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self._run_id
        record.entity_type = self._entity_type
        return True


# Global pass context filter instance, installed by setup_logging()
_pass_context_filter: Optional[PassContextFilter] = None


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    service_name: str = "record-sync"
) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production)
        service_name: Service name for log aggregation

    Returns:
        Configured root logger
    """
    global _pass_context_filter

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))

    if json_format:
        handler.setFormatter(JSONFormatter(service_name=service_name))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(run_id)s] %(message)s"
        ))

    _pass_context_filter = PassContextFilter()
    handler.addFilter(_pass_context_filter)

    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(name)


def set_pass_context(
    run_id: Optional[str] = None,
    entity_type: Optional[str] = None
):
    """Set pass context for logging."""
    if _pass_context_filter:
        _pass_context_filter.set_pass_context(run_id, entity_type)


def clear_pass_context():
    """Clear pass context."""
    if _pass_context_filter:
        _pass_context_filter.clear_pass_context()

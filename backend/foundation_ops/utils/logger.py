"""JSON logging; every record carries the request correlation id when one is set"""
import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

from ..config.settings import settings
from .time import format_iso


# Set per request by the correlation middleware and per run by scheduler jobs
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Record attributes copied into the JSON payload when present
EXTRA_FIELDS = (
    "instance_id",
    "step_index",
    "workflow_kind",
    "actor_id",
    "role",
    "screen",
    "status",
    "version",
    "error_code",
    "elapsed_ms",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, carrying the workflow context passed in `extra`"""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": format_iso(datetime.fromtimestamp(record.created, tz=timezone.utc)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = getattr(record, "correlation_id", None) or correlation_id_var.get()
        if correlation_id:
            payload["correlation_id"] = correlation_id

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                payload[field] = getattr(record, field)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# Third-party loggers and the level they are capped at
QUIET_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "pymongo": logging.WARNING,
    "apscheduler": logging.WARNING,
}


def _rotating_handler(filename: str, level: int = logging.NOTSET) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        os.path.join(settings.logs_path, filename),
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def setup_logging() -> None:
    """
    JSON logs to stdout, logs/foundation_ops.log and logs/error.log

    Replaces any handlers already on the root logger, so calling it twice
    does not duplicate output.
    """
    os.makedirs(settings.logs_path, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    root.handlers.clear()

    formatter = JsonFormatter()
    for handler in (
        logging.StreamHandler(sys.stdout),
        _rotating_handler("foundation_ops.log"),
        _rotating_handler("error.log", logging.ERROR),
    ):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class InstanceLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that stamps every record with workflow instance context"""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra", {}))
        correlation_id = correlation_id_var.get()
        if correlation_id:
            extra["correlation_id"] = correlation_id
        kwargs["extra"] = extra
        return msg, kwargs


def get_instance_logger(name: str, instance_id: str, **context: Any) -> InstanceLoggerAdapter:
    """Get a logger adapter bound to one workflow instance"""
    return InstanceLoggerAdapter(logging.getLogger(name), {"instance_id": instance_id, **context})


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()

"""One JSON object per log line on stdout.

Structured fields travel as `extra={"context": {...}}`. A `request_id`
bound through `bind()` is lifted out of the context to the top level so
every line of one webhook request can be grepped together.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

SERVICE_NAME = "chat-relay"
LOGGER_NAMESPACE = "chat_relay"

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine", "redis")


class JSONFormatter(logging.Formatter):
    def __init__(self, service: str = SERVICE_NAME) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = dict(getattr(record, "context", None) or {})
        request_id = context.pop("request_id", None)
        if request_id:
            entry["request_id"] = request_id
        if context:
            entry["context"] = context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", *, stream=None) -> None:
    root = logging.getLogger()
    level_value = logging.getLevelName(level.upper())
    root.setLevel(level_value if isinstance(level_value, int) else logging.INFO)

    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


class LoggerAdapter(logging.LoggerAdapter):
    """Adds bound fields to every record; a per-call `context=` kwarg is merged on top."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = kwargs.pop("context", None)
        extra = kwargs.get("extra") or {}
        merged = {**(self.extra or {}), **extra.get("context", {}), **(context or {})}
        if merged:
            kwargs["extra"] = {**extra, "context": merged}
        return msg, kwargs


def bind(logger: logging.Logger, request_id: Optional[str] = None, **fields: Any) -> LoggerAdapter:
    if request_id:
        fields["request_id"] = request_id
    return LoggerAdapter(logger, fields)

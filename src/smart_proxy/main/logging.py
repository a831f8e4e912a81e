import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from rich.logging import RichHandler

from smart_proxy.main.config import get_loglevel
from smart_proxy.main.request_context import get_request_context


JSON_LOGS_ENABLED = os.getenv("JSON_LOGS", "true").lower() in {"1", "true", "yes", "on"}


class ContextJSONFormatter(logging.Formatter):
    """Serialize log records with request context into JSON."""

    RESERVED_ATTRS = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
    }

    DEFAULT_KEYS = ("correlation_id", "grant_type", "error_code", "status_code")

    def format(self, record: logging.LogRecord) -> str:
        log: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Attach request context values (correlation id, route, ...)
        for key, value in get_request_context().items():
            if value is not None and key not in log:
                log[key] = value

        # Include extra attributes passed via logger(..., extra={})
        for key, value in record.__dict__.items():
            if key in self.RESERVED_ATTRS or key.startswith("_"):
                continue
            if value is None:
                continue
            log.setdefault(key, value)

        for key in self.DEFAULT_KEYS:
            if key not in log and getattr(record, key, None) is not None:
                log[key] = getattr(record, key)

        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log["stack"] = record.stack_info

        return json.dumps(log, default=str)


# aiohttp and uvicorn log every request; keep them quiet unless debugging
THIRD_PARTY_LOGGERS = ("aiohttp.access", "aiohttp.client", "aiohttp.internal", "uvicorn.access")


def _quiet_third_party_loggers(level: int) -> None:
    third_party_level = logging.INFO if level <= logging.DEBUG else logging.WARNING
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)


_quiet_third_party_loggers(get_loglevel())


class ProxyLogger(logging.Logger):
    """Logger with a single console handler: JSON lines or rich output."""

    def __init__(self, name: str, level: int):
        super().__init__(name, level)

        handler: logging.Handler
        if JSON_LOGS_ENABLED:
            handler = logging.StreamHandler(stream=sys.stdout)
            handler.setFormatter(ContextJSONFormatter())
        else:
            # Messages carry literal "[AadProxy]" prefixes, so no rich markup
            handler = RichHandler(rich_tracebacks=True, markup=False, show_path=True)

        handler.setLevel(level)
        self.addHandler(handler)


def get_logger(module_name: str) -> logging.Logger:
    return ProxyLogger(name=module_name, level=get_loglevel())

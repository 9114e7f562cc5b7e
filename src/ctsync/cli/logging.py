"""
Logging setup for the ctsync CLI.

Two formats:
    text - human readable, one line per record
    json - one JSON object per line for log aggregators

Libraries log through ``logging.getLogger("ClassName")``; only the CLI
configures handlers.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


# Attributes every LogRecord has; anything else was passed through ``extra``.
_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

# Chatty third-party loggers kept at WARNING unless debugging
_NOISY_LOGGERS = ("urllib3", "requests", "asyncio")


class JSONFormatter(logging.Formatter):
    """Formats records as single-line JSON documents."""

    def __init__(self, static_fields: dict[str, Any] | None = None):
        super().__init__()
        self.static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data.update(self.static_fields)

        for name, value in vars(record).items():
            if name not in _RESERVED and not name.startswith("_"):
                data[name] = value

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Plain text with context fields appended as ``key=value``."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-8s %(name)s: %(message)s", "%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = {
            name: value
            for name, value in vars(record).items()
            if name not in _RESERVED and not name.startswith("_")
        }
        if context:
            line += " " + " ".join(f"{k}={v}" for k, v in sorted(context.items()))
        return line


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that attaches fixed context to every record.

    Example:
        log = get_logger("SyncOrchestrator").bind(deployment_id="d-42")
        log.info("Starting sync")
    """

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **context: Any) -> ContextLogger:
        merged = dict(self.extra or {})
        merged.update(context)
        return ContextLogger(self.logger, merged)


def get_logger(name: str, **context: Any) -> ContextLogger:
    return ContextLogger(logging.getLogger(name), context)


def setup_logging(
    level: int = logging.INFO,
    log_format: str = "text",
    log_file: str | Path | None = None,
    static_fields: dict[str, Any] | None = None,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Root log level
        log_format: "text" or "json"
        log_file: Also write records to this file
        static_fields: Fields added to every JSON record
    """
    formatter: logging.Formatter
    if log_format == "json":
        formatter = JSONFormatter(static_fields)
    else:
        formatter = TextFormatter()

    handlers: list[logging.Handler] = []
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

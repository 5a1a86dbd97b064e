"""
Logging setup for the devalias CLI and its daemon.

Text logging by default; JSON lines when DEVALIAS_LOG_FORMAT=json, which is
easier to ingest from the daemon log file.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(process)d] - %(message)s"

# LogRecord attributes that are not user-supplied extras
_RESERVED_FIELDS = {
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "thread",
    "threadName",
    "taskName",
    "exc_info",
    "exc_text",
    "stack_info",
}


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter.

    Each entry carries timestamp, level, logger, message and pid, plus any
    fields passed through ``extra=``.
    """

    def format(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        timestamp = dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{int(record.msecs):03d}Z"

        log_entry: dict[str, Any] = {
            "timestamp": timestamp,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "pid": record.process,
        }

        if record.funcName and record.funcName != "<module>":
            log_entry["function"] = record.funcName

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_FIELDS and not key.startswith("_"):
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def is_json_logging_enabled() -> bool:
    """True if DEVALIAS_LOG_FORMAT=json"""
    return os.getenv("DEVALIAS_LOG_FORMAT", "text").lower() == "json"


def setup_logging(
    level: str | None = None,
    log_file: str | None = None,
    stream=None,
    force: bool = True,
) -> None:
    """
    Configure the root logger from arguments or environment.

    Environment variables:
    - DEVALIAS_LOG_FORMAT: "json" or "text" (default: text)
    - DEVALIAS_LOG_LEVEL: log level (default: WARNING for the CLI)
    - DEVALIAS_LOG_FILE: optional log file path

    Args:
        level: Override log level
        log_file: Override log file
        stream: Console stream (default: stderr); pass False to disable it
        force: Force reconfiguration of the root logger
    """
    if level is None:
        level = os.getenv("DEVALIAS_LOG_LEVEL", "WARNING")
    if log_file is None:
        log_file = os.getenv("DEVALIAS_LOG_FILE")

    formatter: logging.Formatter
    if is_json_logging_enabled():
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handlers: list[logging.Handler] = []
    if stream is not False:
        handlers.append(logging.StreamHandler(stream or sys.stderr))
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as e:
            print(f"Warning: Could not open log file {log_file}: {e}", file=sys.stderr)
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level.upper(), handlers=handlers, force=force)

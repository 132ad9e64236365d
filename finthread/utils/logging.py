"""Logging configuration utilities.

The service logs to stdout by default so container runtimes can collect it;
``LOG_OUTPUT=file`` or ``both`` adds a rotating log file. ``LOG_FORMAT=json``
switches to one JSON object per line.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import List, Literal

DEFAULT_LEVEL = "INFO"
DEFAULT_OUTPUT = "stdout"
DEFAULT_FILE_PATH = "logs/finthread.log"
DEFAULT_FORMAT = "text"

TEXT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(filename)s:%(lineno)d | %(message)s"

LogOutput = Literal["stdout", "file", "both"]
LogFormat = Literal["text", "json"]

# Chatty libraries kept at WARNING unless DEBUG is requested
_NOISY_LOGGERS = ("urllib3", "apscheduler.executors", "apscheduler.scheduler")


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "name": record.name,
            "file": f"{record.filename}:{record.lineno}",
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _env(name: str, default: str) -> str:
    return os.environ.get(name) or default


def _handlers(output: str, file_path: str) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if output in ("stdout", "both"):
        handlers.append(logging.StreamHandler(sys.stdout))
    if output in ("file", "both"):
        log_dir = os.path.dirname(file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(RotatingFileHandler(file_path, maxBytes=10 * 1024 * 1024, backupCount=5))
    return handlers


def configure_logging(
    level: str | int | None = None,
    output: LogOutput | None = None,
    file_path: str | None = None,
    log_format: LogFormat | None = None,
) -> None:
    """Configure the root logger.

    Parameters
    ----------
    level:
        Logging level name (e.g. "INFO") or numeric value; ``LOG_LEVEL``.
    output:
        "stdout", "file" or "both"; ``LOG_OUTPUT``.
    file_path:
        Log file used by the "file" and "both" outputs; ``LOG_FILE_PATH``.
    log_format:
        "text" or "json"; ``LOG_FORMAT``.

    Unset arguments are read from the environment at call time, after
    ``main`` has loaded ``.env``.
    """
    if level is None:
        level = _env("LOG_LEVEL", DEFAULT_LEVEL)
    if isinstance(level, str):
        level = level.upper()
    output = (output or _env("LOG_OUTPUT", DEFAULT_OUTPUT)).lower()
    file_path = file_path or _env("LOG_FILE_PATH", DEFAULT_FILE_PATH)
    log_format = (log_format or _env("LOG_FORMAT", DEFAULT_FORMAT)).lower()

    formatter: logging.Formatter = JsonFormatter() if log_format == "json" else logging.Formatter(TEXT_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    for handler in _handlers(output, file_path):
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    quiet = root_logger.getEffectiveLevel() > logging.DEBUG
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING if quiet else logging.NOTSET)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)

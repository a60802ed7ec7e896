# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Structured JSON logger for rbverify.

Every log entry is a single JSON line with a timestamp, a level, the source
module and the message. Anything passed through `extra=` is merged into the
same object, which is how the pipeline attaches slice identifiers, paths and
counts to its log lines.

Logs are written to stderr. stdout belongs to the verification report, and
downstream tooling parses it, so the two streams must never mix.

The JSON structure looks like:
  {"ts": "2026-...", "level": "INFO", "module": "rbverify.diff.engine", "msg": "slice compared", ...}
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# LogRecord attributes that are plumbing, not context.
_STANDARD_ATTRS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "relativeCreated",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "pathname",
        "filename",
        "module",
        "levelno",
        "levelname",
        "processName",
        "process",
        "threadName",
        "thread",
        "message",
        "msecs",
        "taskName",
    }
)


class JsonFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Mandatory fields:
      ts     — ISO 8601 UTC timestamp
      level  — log level name
      module — the logger name (usually the Python module path)
      msg    — the formatted message string

    Extra keyword context is merged in as additional fields. Exception info,
    when present, is rendered into an `exc` field so tracebacks stay on one line.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "msg": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                entry[key] = value

        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Shared by every rbverify logger once `add_package_log_file` has run.
_package_file_handler: Optional[logging.Handler] = None


def _resolve_log_level(level_name: str) -> int:
    """Turn a level name string into the corresponding logging constant."""
    upper = level_name.upper()
    if upper not in _VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level '{level_name}'. Must be one of: {', '.join(sorted(_VALID_LOG_LEVELS))}"
        )
    return getattr(logging, upper)


def get_logger(
    name: str,
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Create a structured JSON logger.

    This is the only sanctioned way to get a logger in rbverify. Modules call
    it once at import time; the CLI calls it again with the operator's level,
    which updates the level on the already-configured logger.

    Args:
        name: Logger name, typically __name__ of the calling module.
        log_level: One of DEBUG, INFO, WARNING, ERROR, CRITICAL.
        log_file: Optional path to a log file. If provided, logs go to both
                  stderr and the file.

    Returns:
        A configured logging.Logger that outputs structured JSON.
    """
    logger = logging.getLogger(name)
    level = _resolve_log_level(log_level)
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    formatter = JsonFormatter()

    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(formatter)
    logger.addHandler(stderr_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    elif _package_file_handler is not None and _is_package_logger(name):
        logger.addHandler(_package_file_handler)

    logger.propagate = False

    return logger


def set_package_log_level(log_level: str) -> None:
    """
    Apply one level to every rbverify logger created so far.

    Module-level loggers are created at import time with the default level;
    the CLI calls this once after parsing `--log-level`.
    """
    level = _resolve_log_level(log_level)
    for name in list(logging.Logger.manager.loggerDict):
        if _is_package_logger(name):
            logger = logging.getLogger(name)
            logger.setLevel(level)
            for handler in logger.handlers:
                handler.setLevel(level)


def _is_package_logger(name: str) -> bool:
    return name == "rbverify" or name.startswith("rbverify.")


def add_package_log_file(log_file: Path, log_level: str = "INFO") -> logging.Handler:
    """
    Send every rbverify logger's entries to `log_file` as well as stderr.

    Module loggers do not propagate, so the file handler is attached to each
    of them. Loggers created afterwards pick it up in `get_logger`. Calling
    this again replaces the previous file.
    """
    global _package_file_handler

    level = _resolve_log_level(log_level)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(str(log_file), encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())

    previous = _package_file_handler
    _package_file_handler = handler
    for name in list(logging.Logger.manager.loggerDict):
        if not _is_package_logger(name):
            continue
        logger = logging.getLogger(name)
        if previous is not None:
            logger.removeHandler(previous)
        if logger.handlers:
            logger.addHandler(handler)
    if previous is not None:
        previous.close()
    return handler

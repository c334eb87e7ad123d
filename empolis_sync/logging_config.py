"""
Logging configuration for empolis-sync.

Operations are logged to daily-rotated files in the configured log
directory. Library chatter (httpx, httpcore) is suppressed unless debug
mode is enabled.
"""

import json
import logging
import os
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any

import httpx

PACKAGE_LOGGER = "empolis_sync"

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Rotated log files kept on disk (one per day)
LOG_BACKUP_DAYS = 7


def configure_quiet_mode(quiet: bool = True):
    """
    Keep HTTP library loggers at WARNING so request lines don't flood output.

    Args:
        quiet: If True, suppress library output. If False, let it through.
    """
    level = logging.WARNING if quiet else logging.NOTSET
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(level)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    configure_quiet_mode(quiet=False)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG)


def configure_ops_log(log_dir: Path, level: str = "info") -> list[logging.Handler]:
    """Configure persistent operation logs.

    Writes {log_dir}/empolis-sync.log (everything at ``level`` and above) and
    {log_dir}/empolis-sync-error.log (errors only). Both rotate at midnight
    and keep a week of history. Returns the handlers so they can be removed.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    combined_path = log_dir / "empolis-sync.log"
    errors_path = log_dir / "empolis-sync-error.log"

    # Already configured for this directory
    wanted = {os.path.abspath(combined_path), os.path.abspath(errors_path)}
    existing = [h for h in pkg_logger.handlers
                if isinstance(h, TimedRotatingFileHandler) and h.baseFilename in wanted]
    if existing:
        return existing

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    combined = TimedRotatingFileHandler(
        str(combined_path),
        when="midnight",
        backupCount=LOG_BACKUP_DAYS,
        encoding="utf-8",
    )
    combined.setLevel(numeric_level)
    combined.setFormatter(formatter)

    errors = TimedRotatingFileHandler(
        str(errors_path),
        when="midnight",
        backupCount=LOG_BACKUP_DAYS,
        encoding="utf-8",
    )
    errors.setLevel(logging.ERROR)
    errors.setFormatter(formatter)

    pkg_logger.addHandler(combined)
    pkg_logger.addHandler(errors)
    if pkg_logger.level == logging.NOTSET or pkg_logger.level > numeric_level:
        pkg_logger.setLevel(numeric_level)

    return [combined, errors]


def _indent(text: str, prefix: str = "  ") -> str:
    return "\n".join(prefix + line for line in text.splitlines())


def log_pretty(logger: logging.Logger, obj: Any, title: str = "object") -> None:
    """Log a JSON-serializable object, indented, at DEBUG."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    formatted = json.dumps(obj, indent=2, ensure_ascii=False, default=str)
    logger.debug("%s:\n%s", title, _indent(formatted))


def log_response(logger: logging.Logger, response: httpx.Response, title: str = "response") -> None:
    """Log status code and body of an HTTP response at DEBUG."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    try:
        body = json.dumps(response.json(), indent=2, ensure_ascii=False)
    except ValueError:
        body = response.text
    logger.debug(
        "%s:\n  statusCode: %d\n  body:\n%s",
        title, response.status_code, _indent(body, "    "),
    )
